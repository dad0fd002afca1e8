"""
Shared fixtures: a fresh SQLite database per test and a task factory.

A file database (not :memory:) so that several sessions can hold separate
connections, which the concurrency tests rely on.
"""

import os

os.environ.setdefault("NEXUS_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("NEXUS_LOG_FORMAT", "text")

import uuid  # noqa: E402
from collections import defaultdict  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import app.models  # noqa: E402,F401
from app.models.task import Task  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'graph.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s
        await s.rollback()


@pytest.fixture
def make_task(session):
    async def _make(
        code: Optional[str],
        title: Optional[str] = None,
        status: str = "backlog",
        project_id: Optional[uuid.UUID] = None,
    ) -> Task:
        task = Task(code=code, title=title or code or "untitled", status=status, project_id=project_id)
        session.add(task)
        await session.flush()
        return task

    return _make


def _has_cycle(edges) -> bool:
    """Three-colour DFS over (dependent, prerequisite) pairs."""
    adj: dict = defaultdict(list)
    for src, dst in edges:
        adj[src].append(dst)

    WHITE, GRAY, BLACK = 0, 1, 2
    color: dict = defaultdict(int)
    for root in list(adj):
        if color[root] != WHITE:
            continue
        stack = [(root, iter(adj[root]))]
        color[root] = GRAY
        while stack:
            node, children = stack[-1]
            for child in children:
                if color[child] == GRAY:
                    return True
                if color[child] == WHITE:
                    color[child] = GRAY
                    stack.append((child, iter(adj[child])))
                    break
            else:
                color[node] = BLACK
                stack.pop()
    return False


@pytest.fixture
def has_cycle():
    return _has_cycle
