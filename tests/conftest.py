"""Shared pytest fixtures."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Dict, List

# Importing flowforge.data.db creates the default engine; keep it out of the working tree
os.environ.setdefault("FLOWFORGE_DATABASE_PATH", str(Path(tempfile.gettempdir()) / "flowforge-tests.db"))

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from flowforge.data.store import ProjectRecord, SqlGraphStore
from flowforge.utils.layout import NodeFootprint


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> SqlGraphStore:
    return SqlGraphStore(engine)


@pytest.fixture
def project(store) -> ProjectRecord:
    return store.create_project("Recipe Planner", "Plan weekly meals")


@pytest.fixture
def footprint() -> NodeFootprint:
    return NodeFootprint(width=350.0, height=150.0, gap=200.0)


@pytest.fixture
def notes() -> List[tuple]:
    return []


@pytest.fixture
def notifier(notes):
    def _notify(level: str, message: str) -> None:
        notes.append((level, message))

    return _notify


class FakeLLMClient:
    """Returns scripted replies and records what it was sent."""

    def __init__(self, replies: List[str]):
        self.replies = list(replies)
        self.calls: List[Dict[str, object]] = []

    def chat(self, *, messages, project_title, project_description=None) -> str:
        self.calls.append(
            {
                "messages": [dict(message) for message in messages],
                "project_title": project_title,
                "project_description": project_description,
            }
        )
        return self.replies.pop(0) if self.replies else ""


@pytest.fixture
def fake_llm_factory():
    return FakeLLMClient
