"""Shared fixtures: in-memory collaborators and wired-up services.

The RetryExecutor fixture injects an AsyncMock sleep, so backoff never
waits and tests can assert on the requested delays.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.teamnotes.core.retry import RetryExecutor
from src.teamnotes.notifications.orchestrator import NotificationOrchestrator
from src.teamnotes.tasks.assignment import TaskAssignmentEngine
from src.teamnotes.teams.matching import MemberMatcher
from src.teamnotes.teams.schemas import User
from src.teamnotes.teams.service import TeamService
from tests.doubles import NOW, FakeIdentity, InMemoryStore, make_team


@pytest.fixture
def store() -> InMemoryStore:
    s = InMemoryStore()
    s.teams["team-1"] = make_team()
    return s


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity(
        [
            User(uid="u-alice", email="alice.smith@example.com", display_name="Alice Smith"),
            User(uid="u-bob", email="bob.jones@example.com", display_name="Bob Jones"),
            User(uid="u-carol", email="carol@example.com", display_name="Carol White"),
            User(uid="u-erin", email="erin@example.com", display_name="Erin Green"),
        ]
    )


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def retry(sleep: AsyncMock) -> RetryExecutor:
    return RetryExecutor(max_retries=3, base_delay=0.5, max_delay=10.0, sleep=sleep)


@pytest.fixture
def orchestrator(store, identity, retry) -> NotificationOrchestrator:
    return NotificationOrchestrator(store, identity, retry_executor=retry, fanout_limit=5)


@pytest.fixture
def engine(store, orchestrator, retry) -> TaskAssignmentEngine:
    return TaskAssignmentEngine(
        store,
        orchestrator,
        retry_executor=retry,
        matcher=MemberMatcher(strict_matching=True),
        now=lambda: NOW,
    )


@pytest.fixture
def team_service(store, identity, orchestrator, retry) -> TeamService:
    return TeamService(store, identity, orchestrator, retry_executor=retry)
