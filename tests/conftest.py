"""Shared fixtures for crm-bridge tests.

Provides:
- A ticking clock so every write gets a strictly later timestamp
- In-memory Attio-like and Salesforce-like connectors sharing that clock
- Memory storage and a SyncEngine wired to all of the above
"""

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from crmbridge.connectors.memory import InMemoryConnector
from crmbridge.engine.sync import SyncEngine
from crmbridge.models.config import ServiceConnection, SyncSettings
from crmbridge.services.storage import MemoryStorage


class TickingClock:
    """Returns a later time on every call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        self.current += self.step
        return self.current


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock(datetime.now(timezone.utc) - timedelta(hours=1))


@pytest.fixture
def attio(clock) -> InMemoryConnector:
    return InMemoryConnector(name="attio", id_prefix="att_", clock=clock)


@pytest.fixture
def salesforce(clock) -> InMemoryConnector:
    return InMemoryConnector(name="salesforce", id_prefix="sf_", clock=clock)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(
        source=ServiceConnection(service_type="memory"),
        target=ServiceConnection(service_type="memory"),
        backoff_seconds=0.5,
        max_attempts=3,
    )


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def engine(attio, salesforce, storage, settings, sleeps) -> SyncEngine:
    return SyncEngine(attio, salesforce, storage, settings=settings, sleep=sleeps.append)
