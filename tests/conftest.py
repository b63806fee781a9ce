"""
Shared fixtures for the booking proxy tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from loguru import logger

from booking_proxy.api.server import create_app
from booking_proxy.config import Settings
from booking_proxy.models.booking import CalendarEvent
from booking_proxy.services.calendar_gateway import CalendarGatewayError

API_KEY = "test-secret"


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class FakeCalendarGateway:
    """In-memory stand-in for the Google calendar."""

    def __init__(self):
        self.events: Dict[str, Dict[str, Any]] = {}
        self.calls: List[str] = []
        self.fail_with: Optional[CalendarGatewayError] = None
        self.closed = False
        self._next_id = 1

    def add_event(self, start: datetime, end: datetime, summary: str = "Existing") -> str:
        event_id = f"evt-{self._next_id}"
        self._next_id += 1
        self.events[event_id] = {
            "id": event_id,
            "summary": summary,
            "start": {"dateTime": start.isoformat()},
            "end": {"dateTime": end.isoformat()},
        }
        return event_id

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if self.fail_with is not None:
            raise self.fail_with

    def _require(self, event_id: str) -> Dict[str, Any]:
        if event_id not in self.events:
            raise CalendarGatewayError(
                "Calendar API returned 404", status_code=404, detail="Not Found"
            )
        return self.events[event_id]

    async def list_events(self, time_min: datetime, time_max: datetime) -> List[Dict[str, Any]]:
        self._record("list")
        matches = [
            event
            for event in self.events.values()
            if _parse(event["start"]["dateTime"]) < time_max
            and _parse(event["end"]["dateTime"]) > time_min
        ]
        return sorted(matches, key=lambda e: _parse(e["start"]["dateTime"]))

    async def insert_event(self, event: CalendarEvent) -> Dict[str, Any]:
        self._record("insert")
        event_id = f"evt-{self._next_id}"
        self._next_id += 1
        resource = event.to_resource()
        resource["id"] = event_id
        self.events[event_id] = resource
        return resource

    async def patch_event(self, event_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        self._record("patch")
        event = self._require(event_id)
        event.update(changes)
        return event

    async def delete_event(self, event_id: str) -> None:
        self._record("delete")
        self._require(event_id)
        del self.events[event_id]

    async def close(self) -> None:
        self.closed = True


class BlockingCalendarGateway(FakeCalendarGateway):
    """Fake calendar whose inserts wait until the test lets them through."""

    def __init__(self):
        super().__init__()
        self.insert_started = asyncio.Event()
        self.proceed = asyncio.Event()

    async def insert_event(self, event: CalendarEvent) -> Dict[str, Any]:
        self.insert_started.set()
        await self.proceed.wait()
        return await super().insert_event(event)


class FakeClock:
    """Controllable replacement for datetime.now(timezone.utc)."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 6, 3, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


def make_settings(**overrides) -> Settings:
    values = {"api_key": API_KEY}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def gateway() -> FakeCalendarGateway:
    return FakeCalendarGateway()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def app(settings, gateway):
    return create_app(settings=settings, gateway=gateway)


@pytest.fixture
async def client(app):
    """Create an async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"x-api-key": API_KEY}


@pytest.fixture
def log_messages():
    """Capture loguru output for the duration of a test."""
    messages: List[str] = []
    handler_id = logger.add(messages.append, level="DEBUG", format="{message}")
    yield messages
    logger.remove(handler_id)
