# tests/conftest.py
import asyncio
import os
from datetime import datetime, timedelta, timezone

# Settings are read at import time by the API modules.
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from tendercost.schemas.user import Principal


async def settle(rounds: int = 20) -> None:
    """Let pending tasks on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeAuthService:
    """In-memory auth service; sign-in emits an anonymous principal."""

    def __init__(self, principal: Principal | None = None, fail_with: Exception | None = None):
        self.principal = principal
        self.fail_with = fail_with
        self.listeners = []
        self.sign_in_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.gate: asyncio.Event | None = None

    async def current_principal(self):
        await asyncio.sleep(0)
        return self.principal

    def on_principal_changed(self, listener):
        self.listeners.append(listener)

        def remove():
            self.listeners.remove(listener)

        return remove

    def emit(self, principal):
        self.principal = principal
        for listener in list(self.listeners):
            listener(principal)

    async def sign_in_anonymously(self):
        self.sign_in_calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if self.fail_with is not None:
                raise self.fail_with
            self.emit(Principal(id=f"anon-{self.sign_in_calls}", is_anonymous=True))
        finally:
            self.in_flight -= 1

    async def sign_out(self):
        await asyncio.sleep(0)
        self.emit(None)


class FakeProfileStore:
    """
    In-memory profile store.

    create_if_absent never overwrites and stamps created_at itself, the way
    the database column default does.
    """

    def __init__(self):
        self.rows: dict[str, dict] = {}
        self.subscribers: dict[str, list] = {}
        self.all_callbacks: dict[str, list] = {}
        self.fail: dict[str, Exception] = {}
        self.calls = {"get": 0, "create_if_absent": 0, "merge": 0, "subscribe": 0, "unsubscribe": 0}
        self.created = 0
        self.delivered = 0
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _check(self, op):
        self.calls[op] += 1
        if op in self.fail:
            raise self.fail[op]

    async def get(self, key):
        await asyncio.sleep(0)
        self._check("get")
        row = self.rows.get(key)
        return dict(row) if row is not None else None

    async def create_if_absent(self, key, data):
        await asyncio.sleep(0)
        self._check("create_if_absent")
        if key in self.rows:
            return False
        self.created += 1
        self.rows[key] = {
            **data,
            "id": key,
            "created_at": self._clock + timedelta(seconds=self.created),
        }
        self.notify(key)
        return True

    async def merge(self, key, data):
        await asyncio.sleep(0)
        self._check("merge")
        self.rows[key].update(data)
        self.notify(key)

    async def subscribe(self, key, on_change, on_error):
        await asyncio.sleep(0)
        self._check("subscribe")
        entry = (on_change, on_error)
        self.subscribers.setdefault(key, []).append(entry)
        self.all_callbacks.setdefault(key, []).append(entry)

        async def unsubscribe():
            self.calls["unsubscribe"] += 1
            self.subscribers[key].remove(entry)

        return unsubscribe

    def notify(self, key):
        row = self.rows.get(key)
        for on_change, _ in list(self.subscribers.get(key, [])):
            self.delivered += 1
            on_change(key, dict(row) if row is not None else None)

    def push(self, key, row):
        """External write (another tab, an admin)."""
        self.rows[key] = row
        self.notify(key)

    def break_subscription(self, key, error):
        for _, on_error in list(self.subscribers.get(key, [])):
            on_error(key, error)


@pytest.fixture
def auth():
    return FakeAuthService()


@pytest.fixture
def store():
    return FakeProfileStore()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    from tendercost.models import user as _user_models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def db_session(engine):
    with Session(engine) as session:
        yield session
