# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from typing import Any

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["USE_TEST_DATABASE"] = "false"

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from athlinked.core.security import create_access_token
from athlinked.db.session import Base, SessionLocal
from athlinked.db.session import engine as app_engine
from athlinked.main import app as fastapi_app
from athlinked.services.hub import MessagingHub
from athlinked.services.message_store import MessageStore

ALICE = "user-alice"
BOB = "user-bob"
CAROL = "user-carol"


class FakeTransport:
    """Records every frame; can be told to fail like a socket mid-teardown."""

    def __init__(self, *, fail: bool = False) -> None:
        self.frames: list[dict[str, Any]] = []
        self.fail = fail

    async def send(self, frame: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionResetError("socket closed")
        self.frames.append(frame)

    @property
    def events(self) -> list[str]:
        return [frame["event"] for frame in self.frames]

    def of(self, event: str) -> list[dict[str, Any]]:
        return [frame["data"] for frame in self.frames if frame["event"] == event]

    def clear(self) -> None:
        self.frames.clear()


@pytest.fixture()
def transport_factory() -> type[FakeTransport]:
    return FakeTransport


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    Base.metadata.create_all(bind=app_engine)
    try:
        yield app_engine
    finally:
        Base.metadata.drop_all(bind=app_engine)


@pytest.fixture(autouse=True)
def clean_database(engine: Engine) -> Iterator[None]:
    try:
        yield
    finally:
        # Ensure each test sees a clean database even though the store commits.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def store() -> MessageStore:
    return MessageStore(SessionLocal)


@pytest.fixture()
def hub() -> MessagingHub:
    return MessagingHub(SessionLocal)


@pytest.fixture()
def connect(hub: MessagingHub) -> Callable[..., Any]:
    """Open a fake connection on ``hub`` and announce it as ``user_id``."""

    async def _connect(user_id: str | None = None, *, fail: bool = False) -> tuple[str, FakeTransport]:
        transport = FakeTransport(fail=fail)
        connection_id = hub.connect(transport)
        if user_id is not None:
            await hub.dispatch(connection_id, {"event": "userId", "data": {"userId": user_id}})
        return connection_id, transport

    return _connect


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


def bearer(user_id: str) -> dict[str, str]:
    """Return authorization headers for ``user_id``."""
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture()
def headers_for() -> Callable[[str], dict[str, str]]:
    return bearer


@pytest.fixture()
def alice_headers() -> dict[str, str]:
    return bearer(ALICE)


@pytest.fixture()
def bob_headers() -> dict[str, str]:
    return bearer(BOB)
