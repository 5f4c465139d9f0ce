# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from mindbox_relay.api.v1.endpoints.queue import get_integration_dep
from mindbox_relay.core.settings import QueueSettings, Settings
from mindbox_relay.db.session import Base, make_session_factory
from mindbox_relay.main import app as fastapi_app
from mindbox_relay.models import QueueItem, QueueStatus
from mindbox_relay.services.client_registry import ClientRegistry
from mindbox_relay.services.integration import MindboxIntegration
from mindbox_relay.services.queue_service import QueueService
from mindbox_relay.services.queue_store import QueueStore

TEST_DB_URL = "sqlite://"
TEST_API_URL = "https://api.test.mindbox.ru"
TEST_ENDPOINT = "shop.Website"
TEST_SECRET = "s3cret-key"
RETRY_INTERVAL = 900
LOCK_SECONDS = 300
START_TIME = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


class FrozenClock:
    """Deterministic clock returning the same instant until advanced."""

    def __init__(self, start: datetime = START_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class MockMindboxApi:
    """Scripted stand-in for the Mindbox API behind ``httpx.MockTransport``.

    Responses are consumed in order; once the script is exhausted every
    request gets ``200`` with an empty body.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._script: list[httpx.Response | Exception] = []
        self.transport = httpx.MockTransport(self._handle)

    def reply(self, status_code: int = 200, *, json: Any = None, text: str | None = None) -> None:
        if json is not None:
            self._script.append(httpx.Response(status_code, json=json))
        else:
            self._script.append(httpx.Response(status_code, text=text or ""))

    def fail(self, exc: Exception) -> None:
        self._script.append(exc)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._script:
            return httpx.Response(200, text="")
        outcome = self._script.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return make_session_factory(engine)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def test_settings() -> Settings:
    """Provide settings pointing at the mock API."""
    return Settings(
        api_url=TEST_API_URL,
        endpoint_id=TEST_ENDPOINT,
        secret_keys={TEST_ENDPOINT: TEST_SECRET},
        timeout_seconds=5,
        queue=QueueSettings(
            retry_interval_seconds=RETRY_INTERVAL,
            batch_size=10,
            lock_seconds=LOCK_SECONDS,
            log_channel="mindbox.test",
        ),
    )


@pytest.fixture()
def mock_api() -> MockMindboxApi:
    return MockMindboxApi()


@pytest.fixture()
def registry(mock_api: MockMindboxApi) -> Iterator[ClientRegistry]:
    registry = ClientRegistry(http_transport=mock_api.transport)
    try:
        yield registry
    finally:
        registry.close()


@pytest.fixture()
def store(session_factory: sessionmaker[Session]) -> QueueStore:
    return QueueStore(session_factory)


@pytest.fixture()
def queue_service(
    test_settings: Settings,
    store: QueueStore,
    registry: ClientRegistry,
    clock: FrozenClock,
) -> QueueService:
    return QueueService(test_settings, store, registry, clock=clock)


@pytest.fixture()
def integration(
    test_settings: Settings,
    session_factory: sessionmaker[Session],
    mock_api: MockMindboxApi,
    clock: FrozenClock,
) -> Iterator[MindboxIntegration]:
    integration = MindboxIntegration.create(
        test_settings,
        session_factory=session_factory,
        http_transport=mock_api.transport,
        clock=clock,
    )
    try:
        yield integration
    finally:
        integration.close()


@pytest.fixture()
def make_queue_item(store: QueueStore, clock: FrozenClock) -> Callable[..., int]:
    """Insert a queue row with sensible defaults and return its id."""

    def _make(**overrides: Any) -> int:
        fields: dict[str, Any] = {
            "status": QueueStatus.RETRY,
            "next_run_at": clock.now - timedelta(seconds=1),
            "locked_until": None,
            "tries": 1,
            "mode": "sync",
            "operation": "Website.Test",
            "payload": '{"a":1}',
            "device_id": None,
            "authorization": False,
            "api_url": TEST_API_URL,
            "endpoint_id": TEST_ENDPOINT,
            "timeout": 5.0,
            "idempotency_token": "0b6c2f3e-7f0a-4c3e-9d52-1f7a0e9b8c11",
            "created_at": clock.now,
            "updated_at": clock.now,
        }
        fields.update(overrides)
        return store.add(fields)

    return _make


@pytest.fixture()
def fetch_items(db_session: Session) -> Callable[[], list[QueueItem]]:
    """Return a callable listing every queue row in id order."""

    def _fetch() -> list[QueueItem]:
        db_session.expire_all()
        return db_session.query(QueueItem).order_by(QueueItem.id).all()

    return _fetch


@pytest.fixture()
def app(integration: MindboxIntegration) -> Iterator[FastAPI]:
    fastapi_app.dependency_overrides[get_integration_dep] = lambda: integration
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
