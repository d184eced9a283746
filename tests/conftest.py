import json
from datetime import datetime, timedelta, UTC

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from billflow.client import QueueClient
from billflow.notifications.delivery import ReminderDelivery
from billflow.notifications.messaging import LineMessagingClient
from billflow.notifications.store import BillType, SqlBillStore
from billflow.scheduler import NotificationScheduler
from billflow.server.worker import Worker
from billflow.storage.memory_storage import MemoryStorage

START = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeLineApi:
    """Stands in for the LINE push endpoint behind an httpx.MockTransport."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={})

    @property
    def bodies(self):
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_storage(clock):
    return MemoryStorage(clock=clock)


@pytest.fixture
def client(memory_storage, clock):
    return QueueClient(memory_storage, clock=clock)


@pytest.fixture
def scheduler(client, clock):
    return NotificationScheduler(client, clock=clock)


@pytest.fixture
def bill_store():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return SqlBillStore(engine=engine, create_tables=True)


@pytest.fixture
def line_api():
    return FakeLineApi()


@pytest.fixture
def messaging(line_api):
    http_client = httpx.Client(transport=httpx.MockTransport(line_api))
    return LineMessagingClient("test-token", http_client=http_client)


@pytest.fixture
def delivery(bill_store, messaging, clock):
    return ReminderDelivery(bill_store, messaging, liff_id="liff-123", clock=clock)


@pytest.fixture
def worker(memory_storage, delivery, clock):
    return Worker(memory_storage, delivery, poll_timeout=0, clock=clock)


@pytest.fixture
def member(bill_store):
    return bill_store.add_user("Nok", line_user_id="U1234567890")


@pytest.fixture
def task(bill_store, member, clock):
    return bill_store.add_bill_with_task(
        member.id,
        vendor="Metro Electric",
        amount="1234.50",
        due_date=clock() + timedelta(hours=48),
        bill_type=BillType.ELECTRIC,
    )
