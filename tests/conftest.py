from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SMS_SCHEDULER_ENABLED", "false")

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from smsgate.models import Base  # noqa: E402
from smsgate.models.domain import IncomingMessage, SmsQueue, SmsStatus  # noqa: E402
from smsgate.services.dispatch_engine import DispatchEngine, EngineConfig  # noqa: E402
from smsgate.services.queue_store import QueueStore  # noqa: E402
from tests.utils_fakes import BASE_TIME, FakeGateway  # noqa: E402


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return QueueStore(session_factory)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def engine(store, gateway):
    config = EngineConfig(messages_count_tick=100, max_attempts=0, max_sent_age=None)
    return DispatchEngine(store, gateway, config)


@pytest.fixture
def make_message(session_factory):
    def _make(text: str | None = "Vash dokument gotovyi") -> int:
        with session_factory() as db:
            message = IncomingMessage(short_message=text, short_message_translit=text)
            db.add(message)
            db.commit()
            return message.message_id

    return _make


@pytest.fixture
def add_sms(session_factory, make_message):
    def _add(
        count: int = 1,
        *,
        message_id: int | None = None,
        forced: bool = False,
        status: str = SmsStatus.WAITING.value,
        start: datetime = BASE_TIME,
        first_sent_at: datetime | None = None,
    ) -> list[int]:
        if message_id is None:
            message_id = make_message()
        ids = []
        with session_factory() as db:
            rows = []
            for i in range(count):
                row = SmsQueue(
                    message_id=message_id,
                    phone=f"38067{i:07d}",
                    forced=forced,
                    status=status,
                    attempts=0,
                    first_sent_at=first_sent_at,
                    created_at=start + timedelta(seconds=i),
                )
                db.add(row)
                rows.append(row)
            db.commit()
            ids = [row.sms_id for row in rows]
        return ids

    return _add
