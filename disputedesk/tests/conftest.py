import uuid
from collections.abc import AsyncGenerator
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from disputedesk.common.enums import ActorRole, DisputeType
from disputedesk.common.security import create_access_token
from disputedesk.core.disputes.schemas import Actor
from disputedesk.db.base import Base
from disputedesk.db.models import *  # noqa: F401,F403 - ensure all models loaded


# Make JSONB render as JSON for SQLite
@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()


@pytest.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(db_session):
    from disputedesk.api.deps import get_db
    from disputedesk.main import app

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------- Actors ----------


@pytest.fixture
def operator():
    return Actor(id=uuid.uuid4(), role=ActorRole.OPERATOR)


@pytest.fixture
def other_operator():
    return Actor(id=uuid.uuid4(), role=ActorRole.OPERATOR)


@pytest.fixture
def customer():
    return Actor(id=uuid.uuid4(), role=ActorRole.CUSTOMER)


@pytest.fixture
def provider():
    return Actor(id=uuid.uuid4(), role=ActorRole.PROVIDER)


def headers_for(actor: Actor) -> dict[str, str]:
    token = create_access_token({"sub": str(actor.id), "role": actor.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers_for():
    return headers_for


@pytest.fixture
def operator_headers(operator):
    return headers_for(operator)


@pytest.fixture
def other_operator_headers(other_operator):
    return headers_for(other_operator)


@pytest.fixture
def customer_headers(customer):
    return headers_for(customer)


@pytest.fixture
def provider_headers(provider):
    return headers_for(provider)


@pytest.fixture
def dispute_payload(provider):
    def _payload(**overrides):
        payload = {
            "booking_id": str(uuid.uuid4()),
            "filed_against_id": str(provider.id),
            "dispute_type": DisputeType.NO_SHOW.value,
            "priority": 3,
            "title": "Cleaner never arrived",
            "description": "Waited two hours past the booked slot and nobody showed up",
            "evidence_urls": ["https://files.example.com/chat-log.png"],
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture
async def open_dispute(db_session, customer, provider):
    from disputedesk.core.disputes.service import DisputeService

    dispute = await DisputeService().file_dispute(
        customer,
        db_session,
        booking_id=uuid.uuid4(),
        filed_against_id=provider.id,
        dispute_type=DisputeType.NO_SHOW,
        priority=3,
        title="Cleaner never arrived",
        description="Waited two hours past the booked slot",
    )
    await db_session.commit()
    return dispute


@pytest.fixture(autouse=True)
def mock_celery_tasks():
    """Mock all Celery task.delay() calls to prevent actual task execution in tests."""
    with (
        patch("disputedesk.tasks.settlement_tasks.submit_settlement_instruction.delay") as settlement,
        patch("disputedesk.tasks.notification_tasks.dispatch_dispute_event.delay") as notification,
    ):
        yield SimpleNamespace(settlement=settlement, notification=notification)
