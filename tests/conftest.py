"""Shared test infrastructure for the Blok Platform test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- messaging_service_mock: mock MessagingService capturing outbound messages
- twilio_webhook_payload: factory for Twilio inbound form fields
- make_building / make_unit / make_resident / make_knowledge_entry: row factories
- classifier_returning: factory for a stub IntentClassifier
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from blok_platform.infra.database import Base

import blok_platform.domain.models  # noqa: F401

from blok_platform.agents.intake.contracts import AnalysisResult
from blok_platform.domain.models import (
    Building,
    BuildingAdmin,
    KnowledgeEntry,
    Resident,
    Unit,
)


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Messaging service mock
# ---------------------------------------------------------------------------

@pytest.fixture
def messaging_service_mock():
    """Mock MessagingService that captures outbound messages.

    Returns a MagicMock whose ``send`` appends (to, from_, body, channel)
    tuples to a .sent list and returns a fake SID.
    """
    mock = MagicMock()
    mock.sent = []

    async def _capture_send(to, from_, body, channel="whatsapp"):
        mock.sent.append((to, from_, body, getattr(channel, "value", channel)))
        return f"SM{len(mock.sent):032d}"

    mock.send = AsyncMock(side_effect=_capture_send)
    return mock


# ---------------------------------------------------------------------------
# Twilio webhook payload factory
# ---------------------------------------------------------------------------

@pytest.fixture
def twilio_webhook_payload():
    """Factory that builds Twilio inbound message form fields.

    Usage:
        data = twilio_webhook_payload("+17875550101", "Hay una fuga en la cocina")
    """
    def _factory(
        from_number: str,
        body: str,
        to_number: str = "+17875550000",
        channel: str = "whatsapp",
        message_sid: str | None = None,
    ) -> dict:
        prefix = "whatsapp:" if channel == "whatsapp" else ""
        return {
            "From": f"{prefix}{from_number}",
            "To": f"{prefix}{to_number}",
            "Body": body,
            "MessageSid": message_sid or f"SM{uuid.uuid4().hex}",
        }

    return _factory


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_building(db_session):
    """Factory that creates a Building row.

    Usage:
        building = await make_building(whatsapp_business_number="+17875550000")
    """
    async def _factory(
        name: str = "Condominio Vista Mar",
        whatsapp_business_number: str | None = "+17875550000",
        sms_number: str | None = "+17875559999",
        preferred_language: str = "es",
        auto_reply_enabled: bool = True,
        admin_email: str | None = None,
    ) -> Building:
        building = Building(
            id=str(uuid.uuid4()),
            name=name,
            city="San Juan",
            preferred_language=preferred_language,
            whatsapp_business_number=whatsapp_business_number,
            sms_number=sms_number,
            auto_reply_enabled=auto_reply_enabled,
        )
        db_session.add(building)
        if admin_email:
            db_session.add(BuildingAdmin(
                id=str(uuid.uuid4()),
                building_id=building.id,
                full_name="Admin Test",
                notification_email=admin_email,
                notification_preferences={"emergency": True, "high": True},
            ))
        await db_session.flush()
        return building

    return _factory


@pytest.fixture
def make_unit(db_session):
    """Factory that creates a Unit row (occupants are linked by make_resident)."""
    async def _factory(building: Building, unit_number: str = "4B") -> Unit:
        unit = Unit(
            id=str(uuid.uuid4()),
            building_id=building.id,
            unit_number=unit_number,
        )
        db_session.add(unit)
        await db_session.flush()
        return unit

    return _factory


@pytest.fixture
def make_resident(db_session):
    """Factory that creates a Resident and links it to its unit.

    Usage:
        owner = await make_resident(building, unit, type="owner", phone="+17875550101")
    """
    async def _factory(
        building: Building,
        unit: Unit | None = None,
        type: str = "owner",
        first_name: str = "María",
        last_name: str = "Rivera",
        phone: str = "+17875550101",
        whatsapp_number: str | None = None,
        preferred_language: str = "es",
        is_active: bool = True,
        opted_in_whatsapp: bool = True,
    ) -> Resident:
        resident = Resident(
            id=str(uuid.uuid4()),
            building_id=building.id,
            unit_id=unit.id if unit else None,
            type=type,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            whatsapp_number=whatsapp_number,
            preferred_language=preferred_language,
            is_active=is_active,
            opted_in_whatsapp=opted_in_whatsapp,
            opted_in_sms=True,
        )
        db_session.add(resident)
        if unit is not None:
            if type == "owner":
                unit.owner_id = resident.id
            else:
                unit.current_renter_id = resident.id
        await db_session.flush()
        return resident

    return _factory


@pytest.fixture
def make_knowledge_entry(db_session):
    """Factory that creates a KnowledgeEntry row."""
    async def _factory(
        building: Building,
        question: str,
        answer: str,
        keywords: list[str] | None = None,
        priority: int = 0,
        active: bool = True,
        age_days: int = 0,
    ) -> KnowledgeEntry:
        entry = KnowledgeEntry(
            id=str(uuid.uuid4()),
            building_id=building.id,
            category="general",
            question=question,
            answer=answer,
            keywords=keywords or [],
            priority=priority,
            active=active,
            created_at=datetime.now(timezone.utc) - timedelta(days=age_days),
        )
        db_session.add(entry)
        await db_session.flush()
        return entry

    return _factory


# ---------------------------------------------------------------------------
# Classifier stub
# ---------------------------------------------------------------------------

@pytest.fixture
def classifier_returning():
    """Factory for a stub IntentClassifier whose classify returns ``analysis``.

    Usage:
        classifier = classifier_returning(AnalysisResult(intent=MessageIntent.EMERGENCY))
    """
    def _factory(analysis: AnalysisResult | None = None):
        stub = MagicMock()
        stub.classify = AsyncMock(return_value=analysis or AnalysisResult())
        return stub

    return _factory
