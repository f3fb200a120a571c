"""SQLAlchemy ORM models for the Blok platform.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.sql import func

from blok_platform.infra.database import Base


# ---------------------------------------------------------------------------
# Buildings
# ---------------------------------------------------------------------------


class Building(Base):
    """A condominium building (tenant) with its business messaging numbers."""

    __tablename__ = "buildings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    preferred_language = Column(String(2), default="es")
    whatsapp_business_number = Column(String(50), nullable=True, index=True)
    sms_number = Column(String(50), nullable=True, index=True)
    auto_reply_enabled = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class BuildingAdmin(Base):
    """Person who administers a building and receives escalations."""

    __tablename__ = "building_admins"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    building_id = Column(String(36), ForeignKey("buildings.id"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    role = Column(String(30), default="admin")
    notification_email = Column(String(255), nullable=True)
    # {"emergency": bool, "high": bool, "maintenance": bool, "general": bool}
    notification_preferences = Column(JSON, default=dict)
    language = Column(String(2), default="es")
    created_at = Column(DateTime, default=func.now())


class Unit(Base):
    """A unit inside a building, with its current owner and renter."""

    __tablename__ = "units"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    building_id = Column(String(36), ForeignKey("buildings.id"), nullable=False, index=True)
    unit_number = Column(String(20), nullable=False)
    # Plain columns: residents.unit_id already points back at units
    owner_id = Column(String(36), nullable=True)
    current_renter_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=func.now())


class Resident(Base):
    """Owner or renter living in (or owning) a unit."""

    __tablename__ = "residents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    building_id = Column(String(36), ForeignKey("buildings.id"), nullable=False, index=True)
    unit_id = Column(String(36), ForeignKey("units.id"), nullable=True)
    type = Column(String(10), nullable=False, default="owner")  # owner, renter
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True, index=True)
    whatsapp_number = Column(String(50), nullable=True, index=True)
    preferred_language = Column(String(2), default="es")
    opted_in_whatsapp = Column(Boolean, default=True)
    opted_in_sms = Column(Boolean, default=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


class Conversation(Base):
    """Thread between one resident and the building over one channel."""

    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    building_id = Column(String(36), ForeignKey("buildings.id"), nullable=False, index=True)
    resident_id = Column(String(36), ForeignKey("residents.id"), nullable=False, index=True)
    channel = Column(String(20), nullable=False, default="whatsapp")
    status = Column(String(20), nullable=False, default="active")  # active, resolved, archived
    needs_review = Column(Boolean, default=False)
    last_message_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class Message(Base):
    """Single message stored in a conversation."""

    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=False, index=True)
    sender_type = Column(String(20), nullable=False)  # resident, ai, admin
    sender_id = Column(String(36), nullable=True)
    content = Column(Text, nullable=False)
    channel = Column(String(20), nullable=False, default="whatsapp")
    intent = Column(String(40), nullable=True)
    priority = Column(String(20), nullable=True)
    routed_to = Column(String(20), nullable=True)
    requires_human_review = Column(Boolean, default=False)
    ai_response = Column(Text, nullable=True)
    external_id = Column(String(64), nullable=True)
    metadata_json = Column(JSON, default=dict)
    created_at = Column(DateTime, default=func.now())


class MaintenanceRequest(Base):
    """Maintenance ticket, usually extracted from a resident message."""

    __tablename__ = "maintenance_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    building_id = Column(String(36), ForeignKey("buildings.id"), nullable=False, index=True)
    unit_id = Column(String(36), ForeignKey("units.id"), nullable=True)
    resident_id = Column(String(36), ForeignKey("residents.id"), nullable=False)
    conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(50), default="general")
    location = Column(String(255), nullable=True)
    priority = Column(String(20), default="medium")
    status = Column(String(20), default="open")  # open, in_progress, resolved, closed
    extracted_by_ai = Column(Boolean, default=False)
    reported_at = Column(DateTime, default=func.now())
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


# ---------------------------------------------------------------------------
# Knowledge base
# ---------------------------------------------------------------------------


class KnowledgeEntry(Base):
    """Admin-curated answer to a common resident question."""

    __tablename__ = "knowledge_base"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    building_id = Column(String(36), ForeignKey("buildings.id"), nullable=False, index=True)
    category = Column(String(50), default="general")
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    keywords = Column(JSON, default=list)
    priority = Column(Integer, default=0)
    active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


# ---------------------------------------------------------------------------
# Notifications / audit
# ---------------------------------------------------------------------------


class Notification(Base):
    """Dashboard alert for building admins."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    building_id = Column(String(36), ForeignKey("buildings.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False, default="new_message")
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    link = Column(String(500), nullable=True)
    read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=func.now())


class AgentLog(Base):
    """Activity record for every LLM call an agent makes."""

    __tablename__ = "agent_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    agent_name = Column(String(50), nullable=False)
    action = Column(String(50), nullable=False)
    input_summary = Column(Text)
    output_summary = Column(Text)
    tokens_used = Column(Integer, default=0)
    latency_ms = Column(Integer, default=0)
    related_building_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=func.now())
