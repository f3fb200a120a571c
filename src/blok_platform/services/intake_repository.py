"""Persistence collaborator for the message intake pipeline.

Wraps every database read/write the pipeline needs. Writes commit on
their own and roll back on failure, raising the intake error that the
dispatcher knows how to handle.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from blok_platform.agents.intake.contracts import (
    AnalysisResult,
    BuildingConfig,
    InboundMessage,
    OccupantContact,
    UnitOccupancy,
)
from blok_platform.app.config import get_settings
from blok_platform.domain.enums import (
    Language,
    ResidentType,
    SenderType,
    TicketStatus,
)
from blok_platform.domain.models import (
    Building,
    MaintenanceRequest,
    Message,
    Resident,
    Unit,
)
from blok_platform.errors import PersistenceFailure, TicketCreationFailure
from blok_platform.infra.database import commit_with_timeout

logger = logging.getLogger(__name__)

TICKET_TITLE_MAX = 80


def _language(value) -> Language:
    try:
        return Language(value or Language.ES.value)
    except ValueError:
        return Language.ES


def number_variants(number: str) -> list[str]:
    """Forms a stored phone number may take: as given, with and without '+'."""
    raw = (number or "").strip()
    digits = raw.lstrip("+")
    variants = [raw]
    for candidate in (digits, f"+{digits}"):
        if candidate and candidate not in variants:
            variants.append(candidate)
    return variants


def building_config_from(building: Building) -> BuildingConfig:
    return BuildingConfig(
        building_id=building.id,
        name=building.name or "",
        preferred_language=_language(building.preferred_language),
        whatsapp_number=building.whatsapp_business_number,
        sms_number=building.sms_number,
        auto_reply_enabled=True if building.auto_reply_enabled is None else building.auto_reply_enabled,
    )


def contact_from(resident: Resident) -> OccupantContact:
    return OccupantContact(
        resident_id=resident.id,
        name=resident.full_name,
        phone=resident.phone,
        whatsapp_number=resident.whatsapp_number,
        opted_in_whatsapp=bool(resident.opted_in_whatsapp),
        opted_in_sms=bool(resident.opted_in_sms),
        preferred_language=_language(resident.preferred_language),
    )


def ticket_title(analysis: AnalysisResult, text: str) -> str:
    category = analysis.extracted_data.get("maintenanceCategory")
    first_line = (text or "").strip().splitlines()[0] if (text or "").strip() else ""
    title = f"{category}: {first_line}" if category else first_line
    if len(title) > TICKET_TITLE_MAX:
        title = title[: TICKET_TITLE_MAX - 3].rstrip() + "..."
    return title or "Maintenance request"


class IntakeRepository:
    """Database access used by the intake pipeline."""

    def __init__(self, db: AsyncSession, timeout_seconds: float | None = None):
        self.db = db
        self.timeout_seconds = timeout_seconds or get_settings().persistence_timeout_seconds

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_building(self, building_id: str) -> Building | None:
        result = await self.db.execute(select(Building).where(Building.id == building_id))
        return result.scalar_one_or_none()

    async def get_building_config(self, building_id: str) -> BuildingConfig | None:
        building = await self.get_building(building_id)
        return building_config_from(building) if building else None

    async def find_building_by_number(self, number: str) -> Building | None:
        """Building whose WhatsApp or SMS business number is ``number``."""
        variants = number_variants(number)
        result = await self.db.execute(
            select(Building)
            .where(
                or_(
                    Building.whatsapp_business_number.in_(variants),
                    Building.sms_number.in_(variants),
                )
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_resident(self, building_id: str, phone: str) -> Resident | None:
        """Active resident of the building reachable at ``phone``."""
        variants = number_variants(phone)
        result = await self.db.execute(
            select(Resident)
            .where(
                Resident.building_id == building_id,
                Resident.is_active.is_(True),
                or_(
                    Resident.phone.in_(variants),
                    Resident.whatsapp_number.in_(variants),
                ),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_unit(self, unit_id: str) -> Unit | None:
        result = await self.db.execute(select(Unit).where(Unit.id == unit_id))
        return result.scalar_one_or_none()

    async def get_unit_occupancy(self, unit_id: str | None) -> UnitOccupancy:
        """Who owns and who currently rents the unit.

        A renter only counts while their resident record is active.
        """
        if not unit_id:
            return UnitOccupancy()

        unit = await self.get_unit(unit_id)
        if unit is None:
            logger.warning("Unit %s not found, treating as unoccupied", unit_id)
            return UnitOccupancy(unit_id=unit_id)

        owner = await self._get_resident(unit.owner_id)
        if owner is None:
            # Fall back to the owner record that points at this unit
            owner = await self._first_resident_of(unit.id, ResidentType.OWNER)

        renter = await self._get_resident(unit.current_renter_id)
        if renter is not None and not renter.is_active:
            renter = None

        return UnitOccupancy(
            unit_id=unit.id,
            unit_number=unit.unit_number,
            owner=contact_from(owner) if owner else None,
            renter=contact_from(renter) if renter else None,
        )

    async def _get_resident(self, resident_id: str | None) -> Resident | None:
        if not resident_id:
            return None
        result = await self.db.execute(select(Resident).where(Resident.id == resident_id))
        return result.scalar_one_or_none()

    async def _first_resident_of(self, unit_id: str, type_: ResidentType) -> Resident | None:
        result = await self.db.execute(
            select(Resident)
            .where(
                Resident.unit_id == unit_id,
                Resident.type == type_.value,
                Resident.is_active.is_(True),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_message(
        self,
        message: InboundMessage,
        analysis: AnalysisResult,
        requires_human_review: bool,
    ) -> Message:
        """Record the inbound resident message with its analysis.

        Raises:
            PersistenceFailure: on any database error or timeout.
        """
        row = Message(
            id=str(uuid.uuid4()),
            conversation_id=message.conversation_id,
            sender_type=SenderType.RESIDENT.value,
            sender_id=message.resident_id,
            content=message.text,
            channel=message.channel.value,
            intent=analysis.intent.value,
            priority=analysis.priority.value,
            routed_to=analysis.route_to.value,
            requires_human_review=requires_human_review,
            ai_response=analysis.suggested_response or None,
            external_id=message.external_id,
            metadata_json={
                "from": message.from_address,
                "to": message.to_address,
                "extracted_data": dict(analysis.extracted_data),
                "classifier_fallback": analysis.is_fallback,
            },
            created_at=datetime.now(timezone.utc),
        )
        try:
            await self._commit_with_timeout(row)
        except Exception as exc:
            logger.error(
                "Failed to persist message for conversation %s: %s",
                message.conversation_id, exc,
            )
            raise PersistenceFailure(f"message not recorded: {exc}") from exc

        logger.info("Stored resident message %s (intent=%s)", row.id, row.intent)
        return row

    async def save_reply(
        self,
        conversation_id: str,
        text: str,
        channel: str,
        external_id: str | None = None,
    ) -> Message:
        """Record an automated reply sent to the resident.

        Raises:
            PersistenceFailure: on any database error or timeout.
        """
        row = Message(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            sender_type=SenderType.AI.value,
            content=text,
            channel=channel,
            external_id=external_id,
            created_at=datetime.now(timezone.utc),
        )
        try:
            await self._commit_with_timeout(row)
        except Exception as exc:
            logger.error("Failed to record reply in %s: %s", conversation_id, exc)
            raise PersistenceFailure(f"reply not recorded: {exc}") from exc
        return row

    async def create_ticket(
        self,
        message: InboundMessage,
        analysis: AnalysisResult,
    ) -> MaintenanceRequest:
        """Open a maintenance ticket for a persisted resident message.

        Raises:
            TicketCreationFailure: on any database error or timeout.
        """
        now = datetime.now(timezone.utc)
        ticket = MaintenanceRequest(
            id=str(uuid.uuid4()),
            building_id=message.building_id,
            unit_id=message.unit_id,
            resident_id=message.resident_id,
            conversation_id=message.conversation_id,
            title=ticket_title(analysis, message.text),
            description=message.text,
            category=analysis.extracted_data.get("maintenanceCategory") or "general",
            location=analysis.extracted_data.get("location") or None,
            priority=analysis.priority.value,
            status=TicketStatus.OPEN.value,
            extracted_by_ai=not analysis.is_fallback,
            reported_at=now,
            created_at=now,
            updated_at=now,
        )
        try:
            await self._commit_with_timeout(ticket)
        except Exception as exc:
            logger.error(
                "Failed to create maintenance request for conversation %s: %s",
                message.conversation_id, exc,
            )
            raise TicketCreationFailure(str(exc)) from exc

        logger.info(
            "Maintenance request %s created (category=%s, priority=%s)",
            ticket.id, ticket.category, ticket.priority,
        )
        return ticket

    async def _commit_with_timeout(self, row) -> None:
        self.db.add(row)
        await commit_with_timeout(self.db, self.timeout_seconds)
