"""Messaging webhook: inbound WhatsApp and SMS from residents (Twilio).

Handles:
- Channel detection from the ``whatsapp:`` address prefix
- Building lookup by business number, resident lookup by phone
- Localized reply to unknown numbers
- Conversation get-or-create, then the intake pipeline

A message that could not be persisted returns 500 so Twilio retries it.
Everything else returns 200 with the pipeline warnings in the body.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from blok_platform.agents.intake import InboundMessage, IntentClassifier
from blok_platform.agents.intake.fallback_templates import get_template
from blok_platform.domain.enums import Channel, Language, ResidentType
from blok_platform.domain.schemas import WebhookResponse
from blok_platform.errors import DeliveryFailure, PersistenceFailure
from blok_platform.infra.database import get_db
from blok_platform.services.conversation_service import ConversationService
from blok_platform.services.intake_repository import (
    IntakeRepository,
    building_config_from,
)
from blok_platform.services.message_intake_service import MessageIntakeService
from blok_platform.services.messaging_service import (
    MessagingService,
    detect_channel,
    extract_phone_number,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks/messaging", tags=["webhooks"])

REQUIRED_FIELDS = ("From", "To", "Body")


def get_messaging_service() -> MessagingService:
    return MessagingService()


def get_intent_classifier() -> IntentClassifier:
    return IntentClassifier()


def _language(*candidates) -> Language:
    for value in candidates:
        try:
            return Language(value)
        except ValueError:
            continue
    return Language.ES


@router.get("")
async def verify_webhook():
    """Provider verification ping."""
    return {"status": "ok"}


@router.post("", response_model=WebhookResponse)
async def messaging_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    messaging: MessagingService = Depends(get_messaging_service),
    classifier: IntentClassifier = Depends(get_intent_classifier),
):
    """Handle one inbound resident message."""
    form = await request.form()
    payload = {key: str(form.get(key) or "").strip() for key in (*REQUIRED_FIELDS, "MessageSid")}

    # ── 1. Validate ───────────────────────────────────────────────────
    missing = [key for key in REQUIRED_FIELDS if not payload[key]]
    if missing:
        logger.warning("[Messaging] Webhook missing fields: %s", missing)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing required fields: {', '.join(missing)}",
        )

    # ── 2. Channel and numbers ────────────────────────────────────────
    channel = detect_channel(payload["From"])
    resident_phone = extract_phone_number(payload["From"])
    building_phone = extract_phone_number(payload["To"])
    label = channel.value.upper()
    logger.info("[%s] Inbound message from %s to %s", label, resident_phone, building_phone)

    repository = IntakeRepository(db)

    # ── 3. Building ───────────────────────────────────────────────────
    building = await repository.find_building_by_number(building_phone)
    if building is None:
        logger.warning("[%s] No building for number %s", label, building_phone)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Building not found",
        )
    config = building_config_from(building)

    # ── 4. Resident ───────────────────────────────────────────────────
    resident = await repository.find_resident(building.id, resident_phone)
    if resident is None:
        logger.info("[%s] Unknown resident %s in building %s", label, resident_phone, building.id)
        reply = get_template(
            "unknown_resident",
            config.preferred_language,
            building_name=config.name,
        )
        try:
            await messaging.send(
                to=resident_phone,
                from_=building_phone,
                body=reply,
                channel=channel,
            )
        except DeliveryFailure as exc:
            logger.warning("[%s] Unknown-resident reply not delivered: %s", label, exc)
        return WebhookResponse(action="unknown_resident", channel=channel.value)

    opted_in = resident.opted_in_sms if channel == Channel.SMS else resident.opted_in_whatsapp
    if not opted_in:
        logger.warning(
            "[%s] Resident %s has not opted in to %s, processing anyway",
            label, resident.id, channel.value,
        )

    # ── 5. Conversation + pipeline ────────────────────────────────────
    conversation = await ConversationService(db).get_or_create(building.id, resident.id, channel)
    unit = await repository.get_unit_occupancy(resident.unit_id)

    message = InboundMessage(
        text=payload["Body"],
        sender_type=ResidentType(resident.type) if resident.type in ("owner", "renter") else ResidentType.OWNER,
        language=_language(resident.preferred_language, config.preferred_language.value),
        building_id=building.id,
        resident_id=resident.id,
        conversation_id=conversation.id,
        channel=channel,
        from_address=resident_phone,
        to_address=building_phone,
        external_id=payload["MessageSid"] or None,
        unit_id=resident.unit_id,
        resident_name=resident.full_name,
        unit_number=unit.unit_number,
    )

    service = MessageIntakeService(db, classifier=classifier, messaging=messaging)
    try:
        outcome = await service.process(message, config, unit)
    except PersistenceFailure as exc:
        logger.error("[%s] Message not persisted, asking provider to retry: %s", label, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Message could not be recorded",
        )

    return WebhookResponse(
        ok=outcome.report.success,
        channel=channel.value,
        conversation_id=conversation.id,
        intent=outcome.analysis.intent.value,
        priority=outcome.analysis.priority.value,
        requires_human_review=outcome.decision.requires_human_review,
        warnings=outcome.report.warnings,
    )
