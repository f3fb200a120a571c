"""Admin notifications for inbound resident messages.

Every stored message gets a dashboard notification. Messages that need a
human also flag the conversation for review and, when urgent, email the
building admins.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from blok_platform.agents.intake.contracts import (
    AnalysisResult,
    BuildingConfig,
    InboundMessage,
)
from blok_platform.agents.intake.fallback_templates import get_template
from blok_platform.domain.enums import Channel, NotificationType, Priority
from blok_platform.domain.models import BuildingAdmin, Notification
from blok_platform.infra.database import commit_with_timeout
from blok_platform.services import email_service
from blok_platform.services.conversation_service import ConversationService

logger = logging.getLogger(__name__)

# Priorities that also trigger an email
EMAIL_PRIORITIES = {Priority.HIGH, Priority.EMERGENCY}

DEFAULT_PREFERENCES = {
    "emergency": True,
    "high": True,
    "maintenance": True,
    "general": False,
}

PREVIEW_LENGTH = 100

CHANNEL_LABELS = {
    Channel.WHATSAPP: "WhatsApp",
    Channel.SMS: "SMS",
    Channel.EMAIL: "Email",
}


def wants_email(admin: BuildingAdmin, priority: Priority) -> bool:
    """Whether the admin's preferences allow an email for ``priority``."""
    if priority not in EMAIL_PRIORITIES or not admin.notification_email:
        return False
    prefs = {**DEFAULT_PREFERENCES, **(admin.notification_preferences or {})}
    return bool(prefs.get(priority.value))


def notification_type_for(analysis: AnalysisResult) -> NotificationType:
    if analysis.priority == Priority.EMERGENCY:
        return NotificationType.EMERGENCY
    if analysis.intent.value == NotificationType.MAINTENANCE_REQUEST.value:
        return NotificationType.MAINTENANCE_REQUEST
    return NotificationType.NEW_MESSAGE


class AdminNotificationService:
    """Dashboard notifications, review flags and admin emails."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.conversations = ConversationService(db)

    async def notify_human(
        self,
        message: InboundMessage,
        analysis: AnalysisResult,
        building: BuildingConfig,
    ) -> int:
        """Mark the conversation for review, add a dashboard notification
        and email admins for urgent messages.

        Returns:
            Number of admin emails sent.
        """
        await self.conversations.mark_needs_review(message.conversation_id)
        await self._add_notification(
            message,
            building,
            notification_type_for(analysis),
            get_template(
                "review_title",
                building.preferred_language,
                priority=analysis.priority.value,
            ),
        )
        logger.info(
            "[Notifications] Review notification created for conversation %s",
            message.conversation_id,
        )

        if analysis.priority not in EMAIL_PRIORITIES:
            return 0
        return await self._email_admins(message, analysis, building)

    async def record_new_message(
        self,
        message: InboundMessage,
        building: BuildingConfig,
    ) -> None:
        """Add a dashboard notification for a message that needs no review."""
        await self._add_notification(
            message,
            building,
            NotificationType.NEW_MESSAGE,
            get_template(
                "new_message_title",
                building.preferred_language,
                channel=CHANNEL_LABELS.get(message.channel, message.channel.value),
            ),
        )
        logger.info(
            "[Notifications] New message notification created for conversation %s",
            message.conversation_id,
        )

    async def _add_notification(
        self,
        message: InboundMessage,
        building: BuildingConfig,
        type_: NotificationType,
        title: str,
    ) -> None:
        preview = message.text[:PREVIEW_LENGTH]
        sender = message.resident_name or message.from_address
        self.db.add(Notification(
            id=str(uuid.uuid4()),
            building_id=building.building_id,
            type=type_.value,
            title=title,
            message=f"{sender}: {preview}" if sender else preview,
            link=f"/dashboard/conversations?conversation={message.conversation_id}",
            read=False,
            created_at=datetime.now(timezone.utc),
        ))
        await commit_with_timeout(self.db, self.conversations.timeout_seconds)

    async def _email_admins(
        self,
        message: InboundMessage,
        analysis: AnalysisResult,
        building: BuildingConfig,
    ) -> int:
        result = await self.db.execute(
            select(BuildingAdmin).where(BuildingAdmin.building_id == building.building_id)
        )
        admins = list(result.scalars().all())

        sent = 0
        for admin in admins:
            if not wants_email(admin, analysis.priority):
                continue
            ok = await email_service.send_admin_alert(
                admin.notification_email,
                {
                    "building_name": building.name,
                    "resident_name": message.resident_name,
                    "unit_number": message.unit_number,
                    "intent": analysis.intent.value,
                    "priority": analysis.priority.value,
                    "message": message.text,
                    "conversation_id": message.conversation_id,
                },
                language=admin.language or building.preferred_language.value,
            )
            if ok:
                sent += 1

        logger.info(
            "[Notifications] %d/%d admins emailed for %s message in building %s",
            sent, len(admins), analysis.priority.value, building.building_id,
        )
        return sent
