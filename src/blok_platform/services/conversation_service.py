"""Resident conversation management.

A conversation is one resident talking to one building over one channel.
``get_or_create`` is the only way conversations come into existence.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from blok_platform.app.config import get_settings
from blok_platform.domain.enums import Channel, ConversationStatus
from blok_platform.domain.models import Conversation
from blok_platform.infra.database import commit_with_timeout

logger = logging.getLogger(__name__)


class ConversationService:
    """Manages resident conversations."""

    def __init__(self, db: AsyncSession, timeout_seconds: float | None = None):
        self.db = db
        self.timeout_seconds = timeout_seconds or get_settings().persistence_timeout_seconds

    async def get_or_create(
        self,
        building_id: str,
        resident_id: str,
        channel: Channel | str = Channel.WHATSAPP,
    ) -> Conversation:
        """Find the resident's active conversation on ``channel`` or create one.

        Args:
            building_id: Building UUID.
            resident_id: Resident UUID.
            channel: whatsapp, sms or email.

        Returns:
            The active Conversation record.
        """
        channel = Channel(channel)
        result = await self.db.execute(
            select(Conversation)
            .where(
                Conversation.building_id == building_id,
                Conversation.resident_id == resident_id,
                Conversation.channel == channel.value,
                Conversation.status == ConversationStatus.ACTIVE.value,
            )
            .order_by(Conversation.created_at.desc())
            .limit(1)
        )
        conversation = result.scalar_one_or_none()

        if conversation:
            logger.debug(
                "Found active conversation %s for resident %s",
                conversation.id, resident_id,
            )
            return conversation

        now = datetime.now(timezone.utc)
        conversation = Conversation(
            id=str(uuid.uuid4()),
            building_id=building_id,
            resident_id=resident_id,
            channel=channel.value,
            status=ConversationStatus.ACTIVE.value,
            needs_review=False,
            last_message_at=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(conversation)
        await commit_with_timeout(self.db, self.timeout_seconds)
        logger.info(
            "Created new %s conversation %s for resident %s",
            channel.value, conversation.id, resident_id,
        )
        return conversation

    async def get(self, conversation_id: str) -> Conversation | None:
        result = await self.db.execute(
            select(Conversation).where(Conversation.id == conversation_id)
        )
        return result.scalar_one_or_none()

    async def touch(self, conversation_id: str) -> None:
        """Set ``last_message_at`` to now. Status and id are left alone.

        Raises:
            LookupError: if the conversation does not exist.
        """
        conversation = await self.get(conversation_id)
        if conversation is None:
            raise LookupError(f"conversation {conversation_id} not found")

        conversation.last_message_at = datetime.now(timezone.utc)
        await commit_with_timeout(self.db, self.timeout_seconds)

    async def mark_needs_review(self, conversation_id: str) -> None:
        conversation = await self.get(conversation_id)
        if conversation is None:
            raise LookupError(f"conversation {conversation_id} not found")

        conversation.needs_review = True
        await commit_with_timeout(self.db, self.timeout_seconds)
