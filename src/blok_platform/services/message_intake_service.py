"""Message intake orchestrator.

Pipeline for one inbound resident message:
1. IntentClassifier (LLM analysis, conservative default on failure)
2. KnowledgeService (FAQ intents only, non-fatal)
3. decide (pure routing policy)
4. ActionDispatcher (side effects, PersistenceFailure propagates)
5. ConversationService.touch (non-fatal)
"""

import asyncio
import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from blok_platform.agents.intake import (
    AnalysisResult,
    BuildingConfig,
    ExecutionReport,
    InboundMessage,
    IntentClassifier,
    KnowledgeMatch,
    RoutingDecision,
    UnitOccupancy,
    decide,
)
from blok_platform.agents.intake.routing_policy import FAQ_INTENTS
from blok_platform.errors import LookupFailure
from blok_platform.services.action_dispatcher import ActionDispatcher
from blok_platform.services.conversation_service import ConversationService
from blok_platform.services.intake_repository import IntakeRepository
from blok_platform.services.knowledge_service import KnowledgeService
from blok_platform.services.messaging_service import MessagingService
from blok_platform.services.notification_service import AdminNotificationService

logger = logging.getLogger(__name__)

WARN_NOT_TOUCHED = "conversation not touched"


@dataclass
class IntakeOutcome:
    """Everything the pipeline decided and did for one message."""
    analysis: AnalysisResult
    decision: RoutingDecision
    report: ExecutionReport
    knowledge_matches: list[KnowledgeMatch] = field(default_factory=list)


class MessageIntakeService:
    """Runs one inbound message through classify, route and dispatch."""

    def __init__(
        self,
        db: AsyncSession,
        classifier: IntentClassifier | None = None,
        messaging: MessagingService | None = None,
        knowledge: KnowledgeService | None = None,
        dispatcher: ActionDispatcher | None = None,
    ):
        self.db = db
        self.classifier = classifier or IntentClassifier()
        self.knowledge = knowledge or KnowledgeService(db)
        self.conversations = ConversationService(db)
        self.dispatcher = dispatcher or ActionDispatcher(
            repository=IntakeRepository(db),
            messaging=messaging or MessagingService(),
            notifier=AdminNotificationService(db),
        )

    async def process(
        self,
        message: InboundMessage,
        building: BuildingConfig,
        unit: UnitOccupancy | None = None,
    ) -> IntakeOutcome:
        """Classify, route and act on ``message``.

        Raises:
            PersistenceFailure: the message could not be recorded.
        """
        analysis = await self.classifier.classify(
            message.text,
            message.sender_type,
            message.language,
            building.name,
        )

        matches: list[KnowledgeMatch] = []
        if analysis.intent in FAQ_INTENTS:
            try:
                matches = await self.knowledge.search(message.text, building.building_id)
            except LookupFailure as exc:
                logger.warning(
                    "[Intake] Knowledge lookup failed, keeping classifier reply: %s", exc
                )

        decision = decide(analysis, building, unit, matches)
        logger.info(
            "[Intake] conversation=%s recipients=%s actions=%s review=%s reply_source=%s",
            message.conversation_id,
            sorted(r.value for r in decision.recipients),
            sorted(a.value for a in decision.required_actions),
            decision.requires_human_review,
            decision.reply_source.value,
        )

        report = await self.dispatcher.execute(decision, message, analysis, building, unit)

        try:
            await asyncio.wait_for(
                self.conversations.touch(message.conversation_id),
                timeout=self.conversations.timeout_seconds,
            )
        except Exception as exc:
            logger.warning(
                "[Intake] Could not touch conversation %s: %s",
                message.conversation_id, exc,
            )
            report.warnings.append(WARN_NOT_TOUCHED)

        return IntakeOutcome(
            analysis=analysis,
            decision=decision,
            report=report,
            knowledge_matches=matches,
        )
