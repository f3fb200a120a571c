"""Action dispatcher: carries out a routing decision.

Runs in a fixed order, persist -> ticket -> notify -> reply -> forward,
and accumulates an ExecutionReport. Messages that need no review still get
a dashboard notification. Only a persistence failure stops the pipeline;
everything after it degrades to a warning or a log line.
"""

import logging

from blok_platform.agents.intake.contracts import (
    AnalysisResult,
    BuildingConfig,
    ExecutionReport,
    InboundMessage,
    RoutingDecision,
    UnitOccupancy,
)
from blok_platform.agents.intake.fallback_templates import (
    forward_template_key,
    get_template,
)
from blok_platform.domain.enums import Recipient, RequiredAction
from blok_platform.errors import (
    DeliveryFailure,
    PersistenceFailure,
    TicketCreationFailure,
)
from blok_platform.services.intake_repository import IntakeRepository
from blok_platform.services.messaging_service import MessagingService
from blok_platform.services.notification_service import AdminNotificationService

logger = logging.getLogger(__name__)

WARN_TICKET = "ticket creation failed"
WARN_DELIVERY = "delivery failed"
WARN_REPLY_NOT_RECORDED = "reply not recorded"

# Occupant roles the dispatcher can forward to, in send order
FORWARD_ORDER = (Recipient.OWNER, Recipient.RENTER)


def forward_warning(role: Recipient) -> str:
    return f"forward to {role.value} failed"


class ActionDispatcher:
    """Executes the side effects a RoutingDecision asks for."""

    def __init__(
        self,
        repository: IntakeRepository,
        messaging: MessagingService,
        notifier: AdminNotificationService,
    ):
        self.repository = repository
        self.messaging = messaging
        self.notifier = notifier

    async def execute(
        self,
        decision: RoutingDecision,
        message: InboundMessage,
        analysis: AnalysisResult,
        building: BuildingConfig,
        unit: UnitOccupancy | None = None,
    ) -> ExecutionReport:
        """Run every required action and report what happened.

        Raises:
            PersistenceFailure: the inbound message could not be stored.
                Nothing else is attempted in that case.
        """
        report = ExecutionReport()

        # 1. Persist (fatal on failure)
        try:
            stored = await self.repository.save_message(
                message, analysis, decision.requires_human_review
            )
        except PersistenceFailure:
            logger.error(
                "[Dispatcher] Message for conversation %s not persisted, aborting",
                message.conversation_id,
            )
            raise
        report.persisted = True
        report.message_id = stored.id

        # 2. Ticket
        if decision.requires(RequiredAction.CREATE_TICKET):
            await self._create_ticket(report, message, analysis)

        # 3. Notify (review) or dashboard entry (routine)
        if decision.requires(RequiredAction.NOTIFY_HUMAN):
            await self._notify(report, message, analysis, building)
        else:
            await self._record_new_message(message, building)

        # 4. Reply
        if decision.requires(RequiredAction.SEND_REPLY):
            await self._send_reply(report, decision, message, building)

        # 5. Forward to unit occupants
        await self._forward(report, decision, message, building, unit)

        logger.info(
            "[Dispatcher] conversation=%s persisted=%s ticket=%s notified=%s reply=%s forwarded=%s warnings=%s",
            message.conversation_id,
            report.persisted,
            report.ticket_created,
            report.notified,
            report.reply_sent,
            report.forwarded_to,
            report.warnings,
        )
        return report

    async def _create_ticket(
        self,
        report: ExecutionReport,
        message: InboundMessage,
        analysis: AnalysisResult,
    ) -> None:
        try:
            ticket = await self.repository.create_ticket(message, analysis)
        except TicketCreationFailure as exc:
            logger.warning("[Dispatcher] Ticket creation failed: %s", exc)
            report.ticket_created = False
            report.warnings.append(WARN_TICKET)
            return
        report.ticket_created = True
        report.ticket_id = ticket.id

    async def _notify(
        self,
        report: ExecutionReport,
        message: InboundMessage,
        analysis: AnalysisResult,
        building: BuildingConfig,
    ) -> None:
        # Best effort: a failed notification is logged, never reported as a warning
        try:
            await self.notifier.notify_human(message, analysis, building)
        except Exception as exc:
            logger.error(
                "[Dispatcher] notify_human failed for conversation %s: %s",
                message.conversation_id, exc,
            )
            report.notified = False
            return
        report.notified = True

    async def _record_new_message(
        self,
        message: InboundMessage,
        building: BuildingConfig,
    ) -> None:
        try:
            await self.notifier.record_new_message(message, building)
        except Exception as exc:
            logger.error(
                "[Dispatcher] New message notification failed for conversation %s: %s",
                message.conversation_id, exc,
            )

    async def _send_reply(
        self,
        report: ExecutionReport,
        decision: RoutingDecision,
        message: InboundMessage,
        building: BuildingConfig,
    ) -> None:
        try:
            sid = await self.messaging.send(
                to=message.from_address,
                from_=building.business_number(message.channel) or message.to_address,
                body=decision.reply_text,
                channel=message.channel,
            )
        except DeliveryFailure as exc:
            logger.warning("[Dispatcher] Auto-reply not delivered: %s", exc)
            report.reply_sent = False
            report.warnings.append(WARN_DELIVERY)
            return
        report.reply_sent = True

        try:
            await self.repository.save_reply(
                message.conversation_id,
                decision.reply_text,
                message.channel.value,
                external_id=sid or None,
            )
        except PersistenceFailure as exc:
            logger.warning("[Dispatcher] Auto-reply sent but not stored: %s", exc)
            report.warnings.append(WARN_REPLY_NOT_RECORDED)

    async def _forward(
        self,
        report: ExecutionReport,
        decision: RoutingDecision,
        message: InboundMessage,
        building: BuildingConfig,
        unit: UnitOccupancy | None,
    ) -> None:
        for role in FORWARD_ORDER:
            if role not in decision.recipients:
                continue

            occupant = unit.occupant(role) if unit else None
            if occupant is None:
                logger.info("[Dispatcher] No %s on file, skipping forward", role.value)
                continue
            if occupant.resident_id == message.resident_id:
                continue

            to = occupant.address_for(message.channel)
            if not to:
                logger.info(
                    "[Dispatcher] %s %s has no %s number or opted out, skipping forward",
                    role.value, occupant.resident_id, message.channel.value,
                )
                continue

            body = get_template(
                forward_template_key(message.sender_type, role),
                occupant.preferred_language,
                unit=message.unit_number or (unit.unit_number if unit else "") or "N/A",
                body=message.text,
                sender=message.resident_name or message.from_address,
            )
            try:
                await self.messaging.send(
                    to=to,
                    from_=building.business_number(message.channel) or message.to_address,
                    body=body,
                    channel=message.channel,
                )
            except DeliveryFailure as exc:
                logger.warning("[Dispatcher] Forward to %s failed: %s", role.value, exc)
                report.warnings.append(forward_warning(role))
                continue
            report.forwarded_to.append(role.value)
