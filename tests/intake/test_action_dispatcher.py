"""Action dispatcher tests: ordering, fatal persistence, non-fatal side effects."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select

from blok_platform.agents.intake.contracts import (
    AnalysisResult,
    InboundMessage,
    RoutingDecision,
)
from blok_platform.domain.enums import (
    Channel,
    Language,
    MessageIntent,
    Priority,
    Recipient,
    ReplySource,
    RequiredAction,
    ResidentType,
    RouteTarget,
)
from blok_platform.domain.models import MaintenanceRequest, Message, Notification
from blok_platform.errors import (
    DeliveryFailure,
    PersistenceFailure,
    TicketCreationFailure,
)
from blok_platform.services.action_dispatcher import ActionDispatcher
from blok_platform.services.conversation_service import ConversationService
from blok_platform.services.intake_repository import IntakeRepository, building_config_from
from blok_platform.services.notification_service import AdminNotificationService

A = RequiredAction


@pytest.fixture
async def ctx(db_session, make_building, make_unit, make_resident):
    """Building with unit 4B (owner + renter) and the renter's open conversation."""
    building = await make_building()
    unit = await make_unit(building, "4B")
    owner = await make_resident(building, unit, type="owner", first_name="María", phone="+17875550101")
    renter = await make_resident(building, unit, type="renter", first_name="Luis", phone="+17875550202")
    conversation = await ConversationService(db_session).get_or_create(building.id, renter.id)
    repository = IntakeRepository(db_session)
    occupancy = await repository.get_unit_occupancy(unit.id)

    def message(text: str = "Hay una fuga debajo del fregadero") -> InboundMessage:
        return InboundMessage(
            text=text,
            sender_type=ResidentType.RENTER,
            language=Language.ES,
            building_id=building.id,
            resident_id=renter.id,
            conversation_id=conversation.id,
            channel=Channel.WHATSAPP,
            from_address=renter.phone,
            to_address=building.whatsapp_business_number,
            unit_id=unit.id,
            resident_name=renter.full_name,
            unit_number=unit.unit_number,
        )

    return SimpleNamespace(
        building=building,
        config=building_config_from(building),
        owner=owner,
        renter=renter,
        conversation=conversation,
        repository=repository,
        unit=occupancy,
        message=message,
    )


def _decision(actions, recipients=(Recipient.ADMIN,), review=False, reply="") -> RoutingDecision:
    return RoutingDecision(
        recipients=frozenset(recipients),
        required_actions=frozenset({A.PERSIST_MESSAGE, *actions}),
        requires_human_review=review,
        reply_text=reply,
        reply_source=ReplySource.CLASSIFIER if reply else ReplySource.NONE,
    )


def _dispatcher(ctx, messaging, notifier=None) -> ActionDispatcher:
    return ActionDispatcher(
        repository=ctx.repository,
        messaging=messaging,
        notifier=notifier or MagicMock(
            notify_human=AsyncMock(return_value=0),
            record_new_message=AsyncMock(),
        ),
    )


MAINTENANCE = AnalysisResult(
    intent=MessageIntent.MAINTENANCE_REQUEST,
    priority=Priority.HIGH,
    route_to=RouteTarget.ADMIN,
    requires_human_review=False,
    suggested_response="Recibimos tu solicitud.",
    extracted_data={"maintenanceCategory": "plumbing", "location": "kitchen"},
)


class TestPersistence:
    async def test_persists_message_with_analysis(self, db_session, ctx, messaging_service_mock):
        report = await _dispatcher(ctx, messaging_service_mock).execute(
            _decision(()), ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
        )

        stored = (await db_session.execute(
            select(Message).where(Message.id == report.message_id)
        )).scalar_one()
        assert report.persisted is True
        assert report.success is True
        assert stored.intent == "maintenance_request"
        assert stored.priority == "high"
        assert stored.sender_type == "resident"
        assert stored.conversation_id == ctx.conversation.id

    async def test_persistence_failure_is_fatal(self, ctx, messaging_service_mock):
        notifier = MagicMock(notify_human=AsyncMock())
        dispatcher = _dispatcher(ctx, messaging_service_mock, notifier)
        decision = _decision((A.CREATE_TICKET, A.NOTIFY_HUMAN, A.SEND_REPLY), review=True, reply="Hola")

        with patch.object(
            ctx.repository, "save_message", new=AsyncMock(side_effect=PersistenceFailure("db down")),
        ), patch.object(ctx.repository, "create_ticket", new=AsyncMock()) as create_ticket:
            with pytest.raises(PersistenceFailure):
                await dispatcher.execute(decision, ctx.message(), MAINTENANCE, ctx.config, ctx.unit)

        create_ticket.assert_not_called()
        notifier.notify_human.assert_not_called()
        messaging_service_mock.send.assert_not_called()

    async def test_commit_error_becomes_persistence_failure(self, db_session, ctx, messaging_service_mock):
        with patch.object(db_session, "commit", new=AsyncMock(side_effect=RuntimeError("disk full"))):
            with pytest.raises(PersistenceFailure):
                await _dispatcher(ctx, messaging_service_mock).execute(
                    _decision(()), ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
                )


class TestTicket:
    async def test_ticket_created_for_maintenance(self, db_session, ctx, messaging_service_mock):
        report = await _dispatcher(ctx, messaging_service_mock).execute(
            _decision((A.CREATE_TICKET,)), ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
        )

        ticket = (await db_session.execute(
            select(MaintenanceRequest).where(MaintenanceRequest.id == report.ticket_id)
        )).scalar_one()
        assert report.ticket_created is True
        assert ticket.category == "plumbing"
        assert ticket.location == "kitchen"
        assert ticket.priority == "high"
        assert ticket.status == "open"
        assert ticket.resident_id == ctx.renter.id
        assert ticket.unit_id == ctx.unit.unit_id

    async def test_ticket_failure_is_warning(self, ctx, messaging_service_mock):
        with patch.object(
            ctx.repository, "create_ticket",
            new=AsyncMock(side_effect=TicketCreationFailure("constraint")),
        ):
            report = await _dispatcher(ctx, messaging_service_mock).execute(
                _decision((A.CREATE_TICKET,)), ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
            )

        assert report.persisted is True
        assert report.ticket_created is False
        assert report.warnings == ["ticket creation failed"]
        assert report.success is True


class TestNotify:
    async def test_notify_failure_only_logged(self, ctx, messaging_service_mock):
        notifier = MagicMock(notify_human=AsyncMock(side_effect=RuntimeError("smtp down")))

        report = await _dispatcher(ctx, messaging_service_mock, notifier).execute(
            _decision((A.NOTIFY_HUMAN,), review=True), ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
        )

        assert report.notified is False
        assert report.warnings == []
        assert report.success is True

    async def test_notify_marks_conversation_and_creates_notification(
        self, db_session, ctx, messaging_service_mock,
    ):
        emergency = AnalysisResult(
            intent=MessageIntent.EMERGENCY,
            priority=Priority.EMERGENCY,
            requires_human_review=True,
        )
        notifier = AdminNotificationService(db_session)

        with patch(
            "blok_platform.services.notification_service.email_service.send_admin_alert",
            new=AsyncMock(return_value=True),
        ) as send_alert:
            report = await _dispatcher(ctx, messaging_service_mock, notifier).execute(
                _decision((A.NOTIFY_HUMAN,), review=True),
                ctx.message("¡Hay humo en el pasillo!"),
                emergency,
                ctx.config,
                ctx.unit,
            )

        conversation = await ConversationService(db_session).get(ctx.conversation.id)
        notification = (await db_session.execute(select(Notification))).scalar_one()
        assert report.notified is True
        assert conversation.needs_review is True
        assert notification.type == "emergency"
        assert "emergency" in notification.title
        # No admins configured for this building
        send_alert.assert_not_called()

    async def test_routine_message_gets_dashboard_notification(
        self, db_session, ctx, messaging_service_mock,
    ):
        notifier = AdminNotificationService(db_session)

        report = await _dispatcher(ctx, messaging_service_mock, notifier).execute(
            _decision((A.CREATE_TICKET,)), ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
        )

        conversation = await ConversationService(db_session).get(ctx.conversation.id)
        notification = (await db_session.execute(select(Notification))).scalar_one()
        assert report.notified is None
        assert conversation.needs_review is False
        assert notification.type == "new_message"
        assert notification.title == "Nuevo Mensaje (WhatsApp)"
        assert notification.message.startswith(ctx.renter.full_name)
        assert notification.link.endswith(ctx.conversation.id)

    async def test_dashboard_notification_failure_only_logged(self, ctx, messaging_service_mock):
        notifier = MagicMock(
            notify_human=AsyncMock(),
            record_new_message=AsyncMock(side_effect=RuntimeError("database is locked")),
        )

        report = await _dispatcher(ctx, messaging_service_mock, notifier).execute(
            _decision((A.SEND_REPLY,), reply="Recibimos tu solicitud."),
            ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
        )

        notifier.notify_human.assert_not_called()
        assert report.reply_sent is True
        assert report.warnings == []
        assert report.success is True


class TestReply:
    async def test_reply_sent_and_recorded(self, db_session, ctx, messaging_service_mock):
        report = await _dispatcher(ctx, messaging_service_mock).execute(
            _decision((A.SEND_REPLY,), reply="Recibimos tu solicitud."),
            ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
        )

        assert report.reply_sent is True
        assert messaging_service_mock.sent == [
            ("+17875550202", "+17875550000", "Recibimos tu solicitud.", "whatsapp"),
        ]
        ai_messages = (await db_session.execute(
            select(Message).where(Message.sender_type == "ai")
        )).scalars().all()
        assert [m.content for m in ai_messages] == ["Recibimos tu solicitud."]

    async def test_delivery_failure_is_warning(self, ctx):
        messaging = MagicMock(send=AsyncMock(side_effect=DeliveryFailure("http_500", status_code=500)))

        report = await _dispatcher(ctx, messaging).execute(
            _decision((A.SEND_REPLY,), reply="Hola"), ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
        )

        assert report.persisted is True
        assert report.reply_sent is False
        assert report.warnings == ["delivery failed"]
        assert report.success is True

    async def test_reply_not_recorded_warning(self, ctx, messaging_service_mock):
        with patch.object(
            ctx.repository, "save_reply", new=AsyncMock(side_effect=PersistenceFailure("locked")),
        ):
            report = await _dispatcher(ctx, messaging_service_mock).execute(
                _decision((A.SEND_REPLY,), reply="Hola"), ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
            )

        assert report.reply_sent is True
        assert report.warnings == ["reply not recorded"]


class TestForward:
    async def test_renter_message_forwarded_to_owner(self, ctx, messaging_service_mock):
        report = await _dispatcher(ctx, messaging_service_mock).execute(
            _decision((), recipients=(Recipient.OWNER,)), ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
        )

        assert report.forwarded_to == ["owner"]
        to, from_, body, channel = messaging_service_mock.sent[0]
        assert to == "+17875550101"
        assert "Mensaje de inquilino - Unidad 4B" in body
        assert "Hay una fuga debajo del fregadero" in body

    async def test_sender_never_forwarded_to_self(self, ctx, messaging_service_mock):
        report = await _dispatcher(ctx, messaging_service_mock).execute(
            _decision((), recipients=(Recipient.OWNER, Recipient.RENTER)),
            ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
        )

        assert report.forwarded_to == ["owner"]
        assert [sent[0] for sent in messaging_service_mock.sent] == ["+17875550101"]

    async def test_forward_failure_is_warning(self, ctx):
        messaging = MagicMock(send=AsyncMock(side_effect=DeliveryFailure("timeout")))

        report = await _dispatcher(ctx, messaging).execute(
            _decision((), recipients=(Recipient.OWNER,)), ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
        )

        assert report.forwarded_to == []
        assert report.warnings == ["forward to owner failed"]
        assert report.success is True

    async def test_admin_only_sends_nothing(self, ctx, messaging_service_mock):
        report = await _dispatcher(ctx, messaging_service_mock).execute(
            _decision(()), ctx.message(), MAINTENANCE, ctx.config, ctx.unit,
        )

        assert report.forwarded_to == []
        messaging_service_mock.send.assert_not_called()
