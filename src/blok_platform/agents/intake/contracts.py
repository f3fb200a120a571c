"""Typed dataclasses for the message intake pipeline I/O contracts."""

from dataclasses import dataclass, field
from typing import Any

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


@dataclass(frozen=True)
class InboundMessage:
    """A resident message as received from the messaging provider."""
    text: str
    sender_type: ResidentType
    language: Language
    building_id: str
    resident_id: str
    conversation_id: str
    channel: Channel = Channel.WHATSAPP
    from_address: str = ""  # resident number, no channel prefix
    to_address: str = ""  # building business number
    external_id: str | None = None  # provider message SID
    unit_id: str | None = None
    resident_name: str = ""
    unit_number: str | None = None


@dataclass(frozen=True)
class AnalysisResult:
    """Output of the Intent Classifier. Never mutated after creation."""
    intent: MessageIntent = MessageIntent.OTHER
    priority: Priority = Priority.MEDIUM
    route_to: RouteTarget = RouteTarget.ADMIN
    suggested_response: str = ""
    requires_human_review: bool = True
    extracted_data: dict[str, Any] = field(default_factory=dict)
    is_fallback: bool = False

    @classmethod
    def conservative_default(cls) -> "AnalysisResult":
        """Result used when classification fails: always reaches a human."""
        return cls(
            intent=MessageIntent.OTHER,
            priority=Priority.MEDIUM,
            route_to=RouteTarget.ADMIN,
            suggested_response="",
            requires_human_review=True,
            extracted_data={},
            is_fallback=True,
        )


@dataclass(frozen=True)
class BuildingConfig:
    """Per-call building parameters, passed explicitly into the core."""
    building_id: str
    name: str = ""
    preferred_language: Language = Language.ES
    whatsapp_number: str | None = None
    sms_number: str | None = None
    auto_reply_enabled: bool = True

    def business_number(self, channel: Channel) -> str | None:
        """Outbound number the building uses on ``channel``."""
        if channel == Channel.WHATSAPP:
            return self.whatsapp_number
        if channel == Channel.SMS:
            return self.sms_number or self.whatsapp_number
        return None


@dataclass(frozen=True)
class OccupantContact:
    """Reachability of one unit occupant."""
    resident_id: str
    name: str = ""
    phone: str | None = None
    whatsapp_number: str | None = None
    opted_in_whatsapp: bool = True
    opted_in_sms: bool = True
    preferred_language: Language = Language.ES

    def address_for(self, channel: Channel) -> str | None:
        """Destination number on ``channel`` if the occupant opted in, else None."""
        if channel == Channel.WHATSAPP:
            return (self.whatsapp_number or self.phone) if self.opted_in_whatsapp else None
        if channel == Channel.SMS:
            return self.phone if self.opted_in_sms else None
        return None


@dataclass(frozen=True)
class UnitOccupancy:
    """Who currently owns and rents a unit."""
    unit_id: str | None = None
    unit_number: str | None = None
    owner: OccupantContact | None = None
    renter: OccupantContact | None = None

    @property
    def has_owner(self) -> bool:
        return self.owner is not None

    @property
    def has_renter(self) -> bool:
        return self.renter is not None

    def occupant(self, role: Recipient) -> OccupantContact | None:
        if role == Recipient.OWNER:
            return self.owner
        if role == Recipient.RENTER:
            return self.renter
        return None


@dataclass(frozen=True)
class RoutingDecision:
    """Output of the Routing Policy. Recomputed per message, never stored."""
    recipients: frozenset[Recipient]
    required_actions: frozenset[RequiredAction]
    requires_human_review: bool
    reply_text: str = ""
    reply_source: ReplySource = ReplySource.NONE

    def requires(self, action: RequiredAction) -> bool:
        return action in self.required_actions


@dataclass
class ExecutionReport:
    """Accumulated outcome of the Action Dispatcher."""
    persisted: bool = False
    ticket_created: bool | None = None
    reply_sent: bool | None = None
    notified: bool | None = None
    warnings: list[str] = field(default_factory=list)
    message_id: str | None = None
    ticket_id: str | None = None
    forwarded_to: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        # Ticket and delivery problems are warnings, not failures
        return self.persisted


@dataclass(frozen=True)
class KnowledgeMatch:
    """One knowledge base entry that matched a query."""
    entry: Any  # KnowledgeEntry row
    strong: bool = False

    @property
    def answer(self) -> str:
        return self.entry.answer
