"""Routing policy: turns an analysis into recipients and required actions.

Pure and deterministic. Everything it needs (building settings, unit
occupancy, knowledge matches) is passed in; nothing is looked up here.
"""

from collections.abc import Sequence

from blok_platform.domain.enums import (
    MessageIntent,
    Priority,
    Recipient,
    ReplySource,
    RequiredAction,
    RouteTarget,
)

from .contracts import (
    AnalysisResult,
    BuildingConfig,
    KnowledgeMatch,
    RoutingDecision,
    UnitOccupancy,
)

# Intents a knowledge base answer may reply to
FAQ_INTENTS = frozenset({MessageIntent.GENERAL_QUESTION, MessageIntent.HOA_FEE_QUESTION})


def resolve_recipients(
    route_to: RouteTarget,
    unit: UnitOccupancy | None,
    requires_review: bool,
) -> set[Recipient]:
    """Expand a route target into concrete roles given who lives in the unit."""
    has_owner = unit is not None and unit.has_owner
    has_renter = unit is not None and unit.has_renter

    if route_to == RouteTarget.OWNER:
        return {Recipient.OWNER} if has_owner else {Recipient.ADMIN}

    if route_to == RouteTarget.RENTER:
        if has_renter:
            return {Recipient.RENTER}
        if has_owner:
            return {Recipient.OWNER, Recipient.ADMIN}
        return {Recipient.ADMIN}

    if route_to == RouteTarget.BOTH:
        recipients = set()
        if has_owner:
            recipients.add(Recipient.OWNER)
        if has_renter:
            recipients.add(Recipient.RENTER)
        if requires_review:
            recipients.add(Recipient.ADMIN)
        return recipients or {Recipient.ADMIN}

    return {Recipient.ADMIN}


def pick_reply(
    analysis: AnalysisResult,
    knowledge: Sequence[KnowledgeMatch],
) -> tuple[str, ReplySource]:
    """Choose the automated reply text and where it came from."""
    if analysis.intent in FAQ_INTENTS:
        for match in knowledge:
            if match.strong and match.answer:
                return match.answer, ReplySource.KNOWLEDGE

    text = (analysis.suggested_response or "").strip()
    if text:
        return text, ReplySource.CLASSIFIER
    return "", ReplySource.NONE


def decide(
    analysis: AnalysisResult,
    building: BuildingConfig,
    unit: UnitOccupancy | None,
    knowledge: Sequence[KnowledgeMatch] = (),
) -> RoutingDecision:
    """Compute the routing decision for one analyzed message.

    Emergencies always reach the admin and always require review,
    whatever the classifier said about routing.
    """
    is_emergency = analysis.priority == Priority.EMERGENCY
    requires_review = analysis.requires_human_review or is_emergency

    recipients = resolve_recipients(analysis.route_to, unit, requires_review)
    if is_emergency:
        recipients.add(Recipient.ADMIN)

    reply_text, reply_source = pick_reply(analysis, knowledge)

    actions = {RequiredAction.PERSIST_MESSAGE}
    if analysis.intent == MessageIntent.MAINTENANCE_REQUEST:
        actions.add(RequiredAction.CREATE_TICKET)
    if requires_review:
        actions.add(RequiredAction.NOTIFY_HUMAN)
    if reply_text and not requires_review and building.auto_reply_enabled:
        actions.add(RequiredAction.SEND_REPLY)

    return RoutingDecision(
        recipients=frozenset(recipients),
        required_actions=frozenset(actions),
        requires_human_review=requires_review,
        reply_text=reply_text,
        reply_source=reply_source,
    )
