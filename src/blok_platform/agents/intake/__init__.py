"""Resident message intake: classify, route, then act.

Pieces:
1. IntentClassifier (LLM intent, priority and routing analysis)
2. decide (deterministic routing policy)
3. fallback_templates (fixed resident-facing texts)

The side-effecting half lives in services.action_dispatcher and
services.message_intake_service.
"""

from .contracts import (
    AnalysisResult,
    BuildingConfig,
    ExecutionReport,
    InboundMessage,
    KnowledgeMatch,
    OccupantContact,
    RoutingDecision,
    UnitOccupancy,
)
from .intent_classifier import IntentClassifier
from .routing_policy import decide

__all__ = [
    "AnalysisResult",
    "BuildingConfig",
    "ExecutionReport",
    "InboundMessage",
    "KnowledgeMatch",
    "OccupantContact",
    "RoutingDecision",
    "UnitOccupancy",
    "IntentClassifier",
    "decide",
]
