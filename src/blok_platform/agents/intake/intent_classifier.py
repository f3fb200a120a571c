"""Intent Classifier: LLM-based intent, priority and routing analysis."""

import logging
from collections.abc import Mapping

from blok_platform.agents.base import BaseAgent
from blok_platform.app.config import get_settings
from blok_platform.domain.enums import (
    Language,
    MessageIntent,
    Priority,
    ResidentType,
    RouteTarget,
)
from blok_platform.domain.schemas import ClassificationSchema
from blok_platform.errors import ClassificationFailure
from blok_platform.infra.gemini_client import response_schema_for

from .contracts import AnalysisResult

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Prompt template
# ---------------------------------------------------------------------------

CLASSIFIER_PROMPT_TEMPLATE = """\
You are the AI assistant for Blok, a Puerto Rico condominium management system.
Your job: analyze one message from a resident and return a structured JSON analysis.

## CONTEXT
- Resident type: {sender_type}
- Language: {language}
- Building: {building_name}

## MESSAGE FROM RESIDENT
"{message}"

## CRITICAL OUTPUT RULES
1. Return ONLY valid JSON, no explanation text before or after
2. Do NOT wrap in markdown code fences
3. If unsure, still return valid JSON with intent: "other"

## INTENT
Choose exactly one:
- "maintenance_request" (repairs, issues in the unit or common areas)
- "general_question" (HOA rules, amenities, hours, etc.)
- "noise_complaint"
- "visitor_access" (guest parking, entrance codes)
- "hoa_fee_question"
- "amenity_reservation" (pool, gym, party room)
- "document_request" (bylaws, financial statements)
- "emergency" (fire, flood, security threat)
- "other"

## PRIORITY
low | medium | high | emergency

## ROUTING (routeTo)
- "admin": the building admin/manager must respond
- "owner": forward to the unit owner (when the sender is a renter)
- "renter": forward to the renter (when the sender is an owner)
- "both": owner and renter should both be notified

## SUGGESTED RESPONSE
Write a helpful reply in {reply_language}.
- Professional, warm and concise (2-3 sentences)
- Maintenance request: acknowledge it and say the admin will review it
- A question you can answer: answer it
- Otherwise: say the admin will follow up within 24 hours

## HUMAN REVIEW
requiresHumanReview = true if the admin MUST review (emergencies, complaints, complex issues)

## EXTRACTED DATA
extractedData: maintenanceCategory (plumbing, electrical, hvac, ...), urgency, location

## REQUIRED JSON SCHEMA
{{
  "intent": "maintenance_request",
  "priority": "high",
  "routeTo": "admin",
  "suggestedResponse": "Hemos recibido tu solicitud de mantenimiento. Un miembro del equipo la revisará dentro de 24 horas.",
  "requiresHumanReview": true,
  "extractedData": {{"maintenanceCategory": "plumbing", "urgency": "high", "location": "kitchen"}}
}}
"""

_REPLY_LANGUAGE = {Language.ES: "Spanish", Language.EN: "English"}


def _first_present(data: Mapping, *keys):
    """Return the first key present in ``data`` (camelCase or snake_case)."""
    for key in keys:
        if key in data:
            return data[key]
    return None


def coerce_analysis(data) -> AnalysisResult:
    """Validate raw model JSON into an AnalysisResult.

    Unknown intents become ``other``, missing or unknown priorities become
    ``medium`` and unknown routing targets become ``admin``. A review flag
    that is not a real boolean is treated as True.

    Raises:
        ClassificationFailure: if ``data`` is not a JSON object.
    """
    if not isinstance(data, Mapping):
        raise ClassificationFailure(f"expected a JSON object, got {type(data).__name__}")

    raw_review = _first_present(data, "requiresHumanReview", "requires_human_review")
    requires_review = raw_review if isinstance(raw_review, bool) else True

    suggested = _first_present(data, "suggestedResponse", "suggested_response")
    if not isinstance(suggested, str):
        suggested = ""

    extracted = _first_present(data, "extractedData", "extracted_data")
    if not isinstance(extracted, Mapping):
        extracted = {}

    return AnalysisResult(
        intent=MessageIntent.coerce(data.get("intent")),
        priority=Priority.coerce(data.get("priority")),
        route_to=RouteTarget.coerce(_first_present(data, "routeTo", "route_to")),
        suggested_response=suggested.strip(),
        requires_human_review=requires_review,
        extracted_data={k: v for k, v in extracted.items() if v not in (None, "")},
    )


class IntentClassifier(BaseAgent):
    def __init__(self, timeout_seconds: float | None = None):
        settings = get_settings()
        super().__init__(
            agent_name="intent_classifier",
            temperature=settings.classification_temperature,
            timeout_seconds=timeout_seconds or settings.classification_timeout_seconds,
        )

    async def classify(
        self,
        text: str,
        sender_type: ResidentType | str,
        language: Language | str = Language.ES,
        building_name: str | None = None,
    ) -> AnalysisResult:
        """Classify one resident message.

        Never raises for model problems: any ``ClassificationFailure``
        degrades to ``AnalysisResult.conservative_default()`` so the
        message still reaches a human.

        Raises:
            ValueError: if ``text`` is empty or ``sender_type``/``language``
                are outside their closed sets.
        """
        if not text or not text.strip():
            raise ValueError("message text must be non-empty")
        sender_type = ResidentType(sender_type)
        language = Language(language)

        try:
            analysis = await self._infer(text.strip(), sender_type, language, building_name)
        except ClassificationFailure as exc:
            logger.warning("[%s] Falling back to conservative analysis: %s", self.agent_name, exc)
            return AnalysisResult.conservative_default()

        logger.info(
            "[%s] intent=%s priority=%s route_to=%s review=%s",
            self.agent_name,
            analysis.intent.value,
            analysis.priority.value,
            analysis.route_to.value,
            analysis.requires_human_review,
        )
        return analysis

    async def _infer(
        self,
        text: str,
        sender_type: ResidentType,
        language: Language,
        building_name: str | None,
    ) -> AnalysisResult:
        prompt = CLASSIFIER_PROMPT_TEMPLATE.format(
            sender_type=sender_type.value,
            language=language.value,
            building_name=building_name or "N/A",
            message=text.replace('"', "'"),
            reply_language=_REPLY_LANGUAGE[language],
        )

        result = await self.generate_json(
            prompt=prompt,
            response_schema=response_schema_for(ClassificationSchema),
        )

        if not result.ok:
            reason = "timeout" if result.timed_out else result.error
            raise ClassificationFailure(f"inference failed: {reason}")

        return coerce_analysis(result.data)
