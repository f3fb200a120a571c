"""Pydantic v2 schemas for LLM structured output and API responses."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# LLM structured output
# ---------------------------------------------------------------------------


class ExtractedDataSchema(BaseModel):
    """Structured details pulled out of the message text."""

    maintenanceCategory: str = ""
    urgency: str = ""
    location: str = ""


class ClassificationSchema(BaseModel):
    """Shape the intent classifier asks Gemini to return.

    Fields are plain strings on purpose: the classifier coerces them onto
    the closed enums itself instead of letting a bad label fail the call.
    """

    intent: str = Field(description="One of the listed intents")
    priority: str = Field(description="low | medium | high | emergency")
    routeTo: str = Field(description="owner | renter | admin | both")
    suggestedResponse: str = Field(description="Reply to the resident in their language")
    requiresHumanReview: bool
    extractedData: ExtractedDataSchema = Field(default_factory=ExtractedDataSchema)


# ---------------------------------------------------------------------------
# Knowledge base
# ---------------------------------------------------------------------------


class KnowledgeEntryOut(BaseModel):
    """Knowledge entry as returned by the search endpoint."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    building_id: str
    category: str | None = None
    question: str
    answer: str
    keywords: list[str] = Field(default_factory=list)
    priority: int = 0
    active: bool = True
    created_at: datetime | None = None


class KnowledgeSearchHit(BaseModel):
    entry: KnowledgeEntryOut
    strong: bool


class KnowledgeSearchResponse(BaseModel):
    entries: list[KnowledgeSearchHit]
    has_strong_match: bool


# ---------------------------------------------------------------------------
# Messaging webhook
# ---------------------------------------------------------------------------


class WebhookResponse(BaseModel):
    """Body returned to the messaging provider after processing a message."""

    ok: bool = True
    action: str = "processed"
    channel: str | None = None
    conversation_id: str | None = None
    intent: str | None = None
    priority: str | None = None
    requires_human_review: bool | None = None
    warnings: list[str] = Field(default_factory=list)
