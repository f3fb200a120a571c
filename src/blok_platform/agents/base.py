"""Base agent class for Blok AI agents.

Every Blok agent inherits from BaseAgent, which provides:

- Gemini model access via the infra.gemini_client wrapper
- A standard AgentResult return type (Result pattern)
- A hard timeout around every model call
- Automatic latency measurement and token tracking
- Database activity logging via AgentLog records
"""

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class AgentResult:
    """Standard result type for all agent operations.

    Follows the Result pattern: every agent call returns an AgentResult
    instead of raising exceptions. Callers check ``result.ok`` to
    determine success or failure.

    Attributes:
        ok: True if the operation succeeded.
        data: The response payload (text, parsed JSON, etc.).
        error: Human-readable error description when ``ok`` is False.
        timed_out: True when the failure was the call exceeding its timeout.
        tokens_used: Total tokens consumed (prompt + completion).
        latency_ms: Wall-clock time for the operation in milliseconds.
    """

    ok: bool
    data: Any = None
    error: Optional[str] = None
    timed_out: bool = False
    tokens_used: int = 0
    latency_ms: int = 0

    @classmethod
    def success(
        cls,
        data: Any,
        tokens_used: int = 0,
        latency_ms: int = 0,
    ) -> "AgentResult":
        """Create a successful result."""
        return cls(
            ok=True,
            data=data,
            tokens_used=tokens_used,
            latency_ms=latency_ms,
        )

    @classmethod
    def failure(
        cls, error: str, latency_ms: int = 0, timed_out: bool = False
    ) -> "AgentResult":
        """Create a failure result."""
        return cls(ok=False, error=error, latency_ms=latency_ms, timed_out=timed_out)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` block if the model added one."""
    stripped = (text or "").strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


# ---------------------------------------------------------------------------
# Base agent
# ---------------------------------------------------------------------------

class BaseAgent:
    """Base class for all Blok agents.

    Example::

        class SummaryAgent(BaseAgent):
            def __init__(self):
                super().__init__(agent_name="summary_agent")

            async def summarize(self, text: str) -> AgentResult:
                return await self.generate_json(
                    prompt=f"Summarize this resident message: {text}",
                )
    """

    def __init__(
        self,
        agent_name: str,
        model_name: Optional[str] = None,
        temperature: float = 0.7,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialise the agent.

        Args:
            agent_name: A short, unique name for this agent (used in logs).
            model_name: The Gemini model identifier (settings default if None).
            temperature: Generation temperature (0.0-1.0).
            timeout_seconds: Hard limit for a single model call.
        """
        self.agent_name = agent_name
        self.model_name = model_name
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds

    # ------------------------------------------------------------------
    # Core generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        json_mode: bool = False,
        response_schema: dict | None = None,
    ) -> AgentResult:
        """Generate a single-turn response from Gemini.

        Args:
            prompt: The user prompt to send.
            system_instruction: Optional system instruction that shapes
                the model's behaviour.
            json_mode: If True the model is instructed to return valid JSON.
            response_schema: Optional JSON Schema for structured output.

        Returns:
            An ``AgentResult`` with the response text in ``data``.
        """
        start_time = time.time()
        try:
            from blok_platform.infra.gemini_client import get_model

            model = get_model(
                model_name=self.model_name,
                temperature=self.temperature,
                json_mode=json_mode,
                response_schema=response_schema,
                system_instruction=system_instruction,
            )

            response = await asyncio.wait_for(
                model.generate_content_async(prompt),
                timeout=self.timeout_seconds,
            )
            latency_ms = int((time.time() - start_time) * 1000)

            tokens_used = 0
            if hasattr(response, "usage_metadata") and response.usage_metadata:
                prompt_tokens = getattr(
                    response.usage_metadata, "prompt_token_count", 0
                ) or 0
                completion_tokens = getattr(
                    response.usage_metadata, "candidates_token_count", 0
                ) or 0
                tokens_used = prompt_tokens + completion_tokens

            response_text = response.text

            logger.info(
                "[%s] Generation succeeded: tokens=%d, latency=%dms",
                self.agent_name,
                tokens_used,
                latency_ms,
            )

            self._safe_log_activity(
                action="generate",
                input_summary=prompt[:500],
                output_summary=(response_text or "")[:500],
                tokens_used=tokens_used,
                latency_ms=latency_ms,
            )

            return AgentResult.success(
                data=response_text,
                tokens_used=tokens_used,
                latency_ms=latency_ms,
            )

        except asyncio.TimeoutError:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "[%s] Generation timed out after %dms",
                self.agent_name,
                latency_ms,
            )
            return AgentResult.failure(
                f"timed out after {self.timeout_seconds}s",
                latency_ms=latency_ms,
                timed_out=True,
            )
        except Exception as exc:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "[%s] Generation failed after %dms: %s",
                self.agent_name,
                latency_ms,
                exc,
            )
            return AgentResult.failure(str(exc), latency_ms=latency_ms)

    # ------------------------------------------------------------------
    # JSON generation convenience
    # ------------------------------------------------------------------

    async def generate_json(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        response_schema: dict | None = None,
    ) -> AgentResult:
        """Generate a response and parse it as JSON.

        Calls ``generate`` with ``json_mode=True``, strips markdown code
        fences, then deserialises the response text into a Python dict or
        list. If parsing fails the result will be a failure with the parse
        error.

        Args:
            prompt: The user prompt.
            system_instruction: Optional system instruction.
            response_schema: Optional JSON Schema for structured output.

        Returns:
            An ``AgentResult`` whose ``data`` field contains the parsed
            JSON (dict or list).
        """
        result = await self.generate(
            prompt=prompt,
            system_instruction=system_instruction,
            json_mode=True,
            response_schema=response_schema,
        )

        if not result.ok:
            return result

        try:
            parsed = json.loads(strip_code_fences(result.data))
            return AgentResult.success(
                data=parsed,
                tokens_used=result.tokens_used,
                latency_ms=result.latency_ms,
            )
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning(
                "[%s] JSON parse failed: %s; raw text: %.200s",
                self.agent_name,
                exc,
                result.data,
            )
            return AgentResult.failure(
                error=f"JSON parse error: {exc}",
                latency_ms=result.latency_ms,
            )

    # ------------------------------------------------------------------
    # Activity logging
    # ------------------------------------------------------------------

    async def log_activity(
        self,
        action: str,
        input_summary: str,
        output_summary: str,
        tokens_used: int,
        latency_ms: int,
        building_id: Optional[str] = None,
    ) -> None:
        """Persist an activity log entry to the database.

        Args:
            action: Short verb describing the action (e.g. "generate").
            input_summary: Truncated version of the input prompt.
            output_summary: Truncated version of the model response.
            tokens_used: Total tokens consumed.
            latency_ms: Wall-clock duration in milliseconds.
            building_id: Optional related building UUID.
        """
        try:
            from blok_platform.infra.database import async_session
            from blok_platform.domain.models import AgentLog

            async with async_session() as session:
                session.add(AgentLog(
                    id=str(uuid.uuid4()),
                    agent_name=self.agent_name,
                    action=action,
                    input_summary=input_summary,
                    output_summary=output_summary,
                    tokens_used=tokens_used,
                    latency_ms=latency_ms,
                    related_building_id=building_id,
                    created_at=datetime.now(timezone.utc),
                ))
                await session.commit()
                logger.debug(
                    "[%s] Activity logged: action=%s, tokens=%d",
                    self.agent_name,
                    action,
                    tokens_used,
                )

        except Exception as exc:
            # DB logging must never break agent operation
            logger.warning(
                "[%s] Failed to log activity to DB: %s", self.agent_name, exc
            )

    def _safe_log_activity(self, **kwargs) -> None:
        """Fire-and-forget wrapper around ``log_activity``.

        Schedules the DB write as a background task so it never blocks
        the calling agent.
        """
        asyncio.ensure_future(self.log_activity(**kwargs))
