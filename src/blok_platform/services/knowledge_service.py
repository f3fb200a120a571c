"""Knowledge base lookup for answering common resident questions.

Entries are admin-curated question/answer pairs per building. Matching is
case-insensitive and done in Python over the building's active entries,
since keywords are stored as a JSON list.
"""

import asyncio
import logging
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from blok_platform.agents.intake.contracts import KnowledgeMatch
from blok_platform.app.config import get_settings
from blok_platform.domain.models import KnowledgeEntry
from blok_platform.errors import LookupFailure

logger = logging.getLogger(__name__)


def _normalize(value) -> str:
    return str(value or "").strip().lower()


def match_entry(entry: KnowledgeEntry, query: str) -> KnowledgeMatch | None:
    """Match one entry against an already-normalized query.

    A keyword equal to the query, or the query appearing in the question,
    counts as a strong match. Appearing only in the answer is a weak match.
    """
    keywords = {_normalize(k) for k in (entry.keywords or [])}
    keyword_hit = query in keywords
    question_hit = query in _normalize(entry.question)
    answer_hit = query in _normalize(entry.answer)

    if not (keyword_hit or question_hit or answer_hit):
        return None
    return KnowledgeMatch(entry=entry, strong=keyword_hit or question_hit)


def has_strong_match(matches: Sequence[KnowledgeMatch]) -> bool:
    return any(m.strong for m in matches)


class KnowledgeService:
    """Read-only search over a building's knowledge base."""

    def __init__(self, db: AsyncSession, timeout_seconds: float | None = None):
        self.db = db
        self.timeout_seconds = timeout_seconds or get_settings().knowledge_timeout_seconds

    async def search(
        self, query: str, building_id: str, limit: int = 5
    ) -> list[KnowledgeMatch]:
        """Find active entries of ``building_id`` matching ``query``.

        Results are ordered by entry priority (highest first), then by
        most recently created.

        Raises:
            LookupFailure: if the store errors or the lookup times out.
        """
        needle = _normalize(query)
        if not needle:
            return []

        try:
            entries = await asyncio.wait_for(
                self._load_entries(building_id),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.error(
                "Knowledge lookup timed out after %ss for building %s",
                self.timeout_seconds, building_id,
            )
            raise LookupFailure("knowledge lookup timed out") from exc
        except Exception as exc:
            logger.error("Knowledge lookup failed for building %s: %s", building_id, exc)
            raise LookupFailure(str(exc)) from exc

        matches = [m for m in (match_entry(e, needle) for e in entries) if m is not None]

        logger.info(
            "Knowledge search building=%s query=%r -> %d matches (%d strong)",
            building_id, needle[:80], len(matches), sum(1 for m in matches if m.strong),
        )
        return matches[:limit]

    async def _load_entries(self, building_id: str) -> list[KnowledgeEntry]:
        result = await self.db.execute(
            select(KnowledgeEntry)
            .where(
                KnowledgeEntry.building_id == building_id,
                KnowledgeEntry.active.is_(True),
            )
            .order_by(
                KnowledgeEntry.priority.desc(),
                KnowledgeEntry.created_at.desc(),
            )
        )
        return list(result.scalars().all())
