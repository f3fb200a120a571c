"""Knowledge base search (read-only)."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from blok_platform.domain.schemas import (
    KnowledgeEntryOut,
    KnowledgeSearchHit,
    KnowledgeSearchResponse,
)
from blok_platform.errors import LookupFailure
from blok_platform.infra.database import get_db
from blok_platform.services.knowledge_service import KnowledgeService, has_strong_match

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/knowledge", tags=["knowledge"])


@router.get("/search", response_model=KnowledgeSearchResponse)
async def search_knowledge(
    q: str = Query(""),
    building_id: str = Query(""),
    limit: int = Query(5, ge=1, le=20),
    db: AsyncSession = Depends(get_db),
):
    """Search a building's active knowledge entries."""
    if not q.strip() or not building_id:
        raise HTTPException(status_code=400, detail="Query and building_id are required")

    try:
        matches = await KnowledgeService(db).search(q, building_id, limit=limit)
    except LookupFailure as exc:
        logger.error("Knowledge search failed for building %s: %s", building_id, exc)
        raise HTTPException(status_code=500, detail="Knowledge search failed")

    return KnowledgeSearchResponse(
        entries=[
            KnowledgeSearchHit(entry=KnowledgeEntryOut.model_validate(m.entry), strong=m.strong)
            for m in matches
        ],
        has_strong_match=has_strong_match(matches),
    )
