"""Match endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from apps.api.deps import get_engine
from core.auth import current_uid
from services.engine import MatchingEngine

router = APIRouter()


class MatchOut(BaseModel):
    match_id: int
    partner_uid: str
    created_at: datetime


class MatchListResponse(BaseModel):
    matches: list[MatchOut]


@router.get("", response_model=MatchListResponse)
async def list_matches(
    engine: MatchingEngine = Depends(get_engine), uid: str = Depends(current_uid)
) -> MatchListResponse:
    """All matches of the caller, newest first."""
    views = await engine.matches.list_matches_for(uid)
    return MatchListResponse(
        matches=[MatchOut(match_id=v.match_id, partner_uid=v.partner_uid, created_at=v.created_at) for v in views]
    )
