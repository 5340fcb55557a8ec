"""Like endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from apps.api.deps import get_engine
from core.auth import current_uid
from services.engine import MatchingEngine

router = APIRouter()


class SubmitLikeResponse(BaseModel):
    """Result of a like submission."""

    liked: bool
    matched: bool
    match_id: int | None = None


class LikedUsersResponse(BaseModel):
    user_ids: list[str]


@router.post("/{to_uid}", response_model=SubmitLikeResponse)
async def submit_like(
    to_uid: str,
    engine: MatchingEngine = Depends(get_engine),
    uid: str = Depends(current_uid),
) -> SubmitLikeResponse:
    """
    Like another user.

    Liking the same user twice is not an error. When the other user already
    liked the caller, the response carries the match id.
    """
    result = await engine.submit_like(uid, to_uid)
    return SubmitLikeResponse(liked=result.liked, matched=result.matched, match_id=result.match_id)


@router.get("/incoming", response_model=LikedUsersResponse)
async def list_incoming_likes(
    engine: MatchingEngine = Depends(get_engine), uid: str = Depends(current_uid)
) -> LikedUsersResponse:
    """Users who liked the caller."""
    return LikedUsersResponse(user_ids=await engine.likes.list_incoming(uid))


@router.get("/outgoing", response_model=LikedUsersResponse)
async def list_outgoing_likes(
    engine: MatchingEngine = Depends(get_engine), uid: str = Depends(current_uid)
) -> LikedUsersResponse:
    """Users the caller liked."""
    return LikedUsersResponse(user_ids=await engine.likes.list_outgoing(uid))
