"""Per-user realtime event stream: new matches, new messages, read receipts."""

import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Header
from fastapi.responses import StreamingResponse

from apps.api.deps import get_engine
from core.auth import current_uid
from services.engine import MatchingEngine
from services.notifier import user_key

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/stream")
async def stream_user_events(
    last_event_id: str | None = Header(None),
    engine: MatchingEngine = Depends(get_engine),
    uid: str = Depends(current_uid),
) -> StreamingResponse:
    """
    Server-sent events for the caller; ``Last-Event-ID`` resumes from a cursor.

    A cursor this backend could not have issued is ignored and the stream
    starts with new events only.
    """
    cursor = last_event_id or None
    if cursor is not None and not engine.notifier.is_valid_cursor(cursor):
        logger.info("Ignoring malformed Last-Event-ID %r for %s", cursor, uid)
        cursor = None

    async def event_source() -> AsyncIterator[str]:
        async with engine.notifier.subscribe(user_key(uid), after=cursor) as events:
            async for event in events:
                yield f"id: {event.id}\nevent: {event.kind}\ndata: {json.dumps(event.payload, default=str)}\n\n"

    return StreamingResponse(event_source(), media_type="text/event-stream")
