"""Conversation endpoints: send, history, live stream, read tracking."""

import json
import logging
from collections.abc import AsyncIterator
from datetime import datetime

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from apps.api.deps import get_engine
from core.auth import current_uid
from models.chat import Message
from services.engine import MatchingEngine

router = APIRouter()
logger = logging.getLogger(__name__)


class SendMessageRequest(BaseModel):
    """Request to send a message into a conversation."""

    content: str


class MessageOut(BaseModel):
    match_id: int
    seq: int
    sender_uid: str
    content: str
    created_at: datetime
    read: bool

    @classmethod
    def from_model(cls, message: Message) -> "MessageOut":
        return cls(
            match_id=message.match_id,
            seq=message.seq,
            sender_uid=message.sender_uid,
            content=message.content,
            created_at=message.created_at,
            read=message.read,
        )


class SendMessageResponse(BaseModel):
    match_id: int
    seq: int


class MessageListResponse(BaseModel):
    messages: list[MessageOut]


class UnreadCountResponse(BaseModel):
    match_id: int
    unread_count: int


class MarkReadResponse(BaseModel):
    match_id: int
    marked: int


class ConversationOut(BaseModel):
    match_id: int
    partner_uid: str
    partner_nickname: str
    last_message: str | None
    last_message_at: datetime | None
    unread_count: int


class ConversationListResponse(BaseModel):
    conversations: list[ConversationOut]


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    engine: MatchingEngine = Depends(get_engine), uid: str = Depends(current_uid)
) -> ConversationListResponse:
    """Conversations of the caller, most recent activity first."""
    summaries = await engine.inbox.list_conversations(uid)
    return ConversationListResponse(
        conversations=[
            ConversationOut(
                match_id=s.match_id,
                partner_uid=s.partner_uid,
                partner_nickname=s.partner_nickname,
                last_message=s.last_message,
                last_message_at=s.last_message_at,
                unread_count=s.unread_count,
            )
            for s in summaries
        ]
    )


@router.post("/{match_id}/messages", response_model=SendMessageResponse, status_code=201)
async def send_message(
    match_id: int,
    request: SendMessageRequest,
    engine: MatchingEngine = Depends(get_engine),
    uid: str = Depends(current_uid),
) -> SendMessageResponse:
    """Append a message from the caller. Not idempotent: a blind retry may duplicate it."""
    seq = await engine.send_message(match_id, uid, request.content)
    return SendMessageResponse(match_id=match_id, seq=seq)


@router.get("/{match_id}/messages", response_model=MessageListResponse)
async def list_messages(
    match_id: int,
    after_seq: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=1, le=500),
    engine: MatchingEngine = Depends(get_engine),
    uid: str = Depends(current_uid),
) -> MessageListResponse:
    """Conversation history ascending by seq."""
    messages = await engine.conversations.list_messages(match_id, viewer_uid=uid, after_seq=after_seq, limit=limit)
    return MessageListResponse(messages=[MessageOut.from_model(m) for m in messages])


@router.get("/{match_id}/stream")
async def stream_messages(
    match_id: int,
    since_seq: int = Query(0, ge=0),
    last_event_id: str | None = Header(None),
    engine: MatchingEngine = Depends(get_engine),
    uid: str = Depends(current_uid),
) -> StreamingResponse:
    """
    Server-sent events with message batches after ``since_seq``.

    Each event id is the last seq of its batch; a reconnecting client that
    sends ``Last-Event-ID`` resumes after it.
    """
    cursor = since_seq
    if last_event_id and last_event_id.isascii() and last_event_id.isdigit():
        cursor = max(cursor, int(last_event_id))

    # Validates membership before the response starts
    await engine.conversations.list_messages(match_id, viewer_uid=uid, after_seq=0, limit=1)

    async def event_source() -> AsyncIterator[str]:
        batches = engine.conversations.subscribe(match_id, since_seq=cursor, viewer_uid=uid)
        try:
            async for batch in batches:
                data = json.dumps([MessageOut.from_model(m).model_dump(mode="json") for m in batch])
                yield f"id: {batch[-1].seq}\nevent: messages\ndata: {data}\n\n"
        finally:
            await batches.aclose()
            logger.debug("Message stream closed: match=%s uid=%s", match_id, uid)

    return StreamingResponse(event_source(), media_type="text/event-stream")


@router.post("/{match_id}/read", response_model=MarkReadResponse)
async def mark_conversation_read(
    match_id: int,
    engine: MatchingEngine = Depends(get_engine),
    uid: str = Depends(current_uid),
) -> MarkReadResponse:
    """Mark every message from the partner as read."""
    marked = await engine.reads.mark_conversation_read(match_id, uid)
    return MarkReadResponse(match_id=match_id, marked=marked)


@router.get("/{match_id}/unread", response_model=UnreadCountResponse)
async def get_unread_count(
    match_id: int,
    engine: MatchingEngine = Depends(get_engine),
    uid: str = Depends(current_uid),
) -> UnreadCountResponse:
    """Unread messages from the partner."""
    return UnreadCountResponse(match_id=match_id, unread_count=await engine.reads.unread_count(match_id, uid))
