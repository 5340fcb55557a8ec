"""
Realtime notifier: ordered per-key event streams with cursor-based resume.

Keys are ``conversation:{match_id}`` and ``user:{uid}``. Each key is an
independent ordered stream; there is no ordering across keys. Delivery is
at-least-once: a subscriber that resumes from an older cursor sees events
again, never out of order.
"""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any

from core.config import settings
from core.errors import ValidationError, storage_errors
from core.metrics import active_subscriptions, events_published_total
from core.redis import get_redis

logger = logging.getLogger(__name__)

MESSAGE_CREATED = "message.created"
MATCH_CREATED = "match.created"
CONVERSATION_READ = "conversation.read"

STREAM_ID_PATTERN = re.compile(r"[0-9]+-[0-9]+")


def conversation_key(match_id: int) -> str:
    return f"conversation:{match_id}"


def user_key(uid: str) -> str:
    return f"user:{uid}"


@dataclass(frozen=True)
class Event:
    """One entry of a per-key stream. ``id`` is the resume cursor."""

    id: str
    key: str
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "kind": self.kind, **self.payload}


class Subscription(ABC):
    """
    Live view of one key.

    Registration happens on ``__aenter__`` so callers can catch up from
    storage afterwards without missing events published in between.
    """

    def __init__(self, key: str) -> None:
        self.key = key
        self.closed = False

    async def __aenter__(self) -> "Subscription":
        await self._open()
        active_subscriptions.inc()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        active_subscriptions.dec()
        await self._release()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Event:
        if self.closed:
            raise StopAsyncIteration
        return await self._next()

    @abstractmethod
    async def _open(self) -> None: ...

    @abstractmethod
    async def _next(self) -> Event: ...

    async def _release(self) -> None:
        return None


class Notifier(ABC):
    """Publish/subscribe over ordered per-key streams."""

    @abstractmethod
    async def publish(self, key: str, kind: str, payload: dict[str, Any]) -> str:
        """Append an event to a key's stream and return its cursor."""

    @abstractmethod
    def subscribe(self, key: str, after: str | None = None) -> Subscription:
        """
        Open a subscription yielding events after ``after`` (or only new ones).

        Raises:
            ValidationError: ``after`` is not a cursor of this backend
        """

    @abstractmethod
    def is_valid_cursor(self, cursor: str) -> bool:
        """Tell whether ``cursor`` has the shape of this backend's event ids."""

    def check_cursor(self, cursor: str | None) -> None:
        if cursor is not None and not self.is_valid_cursor(cursor):
            raise ValidationError("Malformed event cursor")

    async def close(self) -> None:
        return None


class _MemorySubscription(Subscription):
    def __init__(self, notifier: "MemoryNotifier", key: str, after: str | None) -> None:
        super().__init__(key)
        self._notifier = notifier
        self._after = after
        self._queue: asyncio.Queue[Event] = asyncio.Queue()

    async def _open(self) -> None:
        if self._after is not None:
            for event in self._notifier.history_after(self.key, self._after):
                self._queue.put_nowait(event)
        self._notifier.listeners[self.key].add(self._queue)

    async def _next(self) -> Event:
        return await self._queue.get()

    async def _release(self) -> None:
        listeners = self._notifier.listeners.get(self.key)
        if listeners is not None:
            listeners.discard(self._queue)
            if not listeners:
                del self._notifier.listeners[self.key]


class MemoryNotifier(Notifier):
    """In-process fan-out for single-process deployments."""

    def __init__(self, history_size: int = 1000) -> None:
        self.history_size = history_size
        self.listeners: dict[str, set[asyncio.Queue[Event]]] = defaultdict(set)
        self._history: dict[str, list[Event]] = defaultdict(list)
        self._counters: dict[str, int] = defaultdict(int)

    async def publish(self, key: str, kind: str, payload: dict[str, Any]) -> str:
        self._counters[key] += 1
        event = Event(id=str(self._counters[key]), key=key, kind=kind, payload=payload)
        history = self._history[key]
        history.append(event)
        if len(history) > self.history_size:
            del history[: len(history) - self.history_size]
        for queue in list(self.listeners.get(key, ())):
            queue.put_nowait(event)
        events_published_total.labels(kind=kind).inc()
        return event.id

    def history_after(self, key: str, after: str) -> list[Event]:
        cursor = int(after or 0)
        return [event for event in self._history.get(key, []) if int(event.id) > cursor]

    def is_valid_cursor(self, cursor: str) -> bool:
        return cursor.isascii() and cursor.isdigit()

    def subscribe(self, key: str, after: str | None = None) -> Subscription:
        self.check_cursor(after)
        return _MemorySubscription(self, key, after)


class _RedisSubscription(Subscription):
    def __init__(self, notifier: "RedisNotifier", key: str, after: str | None) -> None:
        super().__init__(key)
        self._notifier = notifier
        self._cursor = after
        self._pending: list[Event] = []

    async def _open(self) -> None:
        if self._cursor is not None:
            return
        # Start from the current tail so only events published after opening are seen
        redis_client = await self._notifier.client()
        with storage_errors("subscribe"):
            tail = await redis_client.xrevrange(self.key, count=1)
        self._cursor = tail[0][0] if tail else "0-0"

    async def _next(self) -> Event:
        redis_client = await self._notifier.client()
        while not self._pending:
            with storage_errors("subscribe"):
                response = await redis_client.xread(
                    streams={self.key: self._cursor},
                    count=100,
                    block=self._notifier.block_ms,
                )
            for _stream, entries in response or []:
                for entry_id, fields in entries:
                    self._pending.append(self._notifier.decode(self.key, entry_id, fields))
        event = self._pending.pop(0)
        self._cursor = event.id
        return event


class RedisNotifier(Notifier):
    """Redis Streams backend: XADD to publish, blocking XREAD from a cursor to follow."""

    def __init__(self, redis_client: Any | None = None, maxlen: int | None = None, block_ms: int | None = None) -> None:
        self._redis = redis_client
        self.maxlen = maxlen if maxlen is not None else settings.stream_maxlen
        self.block_ms = block_ms if block_ms is not None else settings.stream_block_ms

    async def client(self) -> Any:
        if self._redis is None:
            self._redis = await get_redis()
        return self._redis

    async def publish(self, key: str, kind: str, payload: dict[str, Any]) -> str:
        redis_client = await self.client()
        with storage_errors("publish"):
            entry_id = await redis_client.xadd(
                key,
                {"kind": kind, "data": json.dumps(payload, default=str)},
                maxlen=self.maxlen,
                approximate=True,
            )
        events_published_total.labels(kind=kind).inc()
        return str(entry_id)

    @staticmethod
    def decode(key: str, entry_id: str, fields: dict[str, str]) -> Event:
        return Event(id=str(entry_id), key=key, kind=fields["kind"], payload=json.loads(fields.get("data") or "{}"))

    def is_valid_cursor(self, cursor: str) -> bool:
        return STREAM_ID_PATTERN.fullmatch(cursor) is not None

    def subscribe(self, key: str, after: str | None = None) -> Subscription:
        self.check_cursor(after)
        return _RedisSubscription(self, key, after)


def build_notifier(backend: str | None = None) -> Notifier:
    """Create the notifier configured by ``settings.notifier_backend``."""
    backend = backend or settings.notifier_backend
    if backend == "memory":
        return MemoryNotifier()
    if backend == "redis":
        return RedisNotifier()
    raise ValueError(f"Unknown notifier backend: {backend}")


# Global notifier instance
notifier = build_notifier()
