import asyncio
import json
from urllib.parse import urlencode

import pytest

from apps.api import deps
from apps.api.main import app
from core.auth import sign_user_id
from services.notifier import MATCH_CREATED, conversation_key, user_key


class EventStreamClient:
    """
    Drives the ASGI app directly and collects server-sent event frames as
    they are written, with the connection held open until the block exits.
    """

    def __init__(self, path: str, uid: str, params: dict | None = None, last_event_id: str | None = None) -> None:
        headers = [
            (b"host", b"test"),
            (b"x-user-id", uid.encode()),
            (b"x-user-signature", sign_user_id(uid).encode()),
        ]
        if last_event_id is not None:
            headers.append((b"last-event-id", last_event_id.encode()))
        self.scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": path,
            "raw_path": path.encode(),
            "root_path": "",
            "query_string": urlencode(params or {}).encode(),
            "headers": headers,
            "server": ("test", 80),
            "client": ("127.0.0.1", 50000),
        }
        self.status: int | None = None
        self.frames: list[dict[str, str]] = []
        self._buffer = ""
        self._consumed = 0
        self._request_sent = False
        self._arrived = asyncio.Event()
        self._task: asyncio.Task | None = None

    async def __aenter__(self) -> "EventStreamClient":
        self._task = asyncio.create_task(app(self.scope, self._receive, self._send))
        return self

    async def __aexit__(self, *exc_info) -> None:
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _receive(self) -> dict:
        if not self._request_sent:
            self._request_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        # client stays connected
        await asyncio.Event().wait()

    async def _send(self, message: dict) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
        elif message["type"] == "http.response.body":
            self._buffer += message.get("body", b"").decode()
            while "\n\n" in self._buffer:
                raw, self._buffer = self._buffer.split("\n\n", 1)
                frame = {}
                for line in raw.splitlines():
                    name, _, value = line.partition(": ")
                    frame[name] = value
                self.frames.append(frame)
        self._arrived.set()

    async def next_frame(self, timeout: float = 2) -> dict[str, str]:
        while len(self.frames) <= self._consumed:
            if self._task.done():
                self._task.result()
                raise AssertionError("stream ended without another frame")
            self._arrived.clear()
            await asyncio.wait_for(self._arrived.wait(), timeout)
        frame = self.frames[self._consumed]
        self._consumed += 1
        return frame


async def wait_for_listener(notifier, key: str) -> None:
    for _ in range(200):
        if key in notifier.listeners:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"nobody subscribed to {key}")


@pytest.fixture
def streaming_app(engine):
    app.dependency_overrides[deps.get_engine] = lambda: engine
    yield app
    app.dependency_overrides.clear()


@pytest.mark.parametrize(
    "since_seq, last_event_id",
    [(1, "2"), (2, "1"), (2, "not-a-seq")],
)
async def test_message_stream_resumes_after_cursor(streaming_app, engine, make_match, notifier, since_seq, last_event_id):
    match_id = await make_match("alice", "bob")
    for i in range(4):
        await engine.send_message(match_id, "alice", f"m{i + 1}")

    async with EventStreamClient(
        f"/conversations/{match_id}/stream", "bob", {"since_seq": since_seq}, last_event_id
    ) as stream:
        backlog = await stream.next_frame()
        assert stream.status == 200
        assert backlog["event"] == "messages"
        assert backlog["id"] == "4"
        assert [m["seq"] for m in json.loads(backlog["data"])] == [3, 4]

        await engine.send_message(match_id, "bob", "m5")
        live = await stream.next_frame()
        assert live["id"] == "5"
        assert [(m["seq"], m["sender_uid"], m["content"]) for m in json.loads(live["data"])] == [(5, "bob", "m5")]

    assert conversation_key(match_id) not in notifier.listeners


async def test_message_stream_batches_arrive_in_order(streaming_app, engine, make_match):
    match_id = await make_match("alice", "bob")

    async with EventStreamClient(f"/conversations/{match_id}/stream", "alice") as stream:
        await wait_for_listener(engine.notifier, conversation_key(match_id))
        await asyncio.gather(*(engine.send_message(match_id, "bob", f"m{i}") for i in range(6)))

        seqs: list[int] = []
        while len(seqs) < 6:
            frame = await stream.next_frame()
            batch = [m["seq"] for m in json.loads(frame["data"])]
            assert frame["id"] == str(batch[-1])
            seqs.extend(batch)

    assert seqs == [1, 2, 3, 4, 5, 6]


async def test_user_stream_delivers_match_created(streaming_app, engine, notifier):
    async with EventStreamClient("/events/stream", "alice") as stream:
        await wait_for_listener(notifier, user_key("alice"))
        await engine.submit_like("alice", "bob")
        result = await engine.submit_like("bob", "alice")

        frame = await stream.next_frame()

    assert stream.status == 200
    assert frame["event"] == MATCH_CREATED
    assert frame["id"] == "1"
    payload = json.loads(frame["data"])
    assert payload["match_id"] == result.match_id
    assert payload["partner_uid"] == "bob"
    assert user_key("alice") not in notifier.listeners


async def test_user_stream_resumes_from_last_event_id(streaming_app, make_match):
    await make_match("alice", "bob")
    carol_match = await make_match("alice", "carol")

    async with EventStreamClient("/events/stream", "alice", last_event_id="1") as stream:
        frame = await stream.next_frame()

    assert frame["id"] == "2"
    assert json.loads(frame["data"])["match_id"] == carol_match


async def test_user_stream_ignores_malformed_last_event_id(streaming_app, engine, make_match, notifier):
    await make_match("alice", "bob")

    async with EventStreamClient("/events/stream", "alice", last_event_id="abc") as stream:
        await wait_for_listener(notifier, user_key("alice"))
        carol_match = await make_match("alice", "carol")
        frame = await stream.next_frame()

    assert stream.status == 200
    assert json.loads(frame["data"])["match_id"] == carol_match
