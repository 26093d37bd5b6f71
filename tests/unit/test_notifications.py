import json
import time

import aiohttp
import pytest
from aioresponses import aioresponses

from hidrive_api.client import HiDrive
from hidrive_api.exceptions import AuthError, DecodeError, TransportError
from hidrive_api.notifications import NotificationSession, SessionState
from hidrive_api.oauth2 import DEFAULT_TOKEN_URL, ClientCredentials, Token

CREDS = ClientCredentials("client-id", "client-secret")


def text(data):
    return aiohttp.WSMessage(aiohttp.WSMsgType.TEXT, json.dumps(data), None)


def frame(msg_type, data=None):
    return aiohttp.WSMessage(msg_type, data, None)


class FakeWebSocket:
    def __init__(self, messages):
        self._messages = list(messages)
        self.closed = False
        self.receive_calls = 0

    async def receive(self):
        self.receive_calls += 1
        if self._messages:
            return self._messages.pop(0)
        return frame(aiohttp.WSMsgType.CLOSED)

    async def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, *sockets, error=None):
        self._sockets = list(sockets)
        self._error = error
        self.urls = []

    async def ws_connect(self, url, **kwargs):
        self.urls.append(url)
        if self._error is not None:
            raise self._error
        return self._sockets.pop(0)


def make_client(monkeypatch, fake_session, token=None):
    token = token or Token("ws-token", expires_at=time.time() + 3600, refresh_token="r")
    hd = HiDrive(CREDS, token=token)

    async def get_session():
        return fake_session

    monkeypatch.setattr(hd.dispatcher, "get_session", get_session)
    return hd


@pytest.mark.asyncio
async def test_two_events_then_close(monkeypatch):
    ws = FakeWebSocket([
        text({"event": "created", "path": "/users/me/a.txt"}),
        frame(aiohttp.WSMsgType.PING, b""),
        frame(aiohttp.WSMsgType.BINARY, b"\x00\x01"),
        text({"event": "deleted", "path": "/users/me/b.txt"}),
        frame(aiohttp.WSMsgType.CLOSE, 1000),
    ])
    session = await make_client(monkeypatch, FakeSession(ws)).notifications().open()

    assert session.state is SessionState.OPEN
    first = await session.next()
    second = await session.next()
    assert first == {"event": "created", "path": "/users/me/a.txt"}
    assert second["event"] == "deleted"

    assert await session.next() is None
    assert session.state is SessionState.CLOSED
    assert ws.closed

    # Terminal: further calls return at once without reading the socket
    calls = ws.receive_calls
    assert await session.next() is None
    assert await session.next() is None
    assert ws.receive_calls == calls


@pytest.mark.asyncio
async def test_token_is_passed_as_query_parameter(monkeypatch):
    fake = FakeSession(FakeWebSocket([]))
    hd = make_client(monkeypatch, fake)
    await hd.notifications().open()
    assert fake.urls == ["wss://api.hidrive.strato.com/2.1/subscribe?access_token=ws-token"]


@pytest.mark.asyncio
async def test_async_iteration_and_context_manager(monkeypatch):
    ws = FakeWebSocket([text({"event": "a"}), text({"event": "b"})])
    hd = make_client(monkeypatch, FakeSession(ws))

    async with hd.notifications() as session:
        events = [event["event"] async for event in session]
    assert events == ["a", "b"]
    assert session.state is SessionState.CLOSED


@pytest.mark.asyncio
async def test_connection_drop_ends_stream(monkeypatch):
    ws = FakeWebSocket([text({"event": "a"}), frame(aiohttp.WSMsgType.ERROR, ConnectionResetError())])
    session = await make_client(monkeypatch, FakeSession(ws)).notifications().open()
    assert await session.next() == {"event": "a"}
    assert await session.next() is None
    assert session.state is SessionState.CLOSED


@pytest.mark.asyncio
async def test_invalid_json_frame_raises_decode_error_and_stays_open(monkeypatch):
    ws = FakeWebSocket([
        frame(aiohttp.WSMsgType.TEXT, "{broken"),
        text({"event": "after"}),
    ])
    session = await make_client(monkeypatch, FakeSession(ws)).notifications().open()
    with pytest.raises(DecodeError):
        await session.next()
    assert session.state is SessionState.OPEN
    assert await session.next() == {"event": "after"}


@pytest.mark.asyncio
async def test_handshake_failure(monkeypatch):
    fake = FakeSession(error=aiohttp.ClientConnectionError("refused"))
    session = make_client(monkeypatch, fake).notifications()
    with pytest.raises(TransportError, match="handshake failed"):
        await session.open()
    assert session.state is SessionState.FAILED
    assert await session.next() is None


@pytest.mark.asyncio
async def test_open_without_token_fails(monkeypatch):
    fake = FakeSession(FakeWebSocket([]))
    hd = HiDrive(CREDS)

    async def get_session():
        return fake

    monkeypatch.setattr(hd.dispatcher, "get_session", get_session)
    session = hd.notifications()
    with pytest.raises(AuthError):
        await session.open()
    assert session.state is SessionState.FAILED
    assert fake.urls == []


@pytest.mark.asyncio
async def test_reopen_after_close_uses_new_connection(monkeypatch):
    first_ws = FakeWebSocket([text({"event": "one"})])
    second_ws = FakeWebSocket([text({"event": "two"})])
    session = await make_client(monkeypatch, FakeSession(first_ws, second_ws)).notifications().open()

    assert (await session.next())["event"] == "one"
    assert await session.next() is None

    await session.open()
    assert (await session.next())["event"] == "two"
    await session.close()
    assert second_ws.closed
    assert session.state is SessionState.CLOSED


@pytest.mark.asyncio
async def test_open_twice_is_an_error(monkeypatch):
    session = await make_client(monkeypatch, FakeSession(FakeWebSocket([]))).notifications().open()
    with pytest.raises(RuntimeError):
        await session.open()


def test_session_starts_closed():
    hd = HiDrive(CREDS, "refresh")
    session = hd.notifications(heartbeat=30)
    assert isinstance(session, NotificationSession)
    assert session.state is SessionState.CLOSED
    assert session.heartbeat == 30
    assert not session.is_open


@pytest.mark.asyncio
async def test_open_as_first_call_uses_one_shared_session(monkeypatch):
    created = []

    class RecordingSession(aiohttp.ClientSession):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

    monkeypatch.setattr(aiohttp, "ClientSession", RecordingSession)
    hd = HiDrive(CREDS, "refresh-1")
    real_get_session = hd.dispatcher.get_session
    fake = FakeSession(FakeWebSocket([]))

    async def get_session():
        await real_get_session()
        return fake

    monkeypatch.setattr(hd.dispatcher, "get_session", get_session)
    with aioresponses() as m:
        m.post(DEFAULT_TOKEN_URL, payload={"access_token": "ws-token", "expires_in": 3600})
        async with hd:
            await hd.notifications().open()
            assert hd.auth._session is created[0]

    assert fake.urls == ["wss://api.hidrive.strato.com/2.1/subscribe?access_token=ws-token"]
    assert len(created) == 1
    assert all(session.closed for session in created)
