"""WebSocket notification session.

HiDrive pushes change notifications over ``wss://.../2.1/subscribe``. The
access token travels as the ``access_token`` query parameter of the handshake.
A session moves through CONNECTING -> OPEN -> CLOSED (or FAILED) and does not
reconnect on its own; call ``open()`` again after it has closed.

Example:
    async with hd.notifications() as session:
        async for event in session:
            print(event["event"], event.get("path"))
"""
import asyncio
import enum
import json
import logging
from typing import Optional

import aiohttp

from .exceptions import AuthError, DecodeError, TransportError
from .helpers import masked_url, with_query_param
from .http import Dispatcher
from .types import WebsocketNotification

DEFAULT_WS_BASE_URL = "wss://api.hidrive.strato.com/2.1/subscribe"

log = logging.getLogger(__name__)

_CLOSE_TYPES = (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED)


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    FAILED = "failed"


class NotificationSession:
    """Pull-based stream of notification events from one websocket connection."""

    def __init__(self, dispatcher: Dispatcher, url: str = DEFAULT_WS_BASE_URL,
                 heartbeat: Optional[float] = None):
        """Initialize the session; no connection is made until ``open()``.

        Args:
            dispatcher: Dispatcher whose session and token manager are used
            url: Notification endpoint
            heartbeat: Send a ping every ``heartbeat`` seconds if set
        """
        self._dispatcher = dispatcher
        self.url = url
        self.heartbeat = heartbeat
        self.state = SessionState.CLOSED
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    async def open(self) -> "NotificationSession":
        """Perform the websocket handshake with a current access token.

        Raises:
            AuthError: If no access token can be obtained
            TransportError: If the handshake fails
        """
        if self.state is SessionState.OPEN:
            raise RuntimeError("Notification session is already open")

        self.state = SessionState.CONNECTING
        session = await self._dispatcher.get_session()
        try:
            token = await self._dispatcher.auth.current_token()
        except AuthError:
            self.state = SessionState.FAILED
            raise
        url = with_query_param(self.url, "access_token", token.access_token)
        log.info(f"Requesting WSS connection to {masked_url(url)}")
        try:
            self._ws = await session.ws_connect(url, heartbeat=self.heartbeat)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.state = SessionState.FAILED
            log.error(f"Websocket handshake failed: {e!r}")
            raise TransportError(f"Websocket handshake failed: {e!r}") from e

        self.state = SessionState.OPEN
        log.info("Notification session open")
        return self

    async def next(self) -> Optional[WebsocketNotification]:
        """Wait for the next event.

        Control and binary frames are skipped. Returns None once the server
        closes the connection or it drops; from then on every call returns None
        right away.

        Raises:
            DecodeError: If a text frame is not valid JSON (the session stays open)
            TransportError: If reading from the socket fails
        """
        if self.state is not SessionState.OPEN or self._ws is None:
            return None

        while True:
            try:
                msg = await self._ws.receive()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                await self._finish(SessionState.FAILED)
                raise TransportError(f"Websocket read failed: {e!r}") from e

            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    event = json.loads(msg.data)
                except ValueError as e:
                    raise DecodeError(f"Notification is not valid JSON: {e}") from e
                if not isinstance(event, dict):
                    raise DecodeError(f"Notification is not a JSON object: {msg.data[:100]!r}")
                return event
            if msg.type in _CLOSE_TYPES:
                log.info("Notification session closed by server")
                await self._finish(SessionState.CLOSED)
                return None
            if msg.type == aiohttp.WSMsgType.ERROR:
                log.warning(f"Notification session terminated: {msg.data!r}")
                await self._finish(SessionState.CLOSED)
                return None
            log.debug(f"Skipping websocket frame of type {msg.type!r}")

    async def close(self) -> None:
        if self.state in (SessionState.OPEN, SessionState.CONNECTING):
            await self._finish(SessionState.CLOSED)
        elif self._ws is not None and not self._ws.closed:
            await self._ws.close()

    async def _finish(self, state: SessionState) -> None:
        self.state = state
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> WebsocketNotification:
        event = await self.next()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> "NotificationSession":
        if self.state is not SessionState.OPEN:
            await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
