"""Authenticated request dispatch and body streaming.

``Dispatcher.request`` builds a ``PendingRequest``. Nothing goes over the wire
until the caller picks a terminal action on it:

- ``await pending.json()`` decodes the JSON result,
- ``await pending.no_content()`` only checks for success,
- ``await pending.download_to(sink)`` streams the body into ``sink``.

``pending.with_body(source)`` attaches an upload body before that. Every send
carries a bearer token from the TokenManager; a 401 answer gets exactly one
refresh-and-resend before ``AuthError`` is raised. No other retries happen
here.
"""
from __future__ import annotations

import asyncio
import inspect
import io
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterable, AsyncIterator, Callable, Optional, Union

import aiohttp

from .decoder import classify_error, decode_json, is_success
from .exceptions import AuthError, DecodeError, HiDriveApiException, TransportError
from .oauth2 import Token, TokenManager
from .params import Params
from .types import JSONType

CHUNK_SIZE = 64 * 1024
DEFAULT_TIMEOUT = 30.0

log = logging.getLogger(__name__)

BodySource = Union[bytes, bytearray, io.IOBase, AsyncIterable[bytes]]
ProgressCallback = Callable[[int], Any]


class Dispatcher:
    """Sends authenticated requests over one shared aiohttp session."""

    def __init__(
        self,
        auth: TokenManager,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        ssl: Union[bool, Any] = True,
        conn_limit: Optional[int] = None,
        conn_limit_per_host: Optional[int] = None,
        keepalive_timeout: Optional[float] = None,
    ):
        """Initialize the dispatcher.

        Args:
            auth: Token manager supplying access tokens
            timeout: Timeout in seconds for ordinary calls; streaming transfers
                use it as connect/read timeout instead of a total limit
            ssl: False to disable verification, or an ``ssl.SSLContext``
            conn_limit: Maximum number of simultaneous connections
            conn_limit_per_host: Maximum connections per host
            keepalive_timeout: Idle keep-alive timeout in seconds
        """
        self.auth = auth
        self.timeout = timeout
        self._ssl = ssl
        self._conn_limit = conn_limit
        self._conn_limit_per_host = conn_limit_per_host
        self._keepalive_timeout = keepalive_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector_kwargs = {"ssl": self._ssl}
            if self._conn_limit is not None:
                connector_kwargs["limit"] = self._conn_limit
            if self._conn_limit_per_host is not None:
                connector_kwargs["limit_per_host"] = self._conn_limit_per_host
            if self._keepalive_timeout is not None:
                connector_kwargs["keepalive_timeout"] = self._keepalive_timeout
            connector = aiohttp.TCPConnector(**connector_kwargs)
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
            await self.auth.use_session(self._session)
        return self._session

    async def get_session(self) -> aiohttp.ClientSession:
        """Return the shared session, creating it on first use."""
        return await self._ensure_session()

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def request(self, method: str, url: str, params: Optional[Params] = None,
                options: Optional[Params] = None, context: Optional[str] = None) -> "PendingRequest":
        """Prepare a call to ``url`` with mandatory ``params`` and caller ``options``.

        Mandatory parameters come first on the wire; ``options`` are appended
        and never replace them.
        """
        query = Params.merge(params or Params(), options)
        full_url = f"{url}?{query}" if query else url
        return PendingRequest(self, method.upper(), full_url, context=context)

    async def send(self, pending: "PendingRequest", streaming: bool = False) -> aiohttp.ClientResponse:
        """Issue ``pending`` and return the open response.

        The caller must release the response.

        Raises:
            AuthError: If no token can be had, or the server still answers 401
                after one refresh
            TransportError: On connection failures and timeouts
        """
        session = await self._ensure_session()
        token = await self.auth.current_token()
        resp = await self._issue(session, pending, token, streaming)
        if resp.status != 401:
            return resp

        resp.release()
        log.info(f"Received 401 Unauthorized for {pending.method} {pending.path}, refreshing token...")
        token = await self.auth.refresh(stale=token)
        if not pending.replayable:
            raise AuthError("Request was rejected as unauthorized and its body cannot be resent; "
                            "the token has been refreshed, retry with a fresh body")

        resp = await self._issue(session, pending, token, streaming)
        if resp.status == 401:
            body = await _read_text(resp)
            resp.release()
            error = classify_error(401, body)
            raise AuthError(f"Request rejected as unauthorized after token refresh: {error}")
        return resp

    async def _issue(self, session: aiohttp.ClientSession, pending: "PendingRequest",
                     token: Token, streaming: bool) -> aiohttp.ClientResponse:
        headers = {"Authorization": f"Bearer {token.access_token}"}
        kwargs = {}
        if pending.has_body:
            kwargs["data"] = pending.body_for_send()
            if pending.content_type:
                headers["Content-Type"] = pending.content_type
            if pending.content_length is not None:
                headers["Content-Length"] = str(pending.content_length)
        if streaming or pending.has_body:
            kwargs["timeout"] = aiohttp.ClientTimeout(
                total=None, sock_connect=self.timeout, sock_read=self.timeout)

        log.debug(f"{pending.method} {pending.path}")
        try:
            resp = await session.request(pending.method, pending.url, headers=headers, **kwargs)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.error(f"{pending.method} {pending.path} failed: {e!r}")
            raise TransportError(f"Request failed: {e!r}") from e
        log.debug(f"{pending.path} response - status: {resp.status}, "
                  f"content-type: {resp.content_type}, content-length: {resp.content_length}")
        return resp


class PendingRequest:
    """A prepared request waiting for the caller to pick a terminal action."""

    def __init__(self, dispatcher: Dispatcher, method: str, url: str, context: Optional[str] = None):
        self._dispatcher = dispatcher
        self.method = method
        self.url = url
        self.context = context
        self.content_type: Optional[str] = None
        self.bytes_sent = 0

        self._source: Optional[BodySource] = None
        self._progress: Optional[ProgressCallback] = None
        self._start_pos: Optional[int] = None
        self._consumed = False

    @property
    def path(self) -> str:
        return self.url.split("?", 1)[0]

    # -------------------------
    # Upload body
    # -------------------------
    def with_body(self, source: BodySource, content_type: Optional[str] = "application/octet-stream",
                  progress: Optional[ProgressCallback] = None) -> "PendingRequest":
        """Attach a request body; it is streamed, never read fully into memory.

        Args:
            source: bytes, a binary file object, or an async iterable of bytes
            content_type: Content-Type header for the body
            progress: Called with the running byte count as chunks are sent
        """
        if isinstance(source, str):
            raise TypeError("Upload source must be bytes, a binary file or an async iterable of bytes")
        self._source = source
        self.content_type = content_type
        self._progress = progress
        if _is_seekable(source):
            self._start_pos = source.tell()
        return self

    @property
    def has_body(self) -> bool:
        return self._source is not None

    @property
    def content_length(self) -> Optional[int]:
        source = self._source
        if isinstance(source, (bytes, bytearray)):
            return len(source)
        if self._start_pos is not None:
            end = source.seek(0, io.SEEK_END)
            source.seek(self._start_pos)
            return end - self._start_pos
        return None

    @property
    def replayable(self) -> bool:
        """Whether the body can be sent again after a 401."""
        if self._source is None or isinstance(self._source, (bytes, bytearray)):
            return True
        return self._start_pos is not None

    def body_for_send(self) -> Any:
        source = self._source
        if self._consumed and not self.replayable:
            raise TransportError("Upload body has already been consumed")
        self._consumed = True
        self.bytes_sent = 0
        if self._start_pos is not None:
            source.seek(self._start_pos)
        if self._progress is None and isinstance(source, (bytes, bytearray)):
            self.bytes_sent = len(source)
            return source
        # File objects go through the generator too, so aiohttp does not close them.
        return self._counting(source)

    async def _counting(self, source: BodySource) -> AsyncIterator[bytes]:
        if isinstance(source, (bytes, bytearray)):
            for offset in range(0, len(source), CHUNK_SIZE):
                yield self._count(bytes(source[offset:offset + CHUNK_SIZE]))
        elif _is_async_iterable(source):
            async for chunk in source:
                yield self._count(chunk)
        else:
            loop = asyncio.get_running_loop()
            while True:
                chunk = await loop.run_in_executor(None, source.read, CHUNK_SIZE)
                if not chunk:
                    break
                yield self._count(chunk)

    def _count(self, chunk: bytes) -> bytes:
        self.bytes_sent += len(chunk)
        if self._progress is not None:
            self._progress(self.bytes_sent)
        return chunk

    # -------------------------
    # Terminal actions
    # -------------------------
    @asynccontextmanager
    async def _open(self, streaming: bool = False) -> AsyncIterator[aiohttp.ClientResponse]:
        try:
            resp = await self._dispatcher.send(self, streaming=streaming)
            try:
                yield resp
            finally:
                resp.release()
        except HiDriveApiException as e:
            if self.context and e.context is None:
                e.context = self.context
            raise

    async def json(self, model: Optional[Callable[[Any], Any]] = None) -> JSONType:
        """Send the request and decode its JSON result.

        Args:
            model: Optional callable applied to the decoded value

        Raises:
            ApiError / HttpError: On a non-2xx status
            DecodeError: If a 2xx body does not decode
        """
        async with self._open() as resp:
            raw = await _read_body(resp)
            if not is_success(resp.status):
                raise classify_error(resp.status, raw.decode("utf-8", errors="replace"))
            try:
                text = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DecodeError(f"Response is not UTF-8 text: {e}") from e
            return decode_json(text, model)

    async def no_content(self) -> None:
        """Send the request; any 2xx counts as success whatever the body."""
        async with self._open() as resp:
            if not is_success(resp.status):
                raise classify_error(resp.status, await _read_text(resp))

    async def download_to(self, sink: Any, progress: Optional[ProgressCallback] = None) -> int:
        """Stream the response body into ``sink`` and return the bytes written.

        ``sink`` needs a ``write(bytes)`` method, plain or coroutine. On a broken
        stream, bytes already written stay in the sink.

        Raises:
            TransportError: If the connection drops mid-stream
        """
        written = 0
        async with self._open(streaming=True) as resp:
            if not is_success(resp.status):
                raise classify_error(resp.status, await _read_text(resp))
            try:
                async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                    result = sink.write(chunk)
                    if inspect.isawaitable(result):
                        await result
                    written += len(chunk)
                    if progress is not None:
                        progress(written)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                log.error(f"Download of {self.path} interrupted after {written} bytes: {e!r}")
                raise TransportError(f"Download interrupted after {written} bytes: {e!r}") from e

            expected = resp.content_length
            if expected is not None and "Content-Encoding" not in resp.headers and written != expected:
                raise TransportError(f"Download truncated: got {written} of {expected} bytes")
        log.debug(f"Downloaded {written} bytes from {self.path}")
        return written


async def _read_body(resp: aiohttp.ClientResponse) -> bytes:
    try:
        return await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise TransportError(f"Reading response failed: {e!r}") from e


async def _read_text(resp: aiohttp.ClientResponse) -> str:
    return (await _read_body(resp)).decode("utf-8", errors="replace")


def _is_async_iterable(source: Any) -> bool:
    return hasattr(source, "__aiter__")


def _is_seekable(source: Any) -> bool:
    seekable = getattr(source, "seekable", None)
    return callable(seekable) and seekable()
