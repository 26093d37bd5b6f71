"""OAuth2 token handling for HiDrive.

The TokenManager owns the client credentials and the current token. It hands
out access tokens that stay valid for at least ``margin`` seconds and refreshes
them through the token endpoint when needed. Concurrent callers that find the
token expired share a single refresh request.

Persisting the refresh token across restarts is up to the caller; pass
``on_refresh`` to be told about every new token.
"""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union
from urllib.parse import urlencode

import aiohttp

from .exceptions import AuthError

DEFAULT_TOKEN_URL = "https://my.hidrive.com/oauth2/token"
DEFAULT_AUTHORIZE_URL = "https://my.hidrive.com/client/authorize"
DEFAULT_REFRESH_MARGIN = 60.0
DEFAULT_SCOPE = "user,rw"
DEFAULT_EXPIRES_IN = 3600

log = logging.getLogger(__name__)

RefreshCallback = Callable[["Token"], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class ClientCredentials:
    """OAuth2 client id and secret of the registered application."""

    client_id: str
    client_secret: str

    @classmethod
    def from_env(cls, prefix: str = "HIDRIVE_") -> "ClientCredentials":
        """Read ``HIDRIVE_CLIENT_ID`` and ``HIDRIVE_CLIENT_SECRET``.

        Raises:
            ValueError: If either variable is missing or empty
        """
        client_id = os.environ.get(prefix + "CLIENT_ID")
        client_secret = os.environ.get(prefix + "CLIENT_SECRET")
        if not client_id or not client_secret:
            raise ValueError(f"{prefix}CLIENT_ID and {prefix}CLIENT_SECRET must be set")
        return cls(client_id, client_secret)


@dataclass(frozen=True)
class Token:
    access_token: str
    expires_at: float
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    scope: Optional[str] = None

    def is_expired(self, margin: float = 0.0, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now + margin >= self.expires_at

    @classmethod
    def from_response(cls, data: Dict[str, Any], previous_refresh_token: Optional[str] = None,
                      now: Optional[float] = None) -> "Token":
        """Build a Token from a token endpoint response.

        The endpoint may or may not rotate the refresh token; when it does not
        send one, the previous refresh token is kept.
        """
        now = time.time() if now is None else now
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("token response has no access_token")
        expires_in = int(data.get("expires_in", DEFAULT_EXPIRES_IN))
        return cls(
            access_token=access_token,
            expires_at=now + expires_in,
            refresh_token=data.get("refresh_token") or previous_refresh_token,
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope"),
        )


class TokenManager:
    """Caches the access token and coordinates refreshes.

    Only one refresh is ever in flight; callers arriving while it runs wait for
    its result. A caller that gets cancelled while waiting does not cancel the
    refresh for everyone else.
    """

    def __init__(
        self,
        credentials: ClientCredentials,
        refresh_token: Optional[str] = None,
        *,
        token: Optional[Token] = None,
        token_url: str = DEFAULT_TOKEN_URL,
        authorize_url: str = DEFAULT_AUTHORIZE_URL,
        margin: float = DEFAULT_REFRESH_MARGIN,
        on_refresh: Optional[RefreshCallback] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ):
        self._credentials = credentials
        self._refresh_token = refresh_token or (token.refresh_token if token else None)
        self._token = token
        self.token_url = token_url
        self.authorize_url = authorize_url
        self.margin = margin
        self.on_refresh = on_refresh
        self.timeout = timeout

        self._session = session
        self._owns_session = False
        self._lock = asyncio.Lock()
        self._refresh_task: Optional[asyncio.Task] = None
        self.refresh_count = 0

    # -------------------------
    # Session handling
    # -------------------------
    async def use_session(self, session: aiohttp.ClientSession) -> None:
        """Share an existing session instead of creating one.

        A session this manager created for itself is closed first.
        """
        if self._owns_session and self._session is not None and self._session is not session:
            await self.close()
        self._session = session
        self._owns_session = False

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    # -------------------------
    # Token access
    # -------------------------
    @property
    def access_token(self) -> Optional[str]:
        """The cached access token string, which may be stale."""
        return self._token.access_token if self._token else None

    @property
    def refresh_token(self) -> Optional[str]:
        return self._refresh_token

    async def current_token(self) -> Token:
        """Return a token valid for at least ``margin`` seconds.

        Raises:
            AuthError: If a needed refresh fails
        """
        token = self._token
        if token is not None and not token.is_expired(self.margin):
            return token
        return await self.refresh(stale=token)

    async def refresh(self, stale: Optional[Union[Token, str]] = None) -> Token:
        """Exchange the refresh token for a new access token.

        Args:
            stale: The token the caller found unusable. If the cache already
                holds a different, still valid token, it is returned without a
                network call.

        Raises:
            AuthError: If the refresh fails
        """
        if stale is not None:
            stale_value = stale.access_token if isinstance(stale, Token) else stale
            cached = self._token
            if (cached is not None and cached.access_token != stale_value
                    and not cached.is_expired(self.margin)):
                log.debug("Token already refreshed by another caller")
                return cached

        task = self._refresh_task
        if task is None:
            task = asyncio.ensure_future(self._do_refresh())
            task.add_done_callback(self._refresh_done)
            self._refresh_task = task
        return await asyncio.shield(task)

    def _refresh_done(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled() and task.exception() is not None:
            log.error(f"Token refresh failed: {task.exception()}")

    async def _do_refresh(self) -> Token:
        async with self._lock:
            refresh_token = self._refresh_token
            if not refresh_token:
                raise AuthError("No refresh token available; authorize the application first")
            log.info("Refreshing access token...")
            data = await self._token_request({
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            })
            token = self._parse_token(data, refresh_token)
            self.refresh_count += 1
            await self._install(token)
            log.info(f"Access token refreshed, valid for {int(token.expires_at - time.time())}s")
            return token

    # -------------------------
    # Authorization code grant
    # -------------------------
    def authorization_url(self, redirect_uri: Optional[str] = None, scope: str = DEFAULT_SCOPE,
                          lang: Optional[str] = None, state: Optional[str] = None) -> str:
        """Build the URL a user opens to grant this application access."""
        query = {
            "client_id": self._credentials.client_id,
            "response_type": "code",
            "scope": scope,
        }
        if lang:
            query["lang"] = lang
        if redirect_uri:
            query["redirect_uri"] = redirect_uri
        if state:
            query["state"] = state
        return f"{self.authorize_url}?{urlencode(query)}"

    async def exchange_code(self, code: str) -> Token:
        """Exchange an authorization code for a token and install it.

        Raises:
            AuthError: If the code is rejected or the endpoint is unreachable
        """
        async with self._lock:
            log.info("Exchanging authorization code for token...")
            data = await self._token_request({"grant_type": "authorization_code", "code": code})
            token = self._parse_token(data, self._refresh_token)
            await self._install(token)
            return token

    # -------------------------
    # Internals
    # -------------------------
    def _parse_token(self, data: Any, previous_refresh_token: Optional[str]) -> Token:
        if not isinstance(data, dict):
            raise AuthError("Token endpoint returned an unexpected response")
        try:
            return Token.from_response(data, previous_refresh_token)
        except (TypeError, ValueError) as e:
            raise AuthError(f"Invalid token response: {e}") from e

    async def _install(self, token: Token) -> None:
        self._token = token
        self._refresh_token = token.refresh_token
        if self.on_refresh is not None:
            result = self.on_refresh(token)
            if inspect.isawaitable(result):
                await result

    async def _token_request(self, form: Dict[str, str]) -> Any:
        form = dict(form, client_id=self._credentials.client_id,
                    client_secret=self._credentials.client_secret)
        session = await self._ensure_session()
        try:
            async with session.post(self.token_url, data=form) as resp:
                log.debug(f"token endpoint response - status: {resp.status}")
                if resp.status != 200:
                    text = await resp.text()
                    raise AuthError(f"Token request failed with HTTP {resp.status}: "
                                    f"{_error_description(text)}")
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise AuthError(f"Token endpoint returned invalid JSON: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AuthError(f"Token request failed: {e}") from e


def _error_description(text: str) -> str:
    try:
        data = json.loads(text)
    except ValueError:
        return text[:200]
    if isinstance(data, dict):
        return str(data.get("error_description") or data.get("error") or data)
    return text[:200]
