"""HiDrive API client implementation.

This module provides the HiDrive class, the hub that owns the HTTP session,
the token manager and the request dispatcher. Resource accessors (``user()``,
``permissions()``, ``files()``) and the notification session are built on top
of it.

API documentation can be found at https://developer.hidrive.com/http-api-reference/.
"""
import logging
from typing import Any, Optional

from .http import DEFAULT_TIMEOUT, Dispatcher, PendingRequest
from .notifications import DEFAULT_WS_BASE_URL, NotificationSession
from .oauth2 import (
    DEFAULT_REFRESH_MARGIN,
    DEFAULT_TOKEN_URL,
    ClientCredentials,
    RefreshCallback,
    Token,
    TokenManager,
)
from .params import Params
from .resources import HiDriveFiles, HiDrivePermission, HiDriveUser

DEFAULT_API_BASE_URL = "https://api.hidrive.strato.com/2.1"

log = logging.getLogger(__name__)


class HiDrive:
    """Client for the HiDrive HTTP and websocket API.

    All calls take a set of parameters varying by call; the resource classes
    fill in the mandatory ones and accept extra ``Params`` from the caller.
    """

    def __init__(
        self,
        credentials: ClientCredentials,
        refresh_token: Optional[str] = None,
        *,
        token: Optional[Token] = None,
        base_url: str = DEFAULT_API_BASE_URL,
        ws_url: str = DEFAULT_WS_BASE_URL,
        token_url: str = DEFAULT_TOKEN_URL,
        timeout: float = DEFAULT_TIMEOUT,
        refresh_margin: float = DEFAULT_REFRESH_MARGIN,
        on_refresh: Optional[RefreshCallback] = None,
        ssl: Any = True,
        conn_limit: Optional[int] = None,
        conn_limit_per_host: Optional[int] = None,
        keepalive_timeout: Optional[float] = None,
    ):
        """Initialize the client. No network traffic happens here.

        Args:
            credentials: OAuth2 client id and secret
            refresh_token: Refresh token obtained earlier by the caller
            token: A previously obtained token, used until it expires
            base_url: REST endpoint, must be HTTPS
            ws_url: Notification websocket endpoint
            token_url: OAuth2 token endpoint
            timeout: Request timeout in seconds (default: 30)
            refresh_margin: Refresh tokens this many seconds before expiry
            on_refresh: Called with every new token, e.g. to persist it
            ssl: False to disable certificate verification, or an SSLContext
            conn_limit: Maximum number of simultaneous connections
            conn_limit_per_host: Maximum connections per host
            keepalive_timeout: Idle keep-alive timeout in seconds
        """
        if not base_url.lower().startswith("https://"):
            raise ValueError(f"HTTPS is required for the API base URL, got {base_url!r}")
        self.base_url = base_url.rstrip("/")
        self.ws_url = ws_url
        self.timeout = timeout
        self.auth = TokenManager(
            credentials,
            refresh_token,
            token=token,
            token_url=token_url,
            margin=refresh_margin,
            on_refresh=on_refresh,
            timeout=timeout,
        )
        self.dispatcher = Dispatcher(
            self.auth,
            timeout=timeout,
            ssl=ssl,
            conn_limit=conn_limit,
            conn_limit_per_host=conn_limit_per_host,
            keepalive_timeout=keepalive_timeout,
        )

    @classmethod
    async def create(cls, credentials: ClientCredentials, refresh_token: str, **kwargs) -> "HiDrive":
        """Create a client and make sure a valid access token can be obtained.

        Raises:
            AuthError: If the refresh token is rejected
        """
        inst = cls(credentials, refresh_token, **kwargs)
        try:
            await inst.dispatcher.get_session()
            await inst.auth.current_token()
        except BaseException:
            await inst.close()
            raise
        log.info("HiDrive client ready")
        return inst

    async def close(self) -> None:
        await self.dispatcher.close()
        await self.auth.close()

    async def __aenter__(self) -> "HiDrive":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def request(self, method: str, path: str, params: Optional[Params] = None,
                options: Optional[Params] = None, context: Optional[str] = None) -> PendingRequest:
        """Prepare a call to ``path`` relative to the base URL.

        This is the primitive the resource classes use; it is public for
        endpoints they do not cover.
        """
        return self.dispatcher.request(method, self.base_url + path, params, options,
                                       context=context or path)

    def user(self) -> HiDriveUser:
        return HiDriveUser(self)

    def permissions(self) -> HiDrivePermission:
        return HiDrivePermission(self)

    def files(self) -> HiDriveFiles:
        return HiDriveFiles(self)

    def notifications(self, heartbeat: Optional[float] = None) -> NotificationSession:
        """Return a notification session; open it with ``open()`` or ``async with``."""
        return NotificationSession(self.dispatcher, self.ws_url, heartbeat=heartbeat)
