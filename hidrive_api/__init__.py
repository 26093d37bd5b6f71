"""HiDrive API Client Package.

This package provides an asyncio client for the HiDrive cloud storage HTTP and
websocket API (https://api.hidrive.strato.com/2.1). It handles OAuth2 token
refresh, parameterized requests, error decoding, streamed uploads and
downloads, and change notifications.

Example Usage:
    from hidrive_api import ClientCredentials, HiDrive, Identifier

    creds = ClientCredentials("client-id", "client-secret")
    async with await HiDrive.create(creds, refresh_token) as hd:
        me = await hd.user().me()
        print(me["account"], me["home"])

        with open("report.pdf", "wb") as out:
            n = await hd.files().get(Identifier.by_path("/users/me/report.pdf"), out)

        async with hd.notifications() as events:
            async for event in events:
                print(event)
"""

from ._version import __version__, __version_info__
from .exceptions import (
    HiDriveApiException,
    AuthError,
    TransportError,
    HttpError,
    ApiError,
    DecodeError,
)
from .params import Params, Identifier, NO_PARAMS
from .oauth2 import ClientCredentials, Token, TokenManager
from .http import Dispatcher, PendingRequest
from .notifications import NotificationSession, SessionState
from .resources import HiDriveUser, HiDrivePermission, HiDriveFiles
from .client import HiDrive

__all__ = [
    # Version
    '__version__',
    '__version_info__',

    # Main classes
    'HiDrive',
    'TokenManager',
    'Dispatcher',
    'PendingRequest',
    'NotificationSession',
    'SessionState',
    'HiDriveUser',
    'HiDrivePermission',
    'HiDriveFiles',

    # Exceptions
    'HiDriveApiException',
    'AuthError',
    'TransportError',
    'HttpError',
    'ApiError',
    'DecodeError',

    # Parameters and credentials
    'Params',
    'Identifier',
    'NO_PARAMS',
    'ClientCredentials',
    'Token',
]
