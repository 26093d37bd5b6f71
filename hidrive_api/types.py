"""Shared typing helpers used across the hidrive_api package.

This module centralizes JSON-like typings and the typed dictionaries returned
by the resource layer. The server adds fields over time, so every TypedDict is
declared with ``total=False`` and unknown keys are simply carried along.
"""
from __future__ import annotations

from typing import Dict, List, Optional, TypedDict, Union


# Recursive JSON-ish type used for payloads / returned JSON values
JSONType = Union[Dict[str, "JSONType"], List["JSONType"], str, int, float, bool, None]


class Folder(TypedDict, total=False):
    id: str
    path: str
    size: int


class Protocols(TypedDict, total=False):
    ftp: bool
    rsync: bool
    webdav: bool
    scp: bool
    cifs: bool
    git: bool


class User(TypedDict, total=False):
    account: str
    encrypted: bool
    descr: str
    is_owner: bool
    email: str
    email_verified: bool
    language: str
    protocols: Protocols
    is_admin: bool
    alias: str
    home: str
    home_id: str
    folder: Folder


class Item(TypedDict, total=False):
    """A file or directory as returned by /file, /dir and /meta."""
    id: str
    name: str
    path: str
    parent_id: str
    type: str
    size: int
    ctime: int
    mtime: int
    has_dirs: bool
    readable: bool
    writable: bool
    members: List["Item"]
    nmembers: int
    chash: str
    mhash: str
    mohash: str
    nhash: str


class Permissions(TypedDict, total=False):
    id: str
    path: str
    account: str
    readable: bool
    writable: bool


class Url(TypedDict, total=False):
    url: str
    valid_until: int


class FileHash(TypedDict, total=False):
    level: int
    chash: str
    list: List[List[Optional[str]]]


class SearchResult(TypedDict, total=False):
    result: List[Item]
    limit: int
    offset: int


class WebsocketNotification(TypedDict, total=False):
    """One event pushed over the /subscribe websocket."""
    event: str
    path: str
    id: str
    time: int
