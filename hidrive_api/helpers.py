"""Helper functions for the hidrive_api package.

This module contains small formatting utilities shared by the resource layer
and the notification session.
"""
from typing import Iterable, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


def format_ranges(ranges: Iterable[Tuple[int, int]]) -> str:
    """Format byte ranges for the ``ranges`` parameter of /file/hash.

    An empty list is sent as ``-``, meaning the entire object (at most 256
    segments).

    Example:
        >>> format_ranges([(0, 255), (256, 511)])
        '0-255,256-511'
        >>> format_ranges([])
        '-'
    """
    formatted = ",".join(f"{start}-{end}" for start, end in ranges)
    return formatted or "-"


def mask_token(token: str, visible: int = 6) -> str:
    """Shorten a token for log output.

    Example:
        >>> mask_token("abcdefghijkl")
        'abcdef...'
    """
    if len(token) <= visible:
        return "***"
    return token[:visible] + "..."


def with_query_param(url: str, key: str, value: str) -> str:
    """Append a single query parameter to ``url``, keeping existing ones."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.append((key, value))
    return urlunsplit(parts._replace(query=urlencode(query)))


def masked_url(url: str, key: str = "access_token") -> str:
    """Return ``url`` with the value of ``key`` masked, for logging."""
    parts = urlsplit(url)
    query = [(k, mask_token(v) if k == key else v)
             for k, v in parse_qsl(parts.query, keep_blank_values=True)]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*.")))
