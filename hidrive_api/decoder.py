"""Response classification and JSON decoding.

2xx bodies are decoded as JSON into the caller's requested shape. Any other
status is decoded as the service's error envelope (``{"code": ..., "msg": ...}``)
when possible, and reported as a bare ``HttpError`` otherwise; the service does
not send an envelope on every failure (some 5xx paths, gateway errors).
"""
import json
import logging
from typing import Any, Callable, Optional

from .exceptions import ApiError, DecodeError, HttpError
from .types import JSONType

log = logging.getLogger(__name__)


def is_success(status: int) -> bool:
    return 200 <= status < 300


def classify_error(status: int, body: str) -> HttpError:
    """Turn a non-2xx response into an ``ApiError`` or a plain ``HttpError``."""
    try:
        data = json.loads(body) if body else None
    except ValueError:
        data = None

    if isinstance(data, dict) and ("msg" in data or "code" in data):
        auth = data.get("auth")
        return ApiError(
            status,
            message=str(data.get("msg", "")),
            code=str(data.get("code", "")),
            auth=str(auth) if auth is not None else None,
            body=body,
        )
    log.debug(f"HTTP {status} without error envelope, body length {len(body)}")
    return HttpError(status, body)


def decode_json(raw: str, model: Optional[Callable[[Any], Any]] = None) -> JSONType:
    """Decode a success body.

    Args:
        raw: Response body text
        model: Optional callable applied to the decoded value, e.g. a dataclass
            ``from_json`` or a validating constructor

    Returns:
        The decoded value (None for an empty body)

    Raises:
        DecodeError: If the body is not JSON or ``model`` rejects it
    """
    if not raw.strip():
        value = None
    else:
        try:
            value = json.loads(raw)
        except ValueError as e:
            raise DecodeError(f"Response is not valid JSON: {e}") from e

    if model is None:
        return value
    try:
        return model(value)
    except (TypeError, ValueError, KeyError) as e:
        raise DecodeError(f"Response does not match expected shape: {e}") from e
