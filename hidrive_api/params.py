"""URL parameter handling for HiDrive calls.

Every call takes a set of mandatory parameters, built by the resource layer,
and an optional set supplied by the caller. ``Params`` is an ordered multimap:
keys may repeat and insertion order is kept on the wire. Merging appends the
optional set after the mandatory one, so nothing is ever overridden; if a key
appears in both, both values are sent.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlencode

ParamValue = Union[str, int]


class Params:
    """Ordered sequence of (key, value) string pairs."""

    def __init__(self):
        self._pairs: List[Tuple[str, str]] = []

    @classmethod
    def from_pairs(cls, pairs: Union[Mapping[str, ParamValue], Iterable[Tuple[str, ParamValue]]]) -> "Params":
        """Build Params from a mapping or a sequence of pairs.

        Integers are formatted in base 10, everything else through ``str()``.
        """
        params = cls()
        items = pairs.items() if isinstance(pairs, Mapping) else pairs
        for key, value in items:
            if isinstance(value, bool):
                params.add_str(key, "true" if value else "false")
            elif isinstance(value, int):
                params.add_int(key, value)
            else:
                params.add_str(key, str(value))
        return params

    def add_str(self, key: str, value: str) -> "Params":
        self._pairs.append((key, value))
        return self

    def add_int(self, key: str, value: int) -> "Params":
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Parameter '{key}' expects an integer, got {type(value).__name__}")
        self._pairs.append((key, str(value)))
        return self

    def add_uint(self, key: str, value: int) -> "Params":
        if isinstance(value, int) and not isinstance(value, bool) and value < 0:
            raise ValueError(f"Parameter '{key}' must be non-negative, got {value}")
        return self.add_int(key, value)

    def extend(self, other: Optional["Params"]) -> "Params":
        if other is not None:
            self._pairs.extend(other)
        return self

    def encode(self) -> str:
        """Return the URL-encoded query string for these parameters.

        Commas stay literal, as in the comma separated ``fields`` and ``ranges``
        values.
        """
        return urlencode(self._pairs, safe=",")

    @staticmethod
    def merge(mandatory: "Params", optional: Optional["Params"] = None) -> str:
        """Serialize ``mandatory`` followed by ``optional`` into one query string.

        ``optional`` may be None (see ``NO_PARAMS``), which contributes nothing.

        Example:
            >>> Params.merge(Params().add_int("a", 1),
            ...              Params().add_int("a", 2).add_int("b", 3))
            'a=1&a=2&b=3'
        """
        return Params().extend(mandatory).extend(optional).encode()

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __bool__(self) -> bool:
        return bool(self._pairs)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Params):
            return NotImplemented
        return self._pairs == other._pairs

    def __repr__(self) -> str:
        return f"Params({self._pairs!r})"


# Pass this when a call takes no caller-supplied parameters.
NO_PARAMS: Optional[Params] = None


@dataclass(frozen=True)
class Identifier:
    """Selects a remote object by pid, by path, or by a path relative to a pid.

    * if only ``pid`` is given, operate on this object.
    * if only ``path`` is given, operate on this file or directory.
    * if both are given, ``path`` is taken to be relative to ``pid``.
    """

    pid: Optional[str] = None
    path: Optional[str] = None

    def __post_init__(self):
        if self.pid is None and self.path is None:
            raise ValueError("Identifier needs a pid, a path, or both")
        if self.pid == "" or self.path == "":
            raise ValueError(f"Identifier fields must not be empty, got pid={self.pid!r} path={self.path!r}")

    @classmethod
    def by_pid(cls, pid: str) -> "Identifier":
        return cls(pid=pid)

    @classmethod
    def by_path(cls, path: str) -> "Identifier":
        return cls(path=path)

    @classmethod
    def relative(cls, pid: str, path: str) -> "Identifier":
        return cls(pid=pid, path=path)

    @property
    def is_path(self) -> bool:
        return self.pid is None

    @property
    def is_pid(self) -> bool:
        return self.path is None

    @property
    def is_relative(self) -> bool:
        return self.pid is not None and self.path is not None

    def require_path(self, what: str = "identifier") -> "Identifier":
        """Reject pid-only identifiers, for calls that create a new object."""
        if self.is_pid:
            raise ValueError(f"{what} must be a path or a path relative to a pid")
        return self

    def to_params(self, params: Params, id_key: str = "pid", path_key: str = "path") -> Params:
        """Append the pid and/or path entries to ``params`` under the given keys."""
        if self.pid is not None:
            params.add_str(id_key, self.pid)
        if self.path is not None:
            params.add_str(path_key, self.path)
        return params
