# src/Warden/arguments.py
"""Read-only view over the parameters captured for one dispatch."""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from datetime import timedelta
from types import MappingProxyType

from Warden.errors import MissingParam, ParseError

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}
_DIGITS_RE = re.compile(r"[0-9]+")
_DURATION_PART_RE = re.compile(r"([0-9]+)([smhdw])")
_DURATION_RE = re.compile(r"(?:[0-9]+[smhdw])+")

# Longest duration any command accepts; keeps expiry arithmetic inside datetime range
MAX_DURATION = timedelta(weeks=520)

# kind -> markup regex; the id is group 1
_MENTION_RES = {
    "user": re.compile(r"<@!?([0-9]+)>"),
    "channel": re.compile(r"<#([0-9]+)>"),
    "role": re.compile(r"<@&([0-9]+)>"),
}


def parse_duration(
    text: str, *, default_unit: str = "s", allow_zero: bool = False
) -> timedelta | None:
    """Parse ``10m``, ``2h``, ``1h30m`` or a bare integer in ``default_unit``.

    Returns None when the text is not a duration, resolves to a non-positive
    value that is not allowed, or exceeds ``MAX_DURATION``.
    """
    raw = text.strip().lower()
    if _DIGITS_RE.fullmatch(raw):
        seconds = int(raw) * _UNIT_SECONDS[default_unit]
    elif _DURATION_RE.fullmatch(raw):
        seconds = sum(int(n) * _UNIT_SECONDS[u] for n, u in _DURATION_PART_RE.findall(raw))
    else:
        return None
    if seconds < 0 or (seconds == 0 and not allow_zero):
        return None
    if seconds > MAX_DURATION.total_seconds():
        return None
    return timedelta(seconds=seconds)


def format_duration(delta: timedelta) -> str:
    seconds = int(delta.total_seconds())
    if seconds == 0:
        return "0s"
    parts = []
    for unit in ("w", "d", "h", "m", "s"):
        size = _UNIT_SECONDS[unit]
        n, seconds = divmod(seconds, size)
        if n:
            parts.append(f"{n}{unit}")
    return "".join(parts)


class ArgumentBag(Mapping[str, str]):
    """Captured parameters for a single handler invocation.

    Typed getters raise MissingParam or ParseError; the dispatcher turns both
    into a usage reply.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, str] | None = None):
        self._values = MappingProxyType(dict(values or {}))

    def __getitem__(self, name: str) -> str:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ArgumentBag({dict(self._values)!r})"

    def get_string(self, name: str) -> str:
        try:
            return self._values[name]
        except KeyError:
            raise MissingParam(name) from None

    def get_optional(self, name: str, default: str | None = None) -> str | None:
        return self._values.get(name, default)

    def get_int(self, name: str) -> int:
        raw = self.get_string(name)
        try:
            return int(raw.strip())
        except ValueError:
            raise ParseError(name, raw, "whole number") from None

    def get_duration(
        self, name: str, *, default_unit: str = "s", allow_zero: bool = False
    ) -> timedelta:
        raw = self.get_string(name)
        delta = parse_duration(raw, default_unit=default_unit, allow_zero=allow_zero)
        if delta is None:
            raise ParseError(name, raw, "duration (e.g. 10m, 2h, 1d)")
        return delta

    def get_mention(self, name: str, *, kind: str = "user") -> int:
        raw = self.get_string(name)
        stripped = raw.strip()
        # Raw snowflakes are accepted too; slash options deliver them that way
        if _DIGITS_RE.fullmatch(stripped):
            return int(stripped)
        m = _MENTION_RES[kind].fullmatch(stripped)
        if m is None:
            raise ParseError(name, raw, f"{kind} mention")
        return int(m.group(1))
