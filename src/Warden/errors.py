"""Error taxonomy shared by the dispatch engine and command handlers."""

from __future__ import annotations


class WardenError(Exception):
    """Base class for every error raised by the bot itself."""


class PatternError(WardenError, ValueError):
    """A command pattern could not be parsed. Raised at registration time."""

    def __init__(self, pattern: str, reason: str):
        super().__init__(f"invalid command pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class ArgumentError(WardenError):
    """The invoking user supplied missing or malformed arguments."""


class MissingParam(ArgumentError, KeyError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"missing argument `{self.name}`"


class ParseError(ArgumentError, ValueError):
    def __init__(self, name: str, value: str, expected: str):
        super().__init__(f"`{value}` is not a valid {expected} for `{name}`")
        self.name = name
        self.value = value
        self.expected = expected


class PermissionDenied(WardenError):
    """The issuer lacks the role a privileged command requires."""


class UserError(WardenError):
    """A handler refused the request; the message is shown to the user verbatim."""


class ExternalServiceError(WardenError):
    """The store, the gateway or a remote HTTP service failed or timed out."""

    def __init__(self, service: str, detail: str, *, status: int | None = None):
        super().__init__(f"{service}: {detail}")
        self.service = service
        self.detail = detail
        # HTTP status when the remote answered with an error response
        self.status = status
