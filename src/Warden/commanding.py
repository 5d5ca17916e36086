# src/Warden/commanding.py
from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from Warden.arguments import ArgumentBag
from Warden.patterns import Pattern

if TYPE_CHECKING:
    from Warden.config import Settings
    from Warden.crates import CratesClient
    from Warden.gateway import Gateway
    from Warden.godbolt import GodboltClient
    from Warden.playground import PlaygroundClient
    from Warden.state import SharedState


# --- Transport-agnostic context the handler receives ---
class Responder(Protocol):
    async def send(self, content: str, *, ephemeral: bool = False) -> None: ...


@dataclass
class Invocation:
    name: str
    args: ArgumentBag
    user_id: int
    channel_id: int
    guild_id: int | None
    responder: Responder
    gateway: Gateway
    state: SharedState
    settings: Settings | None = None
    godbolt: GodboltClient | None = None
    playground: PlaygroundClient | None = None
    crates: CratesClient | None = None
    # Role ids carried by the inbound event; None means "ask the gateway"
    member_roles: tuple[int, ...] | None = None
    # Prefix the user typed, or "/" for slash invocations
    prefix: str = ""


Handler = Callable[[Invocation], Awaitable[None]]


# --- Command descriptor ---
@dataclass(frozen=True)
class Command:
    pattern: Pattern
    handler: Handler
    description: str = ""
    moderator_only: bool = False
    hidden: bool = False

    @property
    def usage(self) -> str:
        return self.pattern.usage

    @property
    def name(self) -> str:
        return " ".join(self.pattern.path)


class CommandRegistry:
    """Ordered set of command patterns.

    Lookups try entries in registration order and the first full match wins,
    so more specific patterns must be registered before general ones
    (``tag create {key} [value]`` before ``tag {key}``).
    """

    def __init__(self) -> None:
        self._entries: list[Command] = []

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> tuple[Command, ...]:
        return tuple(self._entries)

    def register(
        self,
        pattern: str,
        handler: Handler,
        *,
        description: str = "",
        moderator_only: bool = False,
        hidden: bool = False,
    ) -> Command:
        cmd = Command(
            pattern=Pattern.compile(pattern),
            handler=handler,
            description=description,
            moderator_only=moderator_only,
            hidden=hidden,
        )
        self._entries.append(cmd)
        return cmd

    def dispatch(
        self, text: str, *, case_insensitive: bool = False
    ) -> tuple[Command, ArgumentBag] | None:
        for cmd in self._entries:
            captures = cmd.pattern.match(text, case_insensitive=case_insensitive)
            if captures is not None:
                return cmd, ArgumentBag(captures)
        return None

    def help_listing(self) -> list[str]:
        return [cmd.usage for cmd in self._entries if not cmd.hidden]

    def usage_for(self, text: str, *, case_insensitive: bool = False) -> list[str]:
        """Usages of every entry named by the first word of ``text``."""
        words = text.split()
        if not words:
            return []
        first = words[0].casefold() if case_insensitive else words[0]
        out: list[str] = []
        for cmd in self._entries:
            path = cmd.pattern.path
            if not path:
                continue
            head = path[0].casefold() if case_insensitive else path[0]
            if head == first:
                out.append(cmd.usage)
        return out

    def resolve_invocation(
        self, path: str, options: Mapping[str, Any]
    ) -> tuple[Command, ArgumentBag] | None:
        """Find the entry for a structured slash invocation.

        ``path`` is the command name plus any subcommand. An entry qualifies
        when its leading static words equal the path and its parameter names
        equal the supplied option names.
        """
        wanted_path = tuple(path.split())
        wanted_names = set(options)
        for cmd in self._entries:
            if cmd.pattern.path != wanted_path:
                continue
            if set(cmd.pattern.param_names) != wanted_names:
                continue
            return cmd, ArgumentBag({k: str(v) for k, v in options.items()})
        return None


# --- Global registry (populated by decorator) ---
_REGISTRY = CommandRegistry()


def command(
    pattern: str,
    *,
    description: str = "",
    moderator_only: bool = False,
    hidden: bool = False,
):
    def wrap(func: Handler) -> Handler:
        _REGISTRY.register(
            pattern,
            func,
            description=description,
            moderator_only=moderator_only,
            hidden=hidden,
        )
        return func

    return wrap


def default_registry() -> CommandRegistry:
    return _REGISTRY
