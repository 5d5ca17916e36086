# src/Warden/dispatcher.py
"""Turns inbound events into handler invocations.

Each event moves through Received -> Prefix-Checked -> Resolving -> Executing
and ends in one of the ``DispatchOutcome`` terminals. Handler failures are
classified and answered here; nothing a handler raises escapes ``execute``.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Coroutine, Iterable, Mapping
from datetime import timedelta
from enum import Enum
from typing import Any

import structlog
from structlog.contextvars import bound_contextvars

from Warden import text
from Warden.commanding import Command, CommandRegistry, Invocation, Responder
from Warden.config import Settings
from Warden.crates import CratesClient
from Warden.discord_schemas import MessageEvent, MessageUpdateEvent
from Warden.errors import ArgumentError, ExternalServiceError, PermissionDenied, UserError
from Warden.gateway import Gateway
from Warden.godbolt import GodboltClient
from Warden.metrics import inc_counter, observe_histogram
from Warden.playground import PlaygroundClient
from Warden.responder import ChannelResponder
from Warden.state import SharedState

log = structlog.get_logger()


class DispatchOutcome(str, Enum):
    IGNORED = "ignored"
    UNKNOWN_COMMAND = "unknown_command"
    COMPLETED = "completed"
    USAGE_ERROR = "usage_error"
    PERMISSION_DENIED = "permission_denied"
    USER_ERROR = "user_error"
    FAILED = "failed"


def strip_prefix(content: str, prefixes: Iterable[str]) -> tuple[str, str] | None:
    """Return ``(prefix, rest)`` for the first prefix ``content`` starts with."""
    for prefix in prefixes:
        if prefix and content.startswith(prefix):
            return prefix, content[len(prefix) :]
    return None


class Dispatcher:
    def __init__(
        self,
        *,
        registry: CommandRegistry,
        state: SharedState,
        gateway: Gateway,
        settings: Settings,
        godbolt: GodboltClient | None = None,
        playground: PlaygroundClient | None = None,
        crates: CratesClient | None = None,
    ):
        self.registry = registry
        self.state = state
        self.gateway = gateway
        self.settings = settings
        self.godbolt = godbolt
        self.playground = playground
        self.crates = crates
        self._tasks: set[asyncio.Task] = set()

    async def prefixes_for(self, user_id: int) -> list[str]:
        prefixes = set(self.settings.command_prefixes)
        if self.settings.features_user_prefixes:
            prefixes.update(await self.state.user_prefixes(user_id))
        # Longest first, so "hey ferris " is tried before "h"
        return sorted((p for p in prefixes if p), key=lambda p: (-len(p), p))

    # --- Intake ---

    def spawn(self, coro: Coroutine[Any, Any, DispatchOutcome]) -> asyncio.Task:
        """Run one event as its own task so intake never waits on a handler."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def spawn_message(self, event: MessageEvent) -> asyncio.Task:
        return self.spawn(self.handle_message(event))

    def spawn_edit(self, event: MessageUpdateEvent) -> asyncio.Task:
        return self.spawn(self.handle_edit(event))

    async def drain(self) -> None:
        """Wait for every spawned event task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def handle_message(self, event: MessageEvent) -> DispatchOutcome:
        with bound_contextvars(event_id=event.id):
            if event.author.bot or not event.author.id:
                return DispatchOutcome.IGNORED
            user_id = int(event.author.id)
            stripped = strip_prefix(event.content, await self.prefixes_for(user_id))
            if stripped is None:
                return DispatchOutcome.IGNORED
            prefix, body = stripped

            channel_id = int(event.channel_id)
            responder = ChannelResponder(self.gateway, channel_id)
            case_insensitive = self.settings.commands_case_insensitive
            resolved = self.registry.dispatch(body, case_insensitive=case_insensitive)
            if resolved is None:
                return await self._unknown_command(body, prefix, responder)

            cmd, args = resolved
            inv = Invocation(
                name=cmd.name,
                args=args,
                user_id=user_id,
                channel_id=channel_id,
                guild_id=int(event.guild_id) if event.guild_id else None,
                responder=responder,
                gateway=self.gateway,
                state=self.state,
                settings=self.settings,
                godbolt=self.godbolt,
                playground=self.playground,
                crates=self.crates,
                member_roles=(
                    tuple(int(r) for r in event.member.roles) if event.member else None
                ),
                prefix=prefix,
            )
            return await self.execute(cmd, inv)

    async def handle_edit(self, event: MessageUpdateEvent) -> DispatchOutcome:
        """Dispatch an edited message again if it was edited soon after it was sent."""
        created, edited = event.timestamp, event.edited_timestamp
        if created is None or edited is None:
            return DispatchOutcome.IGNORED
        window = timedelta(minutes=self.settings.edit_replay_window_minutes)
        if edited - created >= window:
            log.debug("dispatch.edit.too_old", event_id=event.id)
            return DispatchOutcome.IGNORED
        inc_counter("dispatch.edit.replayed")
        return await self.handle_message(event)

    async def handle_interaction(
        self,
        *,
        event_id: str,
        path: str,
        options: Mapping[str, Any],
        user_id: int,
        channel_id: int,
        guild_id: int | None,
        member_roles: tuple[int, ...] | None,
        responder: Responder,
    ) -> DispatchOutcome:
        with bound_contextvars(event_id=event_id):
            resolved = self.registry.resolve_invocation(path, options)
            if resolved is None:
                log.warning("dispatch.slash.unresolved", path=path, options=sorted(options))
                await self._reply(responder, f"Unknown command `/{path}`.", ephemeral=True)
                return self._finish(DispatchOutcome.UNKNOWN_COMMAND)
            cmd, args = resolved
            inv = Invocation(
                name=cmd.name,
                args=args,
                user_id=user_id,
                channel_id=channel_id,
                guild_id=guild_id,
                responder=responder,
                gateway=self.gateway,
                state=self.state,
                settings=self.settings,
                godbolt=self.godbolt,
                playground=self.playground,
                crates=self.crates,
                member_roles=member_roles,
                prefix="/",
            )
            return await self.execute(cmd, inv)

    # --- Execution ---

    async def execute(self, cmd: Command, inv: Invocation) -> DispatchOutcome:
        ctx = {
            "command_name": cmd.name,
            "user_id": inv.user_id,
            "channel_id": inv.channel_id,
            "guild_id": inv.guild_id,
        }
        start = time.perf_counter()
        outcome = DispatchOutcome.FAILED
        log.info("command.initiated", args=dict(inv.args), **ctx)
        try:
            if cmd.moderator_only:
                await self._require_moderator(inv)
            await cmd.handler(inv)
            outcome = DispatchOutcome.COMPLETED
        except ArgumentError as e:
            outcome = DispatchOutcome.USAGE_ERROR
            await self._reply(inv.responder, text.usage_reply(inv.prefix, [cmd.usage], str(e)))
        except PermissionDenied:
            outcome = DispatchOutcome.PERMISSION_DENIED
            await self._reply(inv.responder, text.PERMISSION_DENIED, ephemeral=True)
        except UserError as e:
            outcome = DispatchOutcome.USER_ERROR
            await self._reply(inv.responder, str(e))
        except ExternalServiceError as e:
            log.error("command.error", service=e.service, error=str(e), **ctx)
            await self._reply(inv.responder, text.GENERIC_FAILURE)
        except Exception:
            # Handler bugs are reported like service failures and never reach the task runner
            log.error("command.error", exc_info=True, **ctx)
            await self._reply(inv.responder, text.GENERIC_FAILURE)
        finally:
            duration_ms = int((time.perf_counter() - start) * 1000)
            observe_histogram("dispatch.duration_ms", duration_ms)
            log.info("command.completed", status=outcome.value, duration_ms=duration_ms, **ctx)
        return self._finish(outcome)

    async def _require_moderator(self, inv: Invocation) -> None:
        mod_role_id = self.settings.mod_role_id
        if mod_role_id is None or inv.guild_id is None:
            raise PermissionDenied()
        roles = inv.member_roles
        if roles is None:
            roles = await self.gateway.get_member_roles(inv.guild_id, inv.user_id)
        if mod_role_id not in roles:
            raise PermissionDenied()

    async def _unknown_command(
        self, body: str, prefix: str, responder: Responder
    ) -> DispatchOutcome:
        usages = self.registry.usage_for(
            body, case_insensitive=self.settings.commands_case_insensitive
        )
        if usages:
            await self._reply(responder, text.usage_reply(prefix, usages))
        return self._finish(DispatchOutcome.UNKNOWN_COMMAND)

    async def _reply(self, responder: Responder, content: str, *, ephemeral: bool = False) -> None:
        try:
            await responder.send(content, ephemeral=ephemeral)
        except ExternalServiceError as e:
            log.error("dispatch.reply_failed", error=str(e))

    def _finish(self, outcome: DispatchOutcome) -> DispatchOutcome:
        inc_counter(f"dispatch.{outcome.value}")
        return outcome
