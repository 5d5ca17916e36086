from __future__ import annotations

import asyncio
from datetime import timedelta

import structlog

from Warden.arguments import format_duration
from Warden.commanding import Invocation, command
from Warden.errors import ExternalServiceError, ParseError, UserError
from Warden.services import ban_service
from Warden.state import ActiveSlowmode
from Warden.text import DEFAULT_BAN_REASON

log = structlog.get_logger()

# Platform upper bound for per-user slowmode
MAX_SLOWMODE_SECONDS = 21600

_restore_tasks: set[asyncio.Task] = set()


def _guild(inv: Invocation) -> int:
    if inv.guild_id is None:
        raise UserError("This command only works inside a server.")
    return inv.guild_id


async def _ban(inv: Invocation, duration: timedelta, reason: str) -> None:
    guild_id = _guild(inv)
    user_id = inv.args.get_mention("user")
    await ban_service.temp_ban(
        inv.state,
        inv.gateway,
        guild_id=guild_id,
        user_id=user_id,
        duration=duration,
        reason=reason,
    )
    await inv.responder.send(f"Banned <@{user_id}> for {format_duration(duration)}.")


def _default_ban_duration(inv: Invocation) -> timedelta:
    hours = inv.settings.default_ban_hours if inv.settings else 24
    return timedelta(hours=hours)


@command(
    "ban {user} {duration} [reason]",
    description="Ban a user for a temporary amount of time",
    moderator_only=True,
)
async def ban_with_reason(inv: Invocation):
    # A bare number is hours
    duration = inv.args.get_duration("duration", default_unit="h")
    await _ban(inv, duration, inv.args.get_string("reason"))


@command("ban {user} {duration}", moderator_only=True)
async def ban_for(inv: Invocation):
    duration = inv.args.get_duration("duration", default_unit="h")
    await _ban(inv, duration, DEFAULT_BAN_REASON)


@command("ban {user}", moderator_only=True)
async def ban_default(inv: Invocation):
    await _ban(inv, _default_ban_duration(inv), DEFAULT_BAN_REASON)


@command("unban {user}", description="Lift a temporary ban early", moderator_only=True)
async def unban(inv: Invocation):
    user_id = inv.args.get_mention("user")
    lifted = await ban_service.unban_user(
        inv.state, inv.gateway, guild_id=_guild(inv), user_id=user_id
    )
    if not lifted:
        raise UserError(f"<@{user_id}> has no active temporary ban.")
    await inv.responder.send(f"Unbanned <@{user_id}>.")


@command("kick {user}", description="Kick a user from the server", moderator_only=True)
async def kick(inv: Invocation):
    user_id = inv.args.get_mention("user")
    await inv.gateway.kick(_guild(inv), user_id, reason=f"kicked by {inv.user_id}")
    await inv.responder.send(f"Kicked <@{user_id}>.")


@command("role {user} {role}", description="Give a user a role", moderator_only=True)
async def add_role(inv: Invocation):
    user_id = inv.args.get_mention("user")
    role_id = inv.args.get_mention("role", kind="role")
    await inv.gateway.add_role(_guild(inv), user_id, role_id)
    await inv.responder.send(f"Gave <@{user_id}> the role <@&{role_id}>.")


async def _resolve_channel(inv: Invocation) -> int:
    try:
        return inv.args.get_mention("channel", kind="channel")
    except ParseError:
        name = inv.args.get_string("channel")
        channel_id = await inv.gateway.find_channel(_guild(inv), name)
        if channel_id is None:
            raise UserError(f"No channel named `{name}`.") from None
        return channel_id


def _slowmode_seconds(inv: Invocation) -> int:
    seconds = inv.args.get_int("seconds")
    if not 0 <= seconds <= MAX_SLOWMODE_SECONDS:
        raise ParseError("seconds", str(seconds), f"rate between 0 and {MAX_SLOWMODE_SECONDS}")
    return seconds


async def _restore_later(inv: Invocation, channel_id: int, entry: ActiveSlowmode) -> None:
    assert entry.duration is not None
    await asyncio.sleep(entry.duration.total_seconds())
    current = await inv.state.take_slowmode(channel_id, entry.invocation_id)
    if current is None:
        log.info("slowmode.restore.superseded", channel_id=channel_id)
        return
    try:
        await inv.gateway.set_channel_slowmode(channel_id, current.previous_rate)
    except ExternalServiceError as e:
        log.error("slowmode.restore.failed", channel_id=channel_id, error=str(e))
        return
    log.info("slowmode.restored", channel_id=channel_id, rate=current.previous_rate)


@command(
    "slowmode {channel} {seconds} {duration}",
    description="Set a channel's slowmode for a limited time, then restore it",
    moderator_only=True,
)
async def slowmode_for(inv: Invocation):
    seconds = _slowmode_seconds(inv)
    channel_id = await _resolve_channel(inv)
    duration = inv.args.get_duration("duration", default_unit="m", allow_zero=True)
    if seconds == 0 or duration == timedelta(0):
        await _lift_slowmode(inv, channel_id)
        return
    current_rate = await inv.gateway.get_channel_slowmode(channel_id)
    entry = await inv.state.register_slowmode(
        channel_id, current_rate=current_rate, rate=seconds, duration=duration
    )
    await inv.gateway.set_channel_slowmode(channel_id, seconds)
    task = asyncio.create_task(_restore_later(inv, channel_id, entry))
    _restore_tasks.add(task)
    task.add_done_callback(_restore_tasks.discard)
    await inv.responder.send(
        f"Slowmode in <#{channel_id}> set to {seconds}s for {format_duration(duration)}; "
        f"it will go back to {entry.previous_rate}s afterwards."
    )


@command(
    "slowmode {channel} {seconds}",
    description="Set a channel's slowmode; 0 lifts it",
    moderator_only=True,
)
async def slowmode(inv: Invocation):
    seconds = _slowmode_seconds(inv)
    channel_id = await _resolve_channel(inv)
    if seconds == 0:
        await _lift_slowmode(inv, channel_id)
        return
    # A permanent setting replaces any pending restore
    await inv.state.take_slowmode(channel_id)
    await inv.gateway.set_channel_slowmode(channel_id, seconds)
    await inv.responder.send(f"Slowmode in <#{channel_id}> set to {seconds}s.")


async def _lift_slowmode(inv: Invocation, channel_id: int) -> None:
    entry = await inv.state.take_slowmode(channel_id)
    rate = entry.previous_rate if entry is not None else 0
    await inv.gateway.set_channel_slowmode(channel_id, rate)
    if entry is not None:
        await inv.responder.send(f"Restored slowmode in <#{channel_id}> to {rate}s.")
    else:
        await inv.responder.send(f"Slowmode in <#{channel_id}> lifted.")
