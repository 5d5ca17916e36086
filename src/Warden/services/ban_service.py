from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from Warden import repos
from Warden.errors import ExternalServiceError
from Warden.gateway import Gateway
from Warden.metrics import inc_counter
from Warden.state import SharedState
from Warden.text import ban_message

log = structlog.get_logger()


@dataclass(frozen=True)
class BanRef:
    id: int
    user_id: int
    guild_id: int


async def temp_ban(
    state: SharedState,
    gateway: Gateway,
    *,
    guild_id: int,
    user_id: int,
    duration: timedelta,
    reason: str,
) -> int:
    """Record the ban, DM the user, then ban them. Returns the record id.

    The record is written first so a banned user always has an expiry on
    file; if the gateway ban fails the record is deleted again.
    """
    async with state.session() as s:
        ban = await repos.create_ban(s, user_id=user_id, guild_id=guild_id, duration=duration)
        ban_id = ban.id
    async with state.ban_lock(ban_id):
        try:
            await gateway.send_dm(user_id, ban_message(reason, duration))
        except ExternalServiceError as e:
            # Users with closed DMs are still banned
            log.warning("ban.dm_failed", user_id=user_id, error=str(e))
        try:
            await gateway.ban(guild_id, user_id, reason=reason)
        except Exception:
            log.warning("ban.gateway_failed", ban_id=ban_id, user_id=user_id)
            async with state.session() as s:
                await repos.delete_ban(s, ban_id)
            raise
    inc_counter("ban.created")
    log.info("ban.created", ban_id=ban_id, user_id=user_id, guild_id=guild_id)
    return ban_id


async def lift_ban(state: SharedState, gateway: Gateway, ban: BanRef) -> bool:
    """Perform the single unbanned false -> true transition for one record.

    Returns True only for the caller that performed it; that caller alone
    issues the gateway unban. If the gateway call fails the flag is restored
    so the next sweep retries.
    """
    async with state.ban_lock(ban.id):
        async with state.session() as s:
            claimed = await repos.mark_unbanned(s, ban.id)
        if not claimed:
            return False
        try:
            await gateway.unban(ban.guild_id, ban.user_id)
        except ExternalServiceError as e:
            if e.status == 404:
                # Already unbanned by hand on the platform; the record is settled
                log.info("ban.already_lifted", ban_id=ban.id, user_id=ban.user_id)
            else:
                async with state.session() as s:
                    await repos.restore_ban(s, ban.id)
                raise
    inc_counter("ban.lifted")
    log.info("ban.lifted", ban_id=ban.id, user_id=ban.user_id, guild_id=ban.guild_id)
    return True


async def sweep_expired_bans(
    state: SharedState, gateway: Gateway, *, now: datetime | None = None
) -> int:
    """Lift every expired ban still marked active. Returns how many were lifted."""
    async with state.session() as s:
        rows = await repos.list_expired_bans(s, now=now)
        expired = [BanRef(r.id, int(r.user_id), int(r.guild_id)) for r in rows]
    lifted = 0
    for ban in expired:
        try:
            if await lift_ban(state, gateway, ban):
                lifted += 1
        except ExternalServiceError as e:
            inc_counter("ban.sweep.failed")
            log.error("ban.sweep.unban_failed", ban_id=ban.id, error=str(e))
    log.info("ban.sweep.completed", expired=len(expired), lifted=lifted)
    return lifted


async def unban_user(state: SharedState, gateway: Gateway, *, guild_id: int, user_id: int) -> bool:
    """Manually lift a user's active temporary bans. False when none was active."""
    async with state.session() as s:
        rows = await repos.list_active_bans_for(s, user_id=user_id, guild_id=guild_id)
        active = [BanRef(r.id, int(r.user_id), int(r.guild_id)) for r in rows]
    lifted = False
    for ban in active:
        if await lift_ban(state, gateway, ban):
            lifted = True
    return lifted
