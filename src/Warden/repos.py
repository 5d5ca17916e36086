# repos.py

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from Warden import models


def utcnow() -> datetime:
    """Naive UTC now; ban timestamps are stored without a zone."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def _flush_retry(s: AsyncSession, attempts: int = 5, delay: float = 0.2) -> None:
    """Retry session.flush() on transient SQLite 'database is locked' errors.

    Exponential backoff: delay * 2^i between attempts.
    """
    for i in range(attempts):
        try:
            await s.flush()
            return
        except OperationalError as e:  # pragma: no cover - timing dependent
            msg = str(e).lower()
            if "database is locked" in msg or "database is busy" in msg:
                if i == attempts - 1:
                    raise
                await asyncio.sleep(delay * (2**i))
                continue
            raise


async def healthcheck(s: AsyncSession) -> None:
    """Lightweight DB check to confirm connectivity and basic query works."""
    await s.execute(select(models.Tag).limit(1))


# --- Tags ---


async def get_tag(s: AsyncSession, guild_id: int, key: str) -> str | None:
    q = await s.execute(
        select(models.Tag.value).where(models.Tag.guild_id == guild_id, models.Tag.key == key)
    )
    return q.scalar_one_or_none()


async def list_tag_keys(s: AsyncSession, guild_id: int) -> list[str]:
    q = await s.execute(
        select(models.Tag.key).where(models.Tag.guild_id == guild_id).order_by(models.Tag.key)
    )
    return list(q.scalars().all())


async def upsert_tag(s: AsyncSession, guild_id: int, key: str, value: str) -> bool:
    """Create or replace a tag. Returns True when a new row was created."""
    q = await s.execute(
        select(models.Tag).where(models.Tag.guild_id == guild_id, models.Tag.key == key)
    )
    obj = q.scalar_one_or_none()
    if obj:
        obj.value = value
        await _flush_retry(s)
        return False
    s.add(models.Tag(guild_id=guild_id, key=key, value=value))
    await _flush_retry(s)
    return True


async def delete_tag(s: AsyncSession, guild_id: int, key: str) -> bool:
    res = await s.execute(
        delete(models.Tag).where(models.Tag.guild_id == guild_id, models.Tag.key == key)
    )
    return (res.rowcount or 0) > 0


# --- User prefixes ---


async def list_prefixes(s: AsyncSession, user_id: int) -> list[str]:
    q = await s.execute(
        select(models.UserPrefix.string)
        .where(models.UserPrefix.user_id == user_id)
        .order_by(models.UserPrefix.id)
    )
    return list(q.scalars().all())


async def add_prefix(s: AsyncSession, user_id: int, prefix: str) -> bool:
    q = await s.execute(
        select(models.UserPrefix.id).where(
            models.UserPrefix.user_id == user_id, models.UserPrefix.string == prefix
        )
    )
    if q.scalar_one_or_none() is not None:
        return False
    s.add(models.UserPrefix(user_id=user_id, string=prefix))
    await _flush_retry(s)
    return True


async def remove_prefix(s: AsyncSession, user_id: int, prefix: str) -> bool:
    res = await s.execute(
        delete(models.UserPrefix).where(
            models.UserPrefix.user_id == user_id, models.UserPrefix.string == prefix
        )
    )
    return (res.rowcount or 0) > 0


# --- Bans ---


async def create_ban(
    s: AsyncSession,
    *,
    user_id: int,
    guild_id: int,
    duration: timedelta,
    now: datetime | None = None,
) -> models.Ban:
    start = now or utcnow()
    obj = models.Ban(
        user_id=str(user_id),
        guild_id=str(guild_id),
        unbanned=False,
        start_time=start,
        end_time=start + duration,
    )
    s.add(obj)
    await _flush_retry(s)
    return obj


async def get_ban(s: AsyncSession, ban_id: int) -> models.Ban | None:
    q = await s.execute(select(models.Ban).where(models.Ban.id == ban_id))
    return q.scalar_one_or_none()


async def list_expired_bans(s: AsyncSession, *, now: datetime | None = None) -> list[models.Ban]:
    q = await s.execute(
        select(models.Ban)
        .where(models.Ban.unbanned.is_(False), models.Ban.end_time <= (now or utcnow()))
        .order_by(models.Ban.id)
    )
    return list(q.scalars().all())


async def list_active_bans_for(
    s: AsyncSession, *, user_id: int, guild_id: int
) -> list[models.Ban]:
    q = await s.execute(
        select(models.Ban)
        .where(
            models.Ban.user_id == str(user_id),
            models.Ban.guild_id == str(guild_id),
            models.Ban.unbanned.is_(False),
        )
        .order_by(models.Ban.id)
    )
    return list(q.scalars().all())


async def mark_unbanned(s: AsyncSession, ban_id: int) -> bool:
    """Flip ``unbanned`` false -> true. True only for the caller that flipped it."""
    res = await s.execute(
        update(models.Ban)
        .where(models.Ban.id == ban_id, models.Ban.unbanned.is_(False))
        .values(unbanned=True)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


async def restore_ban(s: AsyncSession, ban_id: int) -> None:
    """Undo mark_unbanned after the gateway refused the unban, so a later sweep retries."""
    await s.execute(
        update(models.Ban)
        .where(models.Ban.id == ban_id)
        .values(unbanned=False)
        .execution_options(synchronize_session=False)
    )


async def delete_ban(s: AsyncSession, ban_id: int) -> None:
    await s.execute(delete(models.Ban).where(models.Ban.id == ban_id))


# --- UB markers ---


async def get_ub(s: AsyncSession, *, channel: int, kind: str) -> datetime | None:
    q = await s.execute(
        select(models.UbMarker.time).where(
            models.UbMarker.channel == channel, models.UbMarker.kind == kind
        )
    )
    raw = q.scalar_one_or_none()
    return datetime.fromisoformat(raw) if raw else None


async def reset_ub(
    s: AsyncSession, *, channel: int, kind: str, when: datetime | None = None
) -> datetime | None:
    """Record a new UB sighting. Returns the previous sighting, if any."""
    stamp = when or utcnow()
    q = await s.execute(
        select(models.UbMarker).where(
            models.UbMarker.channel == channel, models.UbMarker.kind == kind
        )
    )
    obj = q.scalar_one_or_none()
    if obj is None:
        s.add(models.UbMarker(channel=channel, kind=kind, time=stamp.isoformat()))
        await _flush_retry(s)
        return None
    previous = datetime.fromisoformat(obj.time)
    obj.time = stamp.isoformat()
    await _flush_retry(s)
    return previous


# --- Godbolt targets ---


async def load_godbolt_targets(
    s: AsyncSession,
) -> tuple[list[models.GodboltTarget], int | None]:
    q = await s.execute(select(models.GodboltTarget).order_by(models.GodboltTarget.name))
    targets = list(q.scalars().all())
    lu = await s.execute(
        select(models.LastGodboltUpdate.last_update).where(models.LastGodboltUpdate.id == 0)
    )
    return targets, lu.scalar_one_or_none()


async def replace_godbolt_targets(
    s: AsyncSession, targets: Iterable[dict[str, str]], *, last_update: int
) -> None:
    """Swap the whole target table in the caller's transaction."""
    await s.execute(delete(models.GodboltTarget))
    seen: set[str] = set()
    for t in targets:
        # id and name are both unique upstream; skip accidental duplicates
        if t["id"] in seen:
            continue
        seen.add(t["id"])
        s.add(models.GodboltTarget(**t))
    q = await s.execute(select(models.LastGodboltUpdate).where(models.LastGodboltUpdate.id == 0))
    row = q.scalar_one_or_none()
    if row is None:
        s.add(models.LastGodboltUpdate(id=0, last_update=last_update))
    else:
        row.last_update = last_update
    await _flush_retry(s)
