# src/Warden/state.py
"""Process-wide mutable state shared by concurrently running command handlers.

One ``SharedState`` is created at startup and injected into every
invocation. Each cache has its own lock, held only around the reads and
writes it protects:

- tags: read-through mirror of the store; a write updates the store, then the
  mirror, before returning to the handler.
- user prefixes: lazily loaded per user and invalidated on write. A load
  that raced with a write is discarded instead of cached. Both this cache and
  the tag mirror keep only their most recently used entries.
- godbolt targets: an immutable snapshot whose reference is swapped whole.
  Each refresh takes a ticket when it starts, and a finished fetch is
  installed only if its ticket is newer than the installed one, so the list
  always reflects the most recently started successful fetch.
- bans: per-record locks, forgotten once nobody holds or awaits them; the
  flag flip itself is a conditional update in the store (see
  ``repos.mark_unbanned``).
- slowmodes: active temporary slowmode per channel.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import OrderedDict
from collections.abc import AsyncIterator, Awaitable, Callable, Hashable, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from Warden import repos
from Warden.db import session_scope
from Warden.errors import ExternalServiceError
from Warden.metrics import inc_counter

log = structlog.get_logger()

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

DEFAULT_CACHE_ENTRIES = 10_000


class LruDict(OrderedDict):
    """OrderedDict that forgets its least recently used key beyond ``maxsize`` entries."""

    def __init__(self, maxsize: int):
        super().__init__()
        self.maxsize = maxsize

    def __getitem__(self, key: Hashable):
        value = super().__getitem__(key)
        self.move_to_end(key)
        return value

    def __setitem__(self, key: Hashable, value) -> None:
        if key in self:
            self.move_to_end(key)
        super().__setitem__(key, value)
        if len(self) > self.maxsize:
            del self[next(iter(self))]


@dataclass
class _BanLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


@dataclass(frozen=True)
class TargetInfo:
    id: str
    name: str
    lang: str
    compiler_type: str
    semver: str
    instruction_set: str


@dataclass(frozen=True)
class TargetList:
    targets: tuple[TargetInfo, ...] = ()
    refreshed_at: datetime | None = None

    def find(self, semver: str) -> TargetInfo | None:
        wanted = semver.strip().lower()
        for target in self.targets:
            if target.semver == wanted:
                return target
        return None


@dataclass(frozen=True)
class ActiveSlowmode:
    previous_rate: int
    rate: int
    duration: timedelta | None
    invocation_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class SharedState:
    def __init__(
        self,
        session_factory: SessionFactory = session_scope,
        *,
        cache_entries: int = DEFAULT_CACHE_ENTRIES,
    ):
        self._session = session_factory

        self._tags: LruDict = LruDict(cache_entries)
        self._tags_lock = asyncio.Lock()

        self._prefixes: LruDict = LruDict(cache_entries)
        self._prefix_generation: dict[int, int] = {}
        self._prefix_lock = asyncio.Lock()

        self._targets = TargetList()
        self._targets_lock = asyncio.Lock()
        self._refresh_ticket = 0
        self._installed_ticket = 0

        # Entries live only while some caller holds or awaits the lock
        self._ban_locks: dict[int, _BanLock] = {}

        self._slowmodes: dict[int, ActiveSlowmode] = {}
        self._slowmode_lock = asyncio.Lock()

    # --- Tags ---

    async def get_tag(self, guild_id: int, key: str) -> str | None:
        cache_key = (guild_id, key)
        if cache_key in self._tags:
            inc_counter("state.tags.hit")
            return self._tags[cache_key]
        async with self._tags_lock:
            if cache_key not in self._tags:
                inc_counter("state.tags.miss")
                async with self._session() as s:
                    self._tags[cache_key] = await repos.get_tag(s, guild_id, key)
            return self._tags[cache_key]

    async def list_tags(self, guild_id: int) -> list[str]:
        async with self._session() as s:
            return await repos.list_tag_keys(s, guild_id)

    async def put_tag(self, guild_id: int, key: str, value: str) -> bool:
        async with self._tags_lock:
            async with self._session() as s:
                created = await repos.upsert_tag(s, guild_id, key, value)
            self._tags[(guild_id, key)] = value
        log.info("state.tags.put", guild_id=guild_id, key=key, created=created)
        return created

    async def delete_tag(self, guild_id: int, key: str) -> bool:
        async with self._tags_lock:
            async with self._session() as s:
                deleted = await repos.delete_tag(s, guild_id, key)
            self._tags[(guild_id, key)] = None
        log.info("state.tags.delete", guild_id=guild_id, key=key, deleted=deleted)
        return deleted

    # --- User prefixes ---

    async def user_prefixes(self, user_id: int) -> tuple[str, ...]:
        if user_id in self._prefixes:
            return self._prefixes[user_id]
        generation = self._prefix_generation.get(user_id, 0)
        async with self._session() as s:
            loaded = tuple(await repos.list_prefixes(s, user_id))
        if self._prefix_generation.get(user_id, 0) == generation:
            self._prefixes[user_id] = loaded
        return loaded

    def _invalidate_prefixes(self, user_id: int) -> None:
        self._prefix_generation[user_id] = self._prefix_generation.get(user_id, 0) + 1
        self._prefixes.pop(user_id, None)

    async def add_prefix(self, user_id: int, prefix: str) -> bool:
        async with self._prefix_lock:
            async with self._session() as s:
                added = await repos.add_prefix(s, user_id, prefix)
            self._invalidate_prefixes(user_id)
        return added

    async def remove_prefix(self, user_id: int, prefix: str) -> bool:
        async with self._prefix_lock:
            async with self._session() as s:
                removed = await repos.remove_prefix(s, user_id, prefix)
            self._invalidate_prefixes(user_id)
        return removed

    # --- Godbolt targets ---

    def targets(self) -> TargetList:
        """Current snapshot. Never partially replaced."""
        return self._targets

    def needs_refresh(self, period: timedelta, *, now: datetime | None = None) -> bool:
        refreshed_at = self._targets.refreshed_at
        if refreshed_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now - refreshed_at >= period

    async def refresh_targets(
        self, fetch: Callable[[], Awaitable[Sequence[TargetInfo]]]
    ) -> bool:
        """Fetch a new target list and install it if no newer refresh won.

        Returns True when this call installed its result. Fetch failures are
        logged and leave the previous list in place.
        """
        self._refresh_ticket += 1
        ticket = self._refresh_ticket
        try:
            fetched = tuple(await fetch())
        except ExternalServiceError as exc:
            inc_counter("godbolt.refresh.failed")
            log.error("godbolt.refresh.failed", ticket=ticket, error=str(exc))
            return False

        async with self._targets_lock:
            if ticket <= self._installed_ticket:
                inc_counter("godbolt.refresh.superseded")
                log.info(
                    "godbolt.refresh.superseded", ticket=ticket, installed=self._installed_ticket
                )
                return False
            now = datetime.now(timezone.utc)
            try:
                async with self._session() as s:
                    await repos.replace_godbolt_targets(
                        s, [asdict(t) for t in fetched], last_update=int(now.timestamp())
                    )
            except ExternalServiceError as exc:
                log.warning("godbolt.refresh.persist_failed", error=str(exc))
            self._targets = TargetList(targets=fetched, refreshed_at=now)
            self._installed_ticket = ticket
        inc_counter("godbolt.refresh.installed")
        log.info("godbolt.refresh.installed", ticket=ticket, count=len(fetched))
        return True

    async def load_targets_from_store(self) -> TargetList:
        """Warm the snapshot from the store unless a refresh already installed one."""
        async with self._session() as s:
            rows, last_update = await repos.load_godbolt_targets(s)
        async with self._targets_lock:
            if self._installed_ticket == 0 and rows:
                refreshed_at = (
                    datetime.fromtimestamp(last_update, tz=timezone.utc)
                    if last_update is not None
                    else None
                )
                self._targets = TargetList(
                    targets=tuple(
                        TargetInfo(
                            id=r.id,
                            name=r.name,
                            lang=r.lang,
                            compiler_type=r.compiler_type,
                            semver=r.semver,
                            instruction_set=r.instruction_set,
                        )
                        for r in rows
                    ),
                    refreshed_at=refreshed_at,
                )
            return self._targets

    # --- Bans ---

    @asynccontextmanager
    async def ban_lock(self, ban_id: int) -> AsyncIterator[None]:
        entry = self._ban_locks.setdefault(ban_id, _BanLock())
        entry.holders += 1
        try:
            async with entry.lock:
                yield None
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._ban_locks[ban_id]

    def held_ban_locks(self) -> int:
        return len(self._ban_locks)

    def session(self) -> AbstractAsyncContextManager[AsyncSession]:
        return self._session()

    # --- Slowmodes ---

    async def register_slowmode(
        self, channel_id: int, *, current_rate: int, rate: int, duration: timedelta | None
    ) -> ActiveSlowmode:
        """Record a slowmode invocation, overwriting any running one.

        When overwriting, the channel's current rate is not the original one,
        so the previous rate is carried over from the existing entry.
        """
        async with self._slowmode_lock:
            existing = self._slowmodes.get(channel_id)
            previous = existing.previous_rate if existing else current_rate
            entry = ActiveSlowmode(previous_rate=previous, rate=rate, duration=duration)
            self._slowmodes[channel_id] = entry
            return entry

    async def take_slowmode(
        self, channel_id: int, invocation_id: str | None = None
    ) -> ActiveSlowmode | None:
        """Remove and return the active entry; with an id, only if it still matches."""
        async with self._slowmode_lock:
            entry = self._slowmodes.get(channel_id)
            if entry is None:
                return None
            if invocation_id is not None and entry.invocation_id != invocation_id:
                return None
            del self._slowmodes[channel_id]
            return entry

    def active_slowmode(self, channel_id: int) -> ActiveSlowmode | None:
        return self._slowmodes.get(channel_id)
