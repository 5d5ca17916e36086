# src/Warden/jobs.py
"""Background timers: expired-ban sweep and godbolt target refresh."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta

import structlog

from Warden.config import Settings
from Warden.errors import ExternalServiceError
from Warden.gateway import Gateway
from Warden.godbolt import GodboltClient
from Warden.metrics import inc_counter
from Warden.services import ban_service
from Warden.state import SharedState

log = structlog.get_logger()


async def run_periodic(
    name: str,
    interval_seconds: float,
    tick: Callable[[], Awaitable[object]],
    *,
    stop: asyncio.Event,
) -> None:
    """Call ``tick`` now and then every ``interval_seconds`` until ``stop`` is set.

    A failing tick keeps the previous state and is retried on the next one.
    """
    while not stop.is_set():
        try:
            await tick()
            inc_counter(f"jobs.{name}.ok")
        except ExternalServiceError as e:
            inc_counter(f"jobs.{name}.failed")
            log.error("jobs.tick.failed", job=name, service=e.service, error=str(e))
        except Exception:
            # An unexpected bug in one tick must not end the timer
            inc_counter(f"jobs.{name}.failed")
            log.error("jobs.tick.crashed", job=name, exc_info=True)
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
        except TimeoutError:
            pass


class JobRunner:
    def __init__(
        self,
        *,
        state: SharedState,
        gateway: Gateway,
        godbolt: GodboltClient,
        settings: Settings,
    ):
        self.state = state
        self.gateway = gateway
        self.godbolt = godbolt
        self.settings = settings
        self._stop = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    async def ban_sweep_tick(self) -> int:
        return await ban_service.sweep_expired_bans(self.state, self.gateway)

    async def targets_tick(self) -> bool:
        period = timedelta(seconds=self.settings.godbolt_update_seconds)
        if not self.state.needs_refresh(period):
            return False
        return await self.state.refresh_targets(self.godbolt.fetch_targets)

    def start(self) -> None:
        self._stop.clear()
        self._tasks = [
            asyncio.create_task(
                run_periodic(
                    "ban_sweep",
                    self.settings.ban_sweep_interval_seconds,
                    self.ban_sweep_tick,
                    stop=self._stop,
                )
            ),
            # Checked often; targets_tick only fetches once the period has elapsed
            asyncio.create_task(
                run_periodic(
                    "godbolt_targets",
                    min(self.settings.godbolt_update_seconds, 600),
                    self.targets_tick,
                    stop=self._stop,
                )
            ),
        ]
        log.info("jobs.started", count=len(self._tasks))

    async def stop(self) -> None:
        self._stop.set()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        log.info("jobs.stopped")
