"""Track how long a channel has gone without someone reporting undefined behaviour."""

from __future__ import annotations

from Warden import repos
from Warden.arguments import format_duration
from Warden.commanding import Invocation, command
from Warden.errors import UserError

DEFAULT_KIND = "ub"
MAX_KIND_LENGTH = 32


def _kind(inv: Invocation) -> str:
    kind = (inv.args.get_optional("kind") or DEFAULT_KIND).lower()
    if len(kind) > MAX_KIND_LENGTH:
        raise UserError(f"Counter names are limited to {MAX_KIND_LENGTH} characters.")
    return kind


async def _reset(inv: Invocation) -> None:
    kind = _kind(inv)
    now = repos.utcnow()
    async with inv.state.session() as s:
        previous = await repos.reset_ub(s, channel=inv.channel_id, kind=kind, when=now)
    if previous is None:
        await inv.responder.send(f"Started counting days without `{kind}` in this channel.")
        return
    await inv.responder.send(
        f"It had been {format_duration(now - previous)} without `{kind}`. "
        "Counter reset."
    )


async def _show(inv: Invocation) -> None:
    kind = _kind(inv)
    async with inv.state.session() as s:
        last = await repos.get_ub(s, channel=inv.channel_id, kind=kind)
    if last is None:
        await inv.responder.send(f"No `{kind}` has been reported in this channel yet.")
        return
    elapsed = repos.utcnow() - last
    await inv.responder.send(f"It has been {format_duration(elapsed)} without `{kind}`.")


@command("ub reset {kind}", description="Reset a named counter")
async def ub_reset_kind(inv: Invocation):
    await _reset(inv)


@command("ub reset", description="Reset the UB counter")
async def ub_reset(inv: Invocation):
    await _reset(inv)


@command("ub {kind}", description="Show a named counter")
async def ub_kind(inv: Invocation):
    await _show(inv)


@command("ub", description="Show how long it has been since the last UB")
async def ub(inv: Invocation):
    await _show(inv)
