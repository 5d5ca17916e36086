from __future__ import annotations

from datetime import timedelta

from Warden.commanding import Invocation, command
from Warden.errors import UserError
from Warden.godbolt import (
    DEFAULT_RUSTC,
    GodboltClient,
    sort_targets,
    strip_code_fence,
    truncate_output,
)
from Warden.state import TargetList

# Field count keeps the listing inside a single message
MAX_LISTED_TARGETS = 40


def _client(inv: Invocation) -> GodboltClient:
    if inv.godbolt is None:
        raise UserError("Godbolt is not configured on this bot.")
    return inv.godbolt


async def _current_targets(inv: Invocation) -> TargetList:
    """Snapshot of the target list, refreshed first when it has gone stale."""
    client = _client(inv)
    seconds = inv.settings.godbolt_update_seconds if inv.settings else 60 * 60 * 12
    if inv.state.needs_refresh(timedelta(seconds=seconds)):
        await inv.state.refresh_targets(client.fetch_targets)
    return inv.state.targets()


@command("targets", description="List the available godbolt rustc targets")
async def targets(inv: Invocation):
    snapshot = await _current_targets(inv)
    if not snapshot.targets:
        raise UserError("The godbolt target list is unavailable right now.")
    ranked = sort_targets(snapshot.targets)
    lines = [f"{t.semver}: {t.name} (runs on {t.instruction_set})" for t in ranked]
    shown = lines[:MAX_LISTED_TARGETS]
    if len(lines) > len(shown):
        shown.append(f"... and {len(lines) - len(shown)} more")
    await inv.responder.send("**Godbolt Targets**\n```\n" + "\n".join(shown) + "\n```")


async def _compile(inv: Invocation, rustc: str) -> None:
    client = _client(inv)
    source = strip_code_fence(inv.args.get_string("code"))
    if not source:
        raise UserError("Give me some code to compile, e.g. in a ```rust code block.")
    snapshot = await _current_targets(inv)
    target = snapshot.find(rustc)
    if target is None:
        raise UserError(
            "the `rustc` argument should be a version specifier like `nightly` `beta` or "
            f"`1.45.2`. Run {inv.prefix or '?'}targets for a full list"
        )
    result = await client.compile(target.id, source)
    if result.success:
        output = truncate_output(result.asm)
        lang = "x86asm"
    else:
        output = truncate_output(result.stderr)
        lang = "rust"
    if not output.strip():
        output = "<no output>"
    await inv.responder.send(f"```{lang}\n{output}\n```")


@command("godbolt {rustc} [code]", description="Compile Rust code and show the assembly")
async def godbolt_with_version(inv: Invocation):
    await _compile(inv, inv.args.get_string("rustc"))


@command("godbolt [code]", description="Compile Rust code on nightly and show the assembly")
async def godbolt(inv: Invocation):
    await _compile(inv, DEFAULT_RUSTC)
