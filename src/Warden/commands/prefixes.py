from __future__ import annotations

from Warden.commanding import Invocation, command
from Warden.errors import UserError

MAX_PREFIX_LENGTH = 64


def _require_feature(inv: Invocation) -> None:
    if not (inv.settings and inv.settings.features_user_prefixes):
        raise UserError("Custom prefixes are disabled on this bot.")


def _prefix_arg(inv: Invocation) -> str:
    prefix = inv.args.get_string("prefix")
    if not prefix.strip():
        raise UserError("A prefix can't be blank.")
    if len(prefix) > MAX_PREFIX_LENGTH:
        raise UserError(f"Prefixes are limited to {MAX_PREFIX_LENGTH} characters.")
    return prefix


@command("prefix add [prefix]", description="Add a personal command prefix")
async def add_prefix(inv: Invocation):
    _require_feature(inv)
    prefix = _prefix_arg(inv)
    if not await inv.state.add_prefix(inv.user_id, prefix):
        raise UserError(f"You already have the prefix `{prefix}`.")
    await inv.responder.send(f"Added the prefix `{prefix}`.", ephemeral=True)


@command("prefix remove [prefix]", description="Remove a personal command prefix")
async def remove_prefix(inv: Invocation):
    _require_feature(inv)
    prefix = _prefix_arg(inv)
    if not await inv.state.remove_prefix(inv.user_id, prefix):
        raise UserError(f"You don't have the prefix `{prefix}`.")
    await inv.responder.send(f"Removed the prefix `{prefix}`.", ephemeral=True)


@command("prefix list", description="List your personal command prefixes")
async def list_prefixes(inv: Invocation):
    _require_feature(inv)
    prefixes = await inv.state.user_prefixes(inv.user_id)
    if not prefixes:
        await inv.responder.send("You have no custom prefixes.", ephemeral=True)
        return
    await inv.responder.send(
        "Your prefixes: " + ", ".join(f"`{p}`" for p in prefixes), ephemeral=True
    )
