from __future__ import annotations

from datetime import timedelta

from Warden import text
from Warden.commanding import Invocation, command, default_registry
from Warden.errors import UserError


def _display_prefix(inv: Invocation) -> str:
    # Slash invocations still advertise the text prefix in listings
    if inv.prefix == "/" and inv.settings and inv.settings.command_prefixes:
        return inv.settings.command_prefixes[0]
    return inv.prefix or "?"


@command("help {command}", description="Show the usages of one command")
async def help_command(inv: Invocation):
    name = inv.args.get_string("command")
    prefix = _display_prefix(inv)
    registry = default_registry()
    case_insensitive = bool(inv.settings and inv.settings.commands_case_insensitive)
    usages = registry.usage_for(name, case_insensitive=case_insensitive)
    if not usages:
        raise UserError(f"No command named `{name}`. Try `{prefix}help`.")
    if name.casefold() == "ban":
        hours = inv.settings.default_ban_hours if inv.settings else 24
        await inv.responder.send(text.ban_help(prefix, timedelta(hours=hours)))
        return
    descriptions = [
        c.description
        for c in registry.entries()
        if c.pattern.path and c.pattern.path[0].casefold() == name.casefold() and c.description
    ]
    await inv.responder.send(
        text.command_help(prefix, usages, descriptions[0] if descriptions else "")
    )


@command("help", description="Show this menu")
async def help_menu(inv: Invocation):
    prefix = _display_prefix(inv)
    await inv.responder.send(text.help_listing(prefix, default_registry().help_listing()))
