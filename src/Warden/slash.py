# src/Warden/slash.py
"""Derive Discord slash command definitions from the command registry.

Entries sharing a top-level name become one slash command. Their parameters
are merged: a parameter present in every variant is required, the rest are
optional, so any option set Discord sends maps back onto one variant through
``CommandRegistry.resolve_invocation``. A name with subcommand entries
(``tag create``) cannot also take top-level options on Discord, so its
top-level variants (``tag {key}``) stay text-only.
"""

from __future__ import annotations

from typing import Any

import structlog

from Warden.commanding import Command, CommandRegistry

log = structlog.get_logger()

# Discord API constants
CMD_CHAT_INPUT = 1
SUB_COMMAND = 1
OPT_STRING = 3
OPT_USER = 6
OPT_CHANNEL = 7
OPT_ROLE = 8

_OPTION_TYPES = {"user": OPT_USER, "channel": OPT_CHANNEL, "role": OPT_ROLE}


def _description(cmds: list[Command]) -> str:
    for c in cmds:
        if c.description:
            return c.description[:100]
    return cmds[0].usage[:100]


def _merged_options(cmds: list[Command]) -> list[dict[str, Any]]:
    order: list[str] = []
    counts: dict[str, int] = {}
    for c in cmds:
        for name in c.pattern.param_names:
            if name not in counts:
                order.append(name)
                counts[name] = 0
            counts[name] += 1
    options = [
        {
            "name": name,
            "description": name,
            "type": _OPTION_TYPES.get(name, OPT_STRING),
            "required": counts[name] == len(cmds),
        }
        for name in order
    ]
    # Discord requires required options to come first
    return sorted(options, key=lambda o: not o["required"])


def build_commands_payload(registry: CommandRegistry) -> list[dict[str, Any]]:
    by_name: dict[str, list[Command]] = {}
    for cmd in registry.entries():
        if cmd.hidden or not cmd.pattern.path:
            continue
        by_name.setdefault(cmd.pattern.path[0], []).append(cmd)

    payload: list[dict[str, Any]] = []
    for name, cmds in by_name.items():
        subs: dict[str, list[Command]] = {}
        top_level: list[Command] = []
        for c in cmds:
            path = c.pattern.path
            if len(path) >= 2:
                subs.setdefault(path[1], []).append(c)
            else:
                top_level.append(c)
        if subs:
            for c in top_level:
                log.info("slash.skip_top_level_variant", usage=c.usage)
            sub_opts = [
                {
                    "type": SUB_COMMAND,
                    "name": sub,
                    "description": _description(sub_cmds),
                    "options": _merged_options(sub_cmds),
                }
                for sub, sub_cmds in subs.items()
            ]
            payload.append(
                {
                    "name": name,
                    "description": _description(cmds),
                    "type": CMD_CHAT_INPUT,
                    "options": sub_opts,
                }
            )
        else:
            payload.append(
                {
                    "name": name,
                    "description": _description(cmds),
                    "type": CMD_CHAT_INPUT,
                    "options": _merged_options(cmds),
                }
            )
    return payload
