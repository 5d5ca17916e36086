#!/usr/bin/env python3


"""
Discord slash command management for Warden.

Slash definitions are derived from the text command registry (see
Warden.slash), so every pattern registered with @command that Discord can
express is available as a slash command too.

Usage:
  python scripts/register_commands.py --status [--guild GUILD_ID]
  python scripts/register_commands.py --register [--guild GUILD_ID]
  python scripts/register_commands.py --unregister [--guild GUILD_ID]

Without --guild the action applies to global commands.

Settings (environment, .env or config.toml):
  - DISCORD_APP_ID: the application id of the bot.
  - DISCORD_BOT_TOKEN: the bot token for authentication.
"""

import argparse
import asyncio
import sys
from typing import Any

import httpx
import orjson
from prettytable import PrettyTable

from Warden.command_loader import load_all_commands
from Warden.commanding import default_registry
from Warden.config import Settings, load_settings
from Warden.slash import build_commands_payload


def _command_url(settings: Settings, guild_id: str | None) -> str:
    base_url = f"{settings.discord_api_base.rstrip('/')}/applications/{settings.discord_app_id}"
    if guild_id:
        return f"{base_url}/guilds/{guild_id}/commands"
    return f"{base_url}/commands"


async def _fetch_commands(client: httpx.AsyncClient, url: str) -> list[dict[str, Any]]:
    response = await client.get(url)
    response.raise_for_status()
    return orjson.loads(response.content)


def _format_options(options: list[dict[str, Any]], level: int = 0) -> list[str]:
    formatted = []
    indent = "  " * level
    for opt in options:
        required = "Required" if opt.get("required", False) else "Optional"
        formatted.append(f"{indent}- {opt['name']} ({required})")
        formatted.extend(_format_options(opt.get("options", []), level + 1))
    return formatted


def print_status(local_commands: list[dict], registered_commands: list[dict], scope: str) -> None:
    print(f"\nStatus for {scope} commands:")
    table = PrettyTable()
    table.field_names = ["Command Name", "Registered", "Description", "Options"]
    table.hrules = 1
    registered_names = {rc["name"] for rc in registered_commands}
    for cmd in local_commands:
        table.add_row(
            [
                cmd["name"],
                "Yes" if cmd["name"] in registered_names else "No",
                cmd.get("description", ""),
                "\n".join(_format_options(cmd.get("options", []))) or "No options",
            ]
        )
    print(table)


async def main() -> int:
    parser = argparse.ArgumentParser(description="Manage Discord slash commands.")
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--status", action="store_true", help="Compare local and registered.")
    action.add_argument("--register", action="store_true", help="Overwrite registered commands.")
    action.add_argument("--unregister", action="store_true", help="Remove registered commands.")
    parser.add_argument("--guild", help="Apply to one guild instead of globally.")
    args = parser.parse_args()

    settings = load_settings()
    if not settings.discord_app_id or settings.discord_bot_token is None:
        print("Error: DISCORD_APP_ID and DISCORD_BOT_TOKEN must be set.")
        return 1

    load_all_commands()
    local_commands = build_commands_payload(default_registry())
    url = _command_url(settings, args.guild)
    scope = f"guild {args.guild}" if args.guild else "global"
    headers = {
        "Authorization": f"Bot {settings.discord_bot_token.get_secret_value()}",
        "Content-Type": "application/json",
    }

    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds, headers=headers) as client:
        try:
            if args.register:
                # Bulk overwrite replaces the whole set in one call
                response = await client.put(url, content=orjson.dumps(local_commands))
                response.raise_for_status()
                print(f"Registered {len(local_commands)} commands ({scope}).")
            elif args.unregister:
                response = await client.put(url, content=orjson.dumps([]))
                response.raise_for_status()
                print(f"Unregistered all commands ({scope}).")
            print_status(local_commands, await _fetch_commands(client, url), scope)
        except httpx.HTTPError as e:
            print(f"Discord API request failed: {e}")
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
