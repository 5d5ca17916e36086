# src/Warden/text.py
"""User-facing message text."""

from __future__ import annotations

from datetime import timedelta

from Warden.arguments import format_duration

SOURCE_URL = "https://github.com/kangalioo/rustbot"

GENERIC_FAILURE = (
    "Something went wrong while running that command. "
    "The error has been logged for the moderators."
)
PERMISSION_DENIED = "You don't have permission to use this command."
HELP_FOOTER = "Type `{prefix}help command` for more info on a command."

DEFAULT_BAN_REASON = "violating the code of conduct"


def ban_message(reason: str, duration: timedelta) -> str:
    return (
        f"You have been banned from this server for {reason}. "
        f"The ban will expire in {format_duration(duration)}. "
        "If you feel this action was taken unfairly, you can reach the moderation team "
        "by replying to this message or contacting a moderator directly."
    )


def usage_reply(prefix: str, usages: list[str], error: str | None = None) -> str:
    lines = []
    if error:
        lines.append(f"Error: {error}")
    lines.append("Usage:")
    lines.extend(f"`{prefix}{u}`" for u in usages)
    return "\n".join(lines)


def help_listing(prefix: str, usages: list[str]) -> str:
    body = "\n".join(f"{prefix}{u}" for u in usages)
    return f"```\n{body}\n```\n" + HELP_FOOTER.format(prefix=prefix)


def command_help(prefix: str, usages: list[str], description: str) -> str:
    lines = [description] if description else []
    lines.append("```")
    lines.extend(f"{prefix}{u}" for u in usages)
    lines.append("```")
    return "\n".join(lines)


def ban_help(prefix: str, default_duration: timedelta) -> str:
    return (
        "Ban a user for a temporary amount of time\n"
        f"```\n{prefix}ban {{user}} {{duration}} [reason]\n```\n"
        "**Example:**\n"
        f"```\n{prefix}ban @someuser {format_duration(default_duration)} "
        f"[{DEFAULT_BAN_REASON}]\n```\n"
        "will ban the user and send them the following message:\n"
        f"```\n{ban_message(DEFAULT_BAN_REASON, default_duration)}\n```"
    )
