from __future__ import annotations

from Warden.commanding import Invocation, command
from Warden.errors import UserError
from Warden.godbolt import strip_code_fence
from Warden.playground import (
    CHANNELS,
    DEFAULT_CHANNEL,
    MAX_INLINE_OUTPUT,
    PlaygroundClient,
    wrap_eval,
)

MISSING_CODE = (
    "Missing code block. Please use the following markdown:\n"
    "\\`\\`\\`rust\ncode here\n\\`\\`\\`"
)


def _client(inv: Invocation) -> PlaygroundClient:
    if inv.playground is None:
        raise UserError("The playground is not configured on this bot.")
    return inv.playground


def _source(inv: Invocation) -> str:
    # Inline `code` is accepted as well as a fenced block
    source = strip_code_fence(inv.args.get_string("code")).strip("`").strip()
    if not source:
        raise UserError(MISSING_CODE)
    return source


async def _run(inv: Invocation, code: str, channel: str) -> None:
    client = _client(inv)
    result = await client.execute(code, channel=channel)
    output = result.output
    if len(output) > MAX_INLINE_OUTPUT:
        link = await client.share_link(code, channel=channel)
        await inv.responder.send(f"Output too large. Playground link: {link}")
        return
    if not output.strip():
        output = "<no output>"
    await inv.responder.send(f"```\n{output}\n```")


@command("play [code]", description="Compile and run rust code in a playground")
async def play(inv: Invocation):
    await _run(inv, _source(inv), DEFAULT_CHANNEL)


@command(
    "play {release} [code]",
    description="Compile and run rust code on a given release channel",
)
async def play_on_channel(inv: Invocation):
    channel = inv.args.get_string("release").lower()
    if channel not in CHANNELS:
        raise UserError(f"invalid release channel `{channel}`, try one of: {', '.join(CHANNELS)}")
    await _run(inv, _source(inv), channel)


@command("eval [code]", description="Evaluate a single rust expression")
async def eval_(inv: Invocation):
    await _run(inv, wrap_eval(_source(inv)), DEFAULT_CHANNEL)
