from __future__ import annotations

from Warden.commanding import Invocation, command
from Warden.errors import UserError
from Warden.metrics import inc_counter

MAX_KEY_LENGTH = 100


def _guild(inv: Invocation) -> int:
    if inv.guild_id is None:
        raise UserError("Tags only exist inside a server.")
    return inv.guild_id


@command("tags", description="List every tag in this server")
async def list_tags(inv: Invocation):
    keys = await inv.state.list_tags(_guild(inv))
    if not keys:
        await inv.responder.send("No tags yet.")
        return
    await inv.responder.send("Tags: " + ", ".join(f"`{k}`" for k in keys))


@command(
    "tag create {key} [value]",
    description="Create a tag, or replace its value",
    moderator_only=True,
)
async def create_tag(inv: Invocation):
    guild_id = _guild(inv)
    key = inv.args.get_string("key")
    value = inv.args.get_string("value")
    if len(key) > MAX_KEY_LENGTH:
        raise UserError(f"Tag names are limited to {MAX_KEY_LENGTH} characters.")
    if not value.strip():
        raise UserError("A tag needs a value.")
    created = await inv.state.put_tag(guild_id, key, value)
    inc_counter("tags.created" if created else "tags.updated")
    await inv.responder.send(f"Tag `{key}` {'created' if created else 'updated'}.")


@command("tag delete {key}", description="Delete a tag", moderator_only=True)
async def delete_tag(inv: Invocation):
    key = inv.args.get_string("key")
    if not await inv.state.delete_tag(_guild(inv), key):
        raise UserError(f"Tag `{key}` does not exist.")
    inc_counter("tags.deleted")
    await inv.responder.send(f"Tag `{key}` deleted.")


@command("tag {key}", description="Show a tag")
async def show_tag(inv: Invocation):
    key = inv.args.get_string("key")
    value = await inv.state.get_tag(_guild(inv), key)
    if value is None:
        raise UserError(f"Tag `{key}` not found.")
    await inv.responder.send(value)
