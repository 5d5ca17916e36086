from __future__ import annotations

from Warden.commanding import Invocation, command
from Warden.crates import CrateInfo, CratesClient
from Warden.errors import UserError

NO_CRATES = "No crates found."


async def _lookup(inv: Invocation) -> CrateInfo | None:
    client: CratesClient | None = inv.crates
    if client is None:
        raise UserError("crates.io lookups are not configured on this bot.")
    query = inv.args.get_string("query").strip()
    if not query:
        raise UserError("Tell me which crate to look for.")
    return await client.search(query)


@command("crate [query]", description="Lookup crates on crates.io")
async def crate(inv: Invocation):
    found = await _lookup(inv)
    if found is None:
        await inv.responder.send(NO_CRATES)
        return
    lines = [f"**{found.name}** <{found.url}>"]
    if found.description:
        lines.append(found.description)
    lines.append(f"version: {found.version} | downloads: {found.downloads:,}")
    await inv.responder.send("\n".join(lines))


@command("docs [query]", description="Lookup documentation")
async def docs(inv: Invocation):
    found = await _lookup(inv)
    await inv.responder.send(NO_CRATES if found is None else found.docs_url)
