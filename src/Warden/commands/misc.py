from Warden.commanding import Invocation, command
from Warden.text import SOURCE_URL


@command("source", description="Links to the bot GitHub repo")
async def source(inv: Invocation):
    await inv.responder.send(SOURCE_URL)


@command("go", hidden=True)
async def go(inv: Invocation):
    await inv.responder.send("No")
