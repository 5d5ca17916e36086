# tests/conftest.py

import os
from collections.abc import AsyncIterator

import pytest

# Point the app at an in-memory DB before any app modules are imported, and
# keep JSON log files out of the workspace. DB-backed tests swap in a file per
# test so concurrent sessions get their own connections.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("LOGGING_FILE", "NONE")

# TOML has lower precedence than env, but the module-level constant is computed
# at import time, so override it before any engine is created.
import Warden.db as _db  # noqa: E402

_db.DATABASE_URL = os.environ["DATABASE_URL"]
_db._engine = None
_db._sessionmaker = None
_db._schema_initialized = False

from Warden import models as _models  # noqa: F401,E402
from Warden.command_loader import load_all_commands  # noqa: E402
from Warden.commanding import default_registry  # noqa: E402
from Warden.config import Settings  # noqa: E402
from Warden.db import Base, get_engine  # noqa: E402
from Warden.discord_schemas import MessageEvent  # noqa: E402
from Warden.dispatcher import Dispatcher  # noqa: E402
from Warden.errors import ExternalServiceError  # noqa: E402
from Warden.metrics import reset_counters  # noqa: E402
from Warden.state import SharedState  # noqa: E402

MOD_ROLE_ID = 4242
GUILD_ID = 100
CHANNEL_ID = 200


@pytest.fixture(autouse=True)
async def _fresh_db(tmp_path) -> AsyncIterator[None]:
    """Give every test its own empty SQLite file.

    The engine is created inside the test's event loop and disposed after it.
    """
    _db.DATABASE_URL = f"sqlite+aiosqlite:///{tmp_path / 'warden.sqlite3'}"
    _db._engine = None
    _db._sessionmaker = None
    _db._schema_initialized = False
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    _db._schema_initialized = True
    try:
        yield None
    finally:
        await engine.dispose()
        _db.DATABASE_URL = os.environ["DATABASE_URL"]
        _db._engine = None
        _db._sessionmaker = None
        _db._schema_initialized = False


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_counters()
    yield


class FakeGateway:
    """Records every call; ``fail`` maps an operation name to an HTTP status to raise with."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.roles: dict[int, tuple[int, ...]] = {}
        self.channels: dict[str, int] = {"general": CHANNEL_ID}
        self.slowmodes: dict[int, int] = {}
        self.fail: dict[str, int | None] = {}

    def _record(self, op: str, *args) -> None:
        self.calls.append((op, *args))
        if op in self.fail:
            raise ExternalServiceError("gateway", f"{op} failed", status=self.fail[op])

    def calls_to(self, op: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == op]

    async def send_message(self, channel_id, content):
        self._record("send_message", channel_id, content)

    async def send_dm(self, user_id, content):
        self._record("send_dm", user_id, content)

    async def get_member_roles(self, guild_id, user_id):
        self._record("get_member_roles", guild_id, user_id)
        return self.roles.get(user_id, ())

    async def add_role(self, guild_id, user_id, role_id):
        self._record("add_role", guild_id, user_id, role_id)

    async def find_channel(self, guild_id, name):
        self._record("find_channel", guild_id, name)
        return self.channels.get(name.lstrip("#"))

    async def get_channel_slowmode(self, channel_id):
        self._record("get_channel_slowmode", channel_id)
        return self.slowmodes.get(channel_id, 0)

    async def set_channel_slowmode(self, channel_id, seconds):
        self._record("set_channel_slowmode", channel_id, seconds)
        self.slowmodes[channel_id] = seconds

    async def kick(self, guild_id, user_id, *, reason=None):
        self._record("kick", guild_id, user_id)

    async def ban(self, guild_id, user_id, *, reason=None):
        self._record("ban", guild_id, user_id, reason)

    async def unban(self, guild_id, user_id):
        self._record("unban", guild_id, user_id)


class SpyResponder:
    def __init__(self):
        self.messages: list[tuple[str, bool]] = []

    async def send(self, content: str, *, ephemeral: bool = False):
        self.messages.append((content, ephemeral))


def make_message(
    content: str,
    *,
    user_id: int = 1,
    roles: list[int] | None = None,
    guild_id: int | None = GUILD_ID,
    channel_id: int = CHANNEL_ID,
    bot: bool = False,
) -> MessageEvent:
    payload = {
        "id": "9000",
        "channel_id": str(channel_id),
        "guild_id": str(guild_id) if guild_id is not None else None,
        "author": {"id": str(user_id), "bot": bot},
        "content": content,
    }
    if roles is not None:
        payload["member"] = {"roles": [str(r) for r in roles]}
    return MessageEvent.model_validate(payload)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        mod_role_id=MOD_ROLE_ID,
        command_prefixes=["?"],
        features_user_prefixes=True,
        commands_case_insensitive=True,
        logging_file="NONE",
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def state() -> SharedState:
    return SharedState()


@pytest.fixture
def registry():
    load_all_commands()
    return default_registry()


@pytest.fixture
def dispatcher(registry, state, gateway, settings) -> Dispatcher:
    return Dispatcher(registry=registry, state=state, gateway=gateway, settings=settings)


def sent_messages(gateway: FakeGateway) -> list[str]:
    return [c[2] for c in gateway.calls_to("send_message")]
