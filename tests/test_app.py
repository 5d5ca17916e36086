# test_app.py

import time

import nacl.encoding
import nacl.signing
import orjson
import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr

import Warden.app as app_module
import Warden.db as _db
from Warden.app import RELAY_SECRET_HEADER, _slash_path_and_options, app
from Warden.discord_schemas import Interaction

client = TestClient(app)


# The app runs requests on its own loop; let it create its own in-memory engine
@pytest.fixture(autouse=True)
def _fresh_db():  # noqa: D401
    """Point the app at an empty in-memory DB."""
    _db.DATABASE_URL = "sqlite+aiosqlite:///:memory:"
    _db._engine = None
    _db._sessionmaker = None
    _db._schema_initialized = False
    yield


@pytest.fixture
def signing_key(monkeypatch):
    key = nacl.signing.SigningKey.generate()
    public_hex = key.verify_key.encode(encoder=nacl.encoding.HexEncoder).decode()
    monkeypatch.setattr(app_module.settings, "discord_public_key", public_hex)
    return key


def _signed_headers(key: nacl.signing.SigningKey, body: bytes) -> dict[str, str]:
    ts = str(int(time.time()))
    sig = key.sign(ts.encode() + body).signature.hex()
    return {"X-Signature-Ed25519": sig, "X-Signature-Timestamp": ts}


def test_missing_headers_401():
    r = client.post("/interactions", content=b"{}")
    assert r.status_code == 401


def test_bad_signature_401(signing_key):
    body = b'{"type": 1}'
    headers = _signed_headers(signing_key, body)
    r = client.post("/interactions", content=b'{"type": 2}', headers=headers)
    assert r.status_code == 401


def test_signed_ping_gets_pong(signing_key):
    body = orjson.dumps({"id": "1", "type": 1, "token": "t", "application_id": "a"})
    r = client.post("/interactions", content=body, headers=_signed_headers(signing_key, body))
    assert r.status_code == 200
    assert r.json() == {"type": 1}


def test_signed_garbage_400(signing_key):
    body = b"not json"
    r = client.post("/interactions", content=body, headers=_signed_headers(signing_key, body))
    assert r.status_code == 400


def test_relay_rejects_wrong_secret(monkeypatch):
    monkeypatch.setattr(app_module.settings, "relay_secret", SecretStr("s3cret"))
    r = client.post("/gateway/messages", content=b"{}", headers={RELAY_SECRET_HEADER: "guess"})
    assert r.status_code == 401


def test_relay_disabled_without_secret(monkeypatch):
    monkeypatch.setattr(app_module.settings, "relay_secret", None)
    r = client.post("/gateway/messages", content=b"{}", headers={RELAY_SECRET_HEADER: ""})
    assert r.status_code == 401


def test_relay_accepts_bot_message(monkeypatch):
    monkeypatch.setattr(app_module.settings, "relay_secret", SecretStr("s3cret"))
    body = orjson.dumps(
        {"id": "1", "channel_id": "2", "author": {"id": "3", "bot": True}, "content": "?help"}
    )
    r = client.post("/gateway/messages", content=body, headers={RELAY_SECRET_HEADER: "s3cret"})
    assert r.status_code == 202


def test_relay_invalid_payload_400(monkeypatch):
    monkeypatch.setattr(app_module.settings, "relay_secret", SecretStr("s3cret"))
    r = client.post(
        "/gateway/messages", content=b'{"id": 1}', headers={RELAY_SECRET_HEADER: "s3cret"}
    )
    assert r.status_code == 400


def test_relay_rejects_non_ascii_secret_guess(monkeypatch):
    monkeypatch.setattr(app_module.settings, "relay_secret", SecretStr("s3cret"))
    guess = "s3crét".encode("latin-1")
    r = client.post("/gateway/messages", content=b"{}", headers={RELAY_SECRET_HEADER: guess})
    assert r.status_code == 401


def test_edit_relay_requires_secret(monkeypatch):
    monkeypatch.setattr(app_module.settings, "relay_secret", SecretStr("s3cret"))
    r = client.post(
        "/gateway/message-edits", content=b"{}", headers={RELAY_SECRET_HEADER: "guess"}
    )
    assert r.status_code == 401


def test_edit_relay_accepts_update(monkeypatch):
    monkeypatch.setattr(app_module.settings, "relay_secret", SecretStr("s3cret"))
    body = orjson.dumps(
        {
            "id": "1",
            "channel_id": "2",
            "author": {"id": "3", "bot": True},
            "content": "?help",
            "timestamp": "2024-01-01T10:00:00+00:00",
            "edited_timestamp": "2024-01-01T10:05:00+00:00",
        }
    )
    r = client.post(
        "/gateway/message-edits", content=body, headers={RELAY_SECRET_HEADER: "s3cret"}
    )
    assert r.status_code == 202


def test_healthz():
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_metrics_disabled_by_default():
    assert client.get("/metrics").status_code == 404


def test_slash_path_with_subcommand():
    inter = Interaction.model_validate(
        {
            "id": "1",
            "type": 2,
            "token": "t",
            "application_id": "a",
            "data": {
                "name": "tag",
                "options": [
                    {
                        "type": 1,
                        "name": "create",
                        "options": [
                            {"name": "key", "type": 3, "value": "motd"},
                            {"name": "value", "type": 3, "value": "hi"},
                        ],
                    }
                ],
            },
        }
    )
    assert _slash_path_and_options(inter) == ("tag create", {"key": "motd", "value": "hi"})


def test_slash_path_without_subcommand():
    inter = Interaction.model_validate(
        {
            "id": "1",
            "type": 2,
            "token": "t",
            "application_id": "a",
            "data": {"name": "tag", "options": [{"name": "key", "type": 3, "value": "motd"}]},
        }
    )
    assert _slash_path_and_options(inter) == ("tag", {"key": "motd"})
