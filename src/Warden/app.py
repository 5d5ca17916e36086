"""FastAPI app entrypoint for Warden."""

import hmac
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request
from pydantic import ValidationError

from Warden import repos
from Warden.command_loader import load_all_commands
from Warden.commanding import default_registry
from Warden.config import load_settings
from Warden.crates import CratesClient
from Warden.crypto import verify_ed25519
from Warden.db import session_scope
from Warden.discord_schemas import Interaction, MessageEvent, MessageUpdateEvent
from Warden.dispatcher import Dispatcher
from Warden.errors import ExternalServiceError
from Warden.gateway import DiscordGateway
from Warden.godbolt import GodboltClient
from Warden.jobs import JobRunner
from Warden.logging import redact_settings, setup_logging
from Warden.metrics import get_counters
from Warden.playground import PlaygroundClient
from Warden.responder import InteractionResponder, respond_deferred, respond_pong
from Warden.state import SharedState

log = structlog.get_logger()
settings = load_settings()
setup_logging(settings)

state = SharedState(cache_entries=settings.cache_entries)
gateway = DiscordGateway(settings)
godbolt = GodboltClient(settings)
playground = PlaygroundClient(settings)
crates = CratesClient(settings)
dispatcher = Dispatcher(
    registry=default_registry(),
    state=state,
    gateway=gateway,
    settings=settings,
    godbolt=godbolt,
    playground=playground,
    crates=crates,
)
jobs = JobRunner(state=state, gateway=gateway, godbolt=godbolt, settings=settings)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    log.info("app.startup", config=redact_settings(settings))
    # A malformed pattern raises PatternError here and aborts startup
    load_all_commands()
    log.info("app.commands.loaded", count=len(default_registry()))
    await state.load_targets_from_store()
    jobs.start()
    try:
        yield
    finally:
        await jobs.stop()
        await dispatcher.drain()
        await gateway.aclose()
        await godbolt.aclose()
        await playground.aclose()
        await crates.aclose()


app = FastAPI(title="Warden", lifespan=lifespan)

DISCORD_SIG_HEADER = "X-Signature-Ed25519"
DISCORD_TS_HEADER = "X-Signature-Timestamp"
RELAY_SECRET_HEADER = "X-Warden-Relay-Secret"


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Assign a request_id, bind it to structlog context, and measure duration."""
    from structlog.contextvars import bind_contextvars, clear_contextvars

    request_id = str(uuid.uuid4())
    start = time.perf_counter()
    bind_contextvars(request_id=request_id)
    status_code = 500
    try:
        response = await call_next(request)
        status_code = getattr(response, "status_code", 200)
        return response
    finally:
        duration_ms = int((time.perf_counter() - start) * 1000)
        log.info(
            "http.request.completed",
            http_path=str(request.url.path),
            http_method=request.method,
            http_status_code=status_code,
            duration_ms=duration_ms,
        )
        clear_contextvars()


@app.post("/interactions")
async def interactions(request: Request):
    raw = await request.body()
    sig = request.headers.get(DISCORD_SIG_HEADER)
    ts = request.headers.get(DISCORD_TS_HEADER)
    log.info(
        "discord.request.received",
        http_path=str(request.url.path),
        has_sig=bool(sig),
        has_ts=bool(ts),
    )
    if not sig or not ts:
        log.error("discord.request.missing_signature")
        raise HTTPException(status_code=401, detail="missing signature headers")
    if not verify_ed25519(settings.discord_public_key, ts, raw, sig):
        log.error("discord.request.bad_signature")
        raise HTTPException(status_code=401, detail="bad signature")

    try:
        inter = Interaction.model_validate_json(raw)
    except ValidationError as err:
        # Include tiny preview for debugging only; avoid full body spam
        preview = raw[:200].decode("utf-8", errors="replace")
        log.error("discord.request.parse_error", raw_body_preview=preview)
        raise HTTPException(status_code=400, detail="invalid interaction payload") from err

    # Ping = 1
    if inter.type == 1:
        return respond_pong()

    # Anything else: immediately DEFER (type 5) to satisfy the 3s budget.
    if (
        settings.features_slash
        and inter.type == 2
        and inter.data is not None
        and inter.data.name is not None
    ):
        path, options = _slash_path_and_options(inter)
        user = inter.member.user if inter.member and inter.member.user else inter.user
        dispatcher.spawn(
            dispatcher.handle_interaction(
                event_id=inter.id,
                path=path,
                options=options,
                user_id=int(user.id) if user and user.id else 0,
                channel_id=int(inter.channel_id or 0),
                guild_id=int(inter.guild_id) if inter.guild_id else None,
                member_roles=(
                    tuple(int(r) for r in inter.member.roles) if inter.member else None
                ),
                responder=InteractionResponder(inter.application_id, inter.token, settings),
            )
        )
    return respond_deferred()


def _require_relay_secret(request: Request) -> None:
    expected = settings.relay_secret.get_secret_value() if settings.relay_secret else ""
    supplied = request.headers.get(RELAY_SECRET_HEADER, "")
    if not expected or not hmac.compare_digest(expected.encode(), supplied.encode()):
        raise HTTPException(status_code=401, detail="bad relay secret")


@app.post("/gateway/messages", status_code=202)
async def gateway_messages(request: Request):
    """Intake for MESSAGE_CREATE events forwarded by the gateway relay."""
    _require_relay_secret(request)
    raw = await request.body()
    try:
        event = MessageEvent.model_validate_json(raw)
    except ValidationError as err:
        log.error("gateway.message.parse_error")
        raise HTTPException(status_code=400, detail="invalid message payload") from err
    dispatcher.spawn_message(event)
    return {"status": "accepted"}


@app.post("/gateway/message-edits", status_code=202)
async def gateway_message_edits(request: Request):
    """Intake for MESSAGE_UPDATE events; recent edits run the command again."""
    _require_relay_secret(request)
    raw = await request.body()
    try:
        event = MessageUpdateEvent.model_validate_json(raw)
    except ValidationError as err:
        log.error("gateway.message_edit.parse_error")
        raise HTTPException(status_code=400, detail="invalid message payload") from err
    dispatcher.spawn_edit(event)
    return {"status": "accepted"}


def _slash_path_and_options(inter: Interaction) -> tuple[str, dict[str, Any]]:
    """Flatten a slash invocation into ``("tag create", {"key": ..., ...})``."""
    assert inter.data is not None and inter.data.name is not None
    path = [inter.data.name]
    opts: list[dict[str, Any]] = inter.data.options or []
    # Subcommand (type 1) nests its own options
    if opts and isinstance(opts[0], dict) and opts[0].get("type") == 1:
        path.append(str(opts[0].get("name")))
        opts = opts[0].get("options", []) or []
    options: dict[str, Any] = {}
    for o in opts:
        n = o.get("name")
        if isinstance(n, str):
            options[n] = o.get("value")
    return " ".join(path), options


@app.get("/healthz")
async def healthz():
    try:
        async with session_scope() as s:
            await repos.healthcheck(s)
    except ExternalServiceError as err:
        raise HTTPException(status_code=500, detail=f"unhealthy: {err}") from err
    return {"status": "ok", "commands": len(default_registry())}


@app.get("/metrics")
async def metrics():
    if not settings.metrics_endpoint_enabled:
        raise HTTPException(status_code=404, detail="metrics disabled")
    return get_counters()
