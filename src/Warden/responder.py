"""Reply sinks handed to command handlers through ``Invocation.responder``."""

import httpx
import orjson
import structlog
from fastapi import Response

from Warden.config import Settings
from Warden.errors import ExternalServiceError
from Warden.gateway import Gateway

log = structlog.get_logger()

# Interaction callback types
PONG = 1
DEFERRED_CHANNEL_MESSAGE = 5

EPHEMERAL_FLAG = 1 << 6


def orjson_response(data: dict) -> Response:
    return Response(content=orjson.dumps(data), media_type="application/json")


def respond_pong() -> Response:
    return orjson_response({"type": PONG})


def respond_deferred() -> Response:
    return orjson_response({"type": DEFERRED_CHANNEL_MESSAGE})


class InteractionResponder:
    """Replies to a deferred slash invocation through its follow-up webhook.

    ``discord_webhook_url_override`` points follow-ups at a local sink during
    development; failures against that sink are logged and dropped.
    """

    def __init__(
        self,
        application_id: str,
        token: str,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.application_id = application_id
        self.token = token
        self.settings = settings
        self._transport = transport

    @property
    def is_local_sink(self) -> bool:
        return bool(self.settings.discord_webhook_url_override)

    @property
    def url(self) -> str:
        base = self.settings.discord_webhook_url_override or self.settings.discord_api_base
        return f"{base.rstrip('/')}/webhooks/{self.application_id}/{self.token}"

    async def send(self, content: str, *, ephemeral: bool = False) -> None:
        payload = {
            "content": content,
            "flags": EPHEMERAL_FLAG if ephemeral else 0,
            "allowed_mentions": {"parse": []},
        }
        log.info(
            "discord.followup.send",
            ephemeral=ephemeral,
            content_len=len(content),
            local_sink=self.is_local_sink,
        )
        async with httpx.AsyncClient(
            timeout=self.settings.http_timeout_seconds, transport=self._transport
        ) as client:
            try:
                r = await client.post(
                    self.url,
                    content=orjson.dumps(payload),
                    headers={"Content-Type": "application/json"},
                )
                r.raise_for_status()
            except httpx.HTTPStatusError as e:
                log.error(
                    "discord.followup.http_error",
                    http_status_code=e.response.status_code,
                    text_preview=e.response.text[:200],
                )
                if not self.is_local_sink:
                    raise ExternalServiceError(
                        "gateway", "follow-up rejected", status=e.response.status_code
                    ) from e
            except httpx.RequestError as e:
                log.error("discord.followup.network_error", error=str(e))
                if not self.is_local_sink:
                    raise ExternalServiceError("gateway", f"follow-up failed: {e}") from e
            else:
                log.info("discord.followup.sent", http_status_code=r.status_code)


class ChannelResponder:
    """Replies to a prefix command by posting in the originating channel.

    Channel messages cannot be ephemeral; the flag is accepted and ignored.
    """

    def __init__(self, gateway: Gateway, channel_id: int):
        self.gateway = gateway
        self.channel_id = channel_id

    async def send(self, content: str, *, ephemeral: bool = False) -> None:
        await self.gateway.send_message(self.channel_id, content)
