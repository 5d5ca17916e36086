# src/Warden/gateway.py
"""Discord REST operations the command handlers need.

Handlers depend on the ``Gateway`` protocol only; ``DiscordGateway`` is the
httpx-backed implementation used in production and tests substitute a fake.
Every failure, including timeouts, surfaces as ``ExternalServiceError``.
"""

from __future__ import annotations

from typing import Any, Protocol
from urllib.parse import quote

import httpx
import orjson
import structlog

from Warden.config import Settings
from Warden.errors import ExternalServiceError

log = structlog.get_logger()

AUDIT_REASON_SAFE = " !'()*,-./:;?_~"


class Gateway(Protocol):
    async def send_message(self, channel_id: int, content: str) -> None: ...

    async def send_dm(self, user_id: int, content: str) -> None: ...

    async def get_member_roles(self, guild_id: int, user_id: int) -> tuple[int, ...]: ...

    async def add_role(self, guild_id: int, user_id: int, role_id: int) -> None: ...

    async def find_channel(self, guild_id: int, name: str) -> int | None: ...

    async def get_channel_slowmode(self, channel_id: int) -> int: ...

    async def set_channel_slowmode(self, channel_id: int, seconds: int) -> None: ...

    async def kick(self, guild_id: int, user_id: int, *, reason: str | None = None) -> None: ...

    async def ban(self, guild_id: int, user_id: int, *, reason: str | None = None) -> None: ...

    async def unban(self, guild_id: int, user_id: int) -> None: ...


class DiscordGateway:
    def __init__(self, settings: Settings, *, client: httpx.AsyncClient | None = None):
        token = settings.discord_bot_token.get_secret_value() if settings.discord_bot_token else ""
        self._client = client or httpx.AsyncClient(
            base_url=settings.discord_api_base.rstrip("/"),
            timeout=settings.http_timeout_seconds,
            headers={"Authorization": f"Bot {token}"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> Any:
        headers = {}
        content = None
        if json is not None:
            headers["Content-Type"] = "application/json"
            content = orjson.dumps(json)
        if reason:
            # Header values must be ASCII; Discord decodes the percent-encoding
            headers["X-Audit-Log-Reason"] = quote(reason[:512], safe=AUDIT_REASON_SAFE)
        try:
            r = await self._client.request(method, path, content=content, headers=headers)
        except httpx.TimeoutException as e:
            log.error("discord.rest.timeout", http_method=method, http_path=path)
            raise ExternalServiceError("gateway", f"{method} {path} timed out") from e
        except httpx.RequestError as e:
            log.error(
                "discord.rest.network_error", http_method=method, http_path=path, error=str(e)
            )
            raise ExternalServiceError("gateway", f"{method} {path}: {e}") from e
        if r.status_code >= 400:
            log.error(
                "discord.rest.http_error",
                http_method=method,
                http_path=path,
                http_status_code=r.status_code,
                text_preview=(r.text or "")[:200],
            )
            raise ExternalServiceError(
                "gateway", f"{method} {path} returned {r.status_code}", status=r.status_code
            )
        if r.status_code == 204 or not r.content:
            return None
        return orjson.loads(r.content)

    async def send_message(self, channel_id: int, content: str) -> None:
        await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            # Replies never ping anyone
            json={"content": content, "allowed_mentions": {"parse": []}},
        )

    async def send_dm(self, user_id: int, content: str) -> None:
        dm = await self._request("POST", "/users/@me/channels", json={"recipient_id": str(user_id)})
        if not isinstance(dm, dict) or "id" not in dm:
            raise ExternalServiceError("gateway", "DM channel response carried no id")
        await self.send_message(int(dm["id"]), content)

    async def get_member_roles(self, guild_id: int, user_id: int) -> tuple[int, ...]:
        member = await self._request("GET", f"/guilds/{guild_id}/members/{user_id}")
        return tuple(int(r) for r in (member or {}).get("roles", []))

    async def add_role(self, guild_id: int, user_id: int, role_id: int) -> None:
        await self._request("PUT", f"/guilds/{guild_id}/members/{user_id}/roles/{role_id}")

    async def find_channel(self, guild_id: int, name: str) -> int | None:
        channels = await self._request("GET", f"/guilds/{guild_id}/channels") or []
        wanted = name.lstrip("#").casefold()
        for ch in channels:
            if str(ch.get("name", "")).casefold() == wanted:
                return int(ch["id"])
        return None

    async def get_channel_slowmode(self, channel_id: int) -> int:
        channel = await self._request("GET", f"/channels/{channel_id}")
        return int((channel or {}).get("rate_limit_per_user") or 0)

    async def set_channel_slowmode(self, channel_id: int, seconds: int) -> None:
        await self._request(
            "PATCH", f"/channels/{channel_id}", json={"rate_limit_per_user": seconds}
        )

    async def kick(self, guild_id: int, user_id: int, *, reason: str | None = None) -> None:
        await self._request("DELETE", f"/guilds/{guild_id}/members/{user_id}", reason=reason)

    async def ban(self, guild_id: int, user_id: int, *, reason: str | None = None) -> None:
        await self._request(
            "PUT",
            f"/guilds/{guild_id}/bans/{user_id}",
            json={"delete_message_seconds": 0},
            reason=reason,
        )

    async def unban(self, guild_id: int, user_id: int) -> None:
        await self._request("DELETE", f"/guilds/{guild_id}/bans/{user_id}")
