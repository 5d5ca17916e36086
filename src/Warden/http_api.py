# src/Warden/http_api.py
"""Shared plumbing for the JSON web APIs the bot calls (godbolt, playground, crates.io)."""

from __future__ import annotations

from typing import Any

import httpx
import orjson
import structlog

from Warden.errors import ExternalServiceError

log = structlog.get_logger()


class JsonApiClient:
    """Base for one remote service; every transport failure becomes ExternalServiceError.

    Subclasses set ``service``, which names the failure and prefixes log events.
    """

    service = "http"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Accept": "application/json", **(headers or {})},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> bytes:
        headers = {"Accept": "application/json", **(headers or {})}
        content = None
        if json is not None:
            headers["Content-Type"] = "application/json"
            content = orjson.dumps(json)
        try:
            r = await self._client.request(
                method, path, content=content, params=params, headers=headers
            )
            r.raise_for_status()
        except httpx.TimeoutException as e:
            log.error(f"{self.service}.request.timeout", http_method=method, http_path=path)
            raise ExternalServiceError(self.service, f"{method} {path} timed out") from e
        except httpx.HTTPStatusError as e:
            log.error(
                f"{self.service}.request.http_error",
                http_method=method,
                http_path=path,
                http_status_code=e.response.status_code,
            )
            raise ExternalServiceError(
                self.service,
                f"{method} {path} returned {e.response.status_code}",
                status=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            log.error(f"{self.service}.request.network_error", http_method=method, http_path=path)
            raise ExternalServiceError(self.service, f"{method} {path}: {e}") from e
        return r.content
