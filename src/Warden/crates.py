# src/Warden/crates.py
"""Crate lookups against the crates.io registry API."""

from __future__ import annotations

from dataclasses import dataclass

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from Warden.config import Settings
from Warden.errors import ExternalServiceError
from Warden.http_api import JsonApiClient

log = structlog.get_logger()


class _RemoteCrate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    newest_version: str = ""
    downloads: int = 0
    description: str | None = None
    documentation: str | None = None


class _SearchResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    crates: list[_RemoteCrate]


@dataclass(frozen=True)
class CrateInfo:
    id: str
    name: str
    version: str
    downloads: int
    description: str
    documentation: str | None

    @property
    def url(self) -> str:
        return f"https://crates.io/crates/{self.id}"

    @property
    def docs_url(self) -> str:
        return self.documentation or f"https://docs.rs/{self.name}"


class CratesClient(JsonApiClient):
    service = "crates"

    def __init__(self, settings: Settings, *, client: httpx.AsyncClient | None = None):
        super().__init__(
            settings.crates_base_url, timeout=settings.http_timeout_seconds, client=client
        )
        self._user_agent = settings.crates_user_agent

    async def search(self, query: str) -> CrateInfo | None:
        """Best match for ``query``, or None when nothing matches."""
        # crates.io rejects requests without an identifying User-Agent
        raw = await self._send(
            "GET", "/crates", params={"q": query}, headers={"User-Agent": self._user_agent}
        )
        try:
            resp = _SearchResponse.model_validate_json(raw)
        except ValidationError as e:
            raise ExternalServiceError("crates", "unexpected search response shape") from e
        log.info("crates.search.completed", query=query, results=len(resp.crates))
        if not resp.crates:
            return None
        top = resp.crates[0]
        return CrateInfo(
            id=top.id,
            name=top.name,
            version=top.newest_version,
            downloads=top.downloads,
            description=(top.description or "").strip(),
            documentation=top.documentation,
        )
