# src/Warden/playground.py
"""HTTP client for the Rust playground (play.rust-lang.org)."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlencode

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from Warden.config import Settings
from Warden.errors import ExternalServiceError
from Warden.http_api import JsonApiClient

log = structlog.get_logger()

CHANNELS = ("stable", "beta", "nightly")
DEFAULT_CHANNEL = "nightly"
DEFAULT_EDITION = "2021"
# Longest output that still fits a fenced reply in one message
MAX_INLINE_OUTPUT = 1994
GIST_REFERER = "https://discord.gg/rust-lang-community"


class _ExecuteResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool = False
    stdout: str = ""
    stderr: str = ""
    # Sent alone instead of the fields above when the run was killed
    error: str | None = None


class _GistResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


@dataclass(frozen=True)
class PlayResult:
    success: bool
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return self.stdout if self.success else self.stderr


def wrap_eval(expression: str) -> str:
    """Turn an expression into a program that prints its Debug form."""
    return f'fn main(){{\n    println!("{{:?}}", {{\n    {expression}\n    }});\n}}'


class PlaygroundClient(JsonApiClient):
    service = "playground"

    def __init__(self, settings: Settings, *, client: httpx.AsyncClient | None = None):
        super().__init__(
            settings.playground_base_url, timeout=settings.http_timeout_seconds, client=client
        )
        self._base_url = settings.playground_base_url.rstrip("/")

    async def execute(
        self,
        code: str,
        *,
        channel: str = DEFAULT_CHANNEL,
        edition: str = DEFAULT_EDITION,
    ) -> PlayResult:
        raw = await self._send(
            "POST",
            "/execute",
            json={
                "channel": channel,
                "edition": edition,
                "code": code,
                "crateType": "bin",
                "mode": "debug",
                "tests": False,
            },
        )
        try:
            resp = _ExecuteResponse.model_validate_json(raw)
        except ValidationError as e:
            raise ExternalServiceError("playground", "unexpected execute response shape") from e
        if resp.error is not None:
            log.info("playground.execute.aborted", channel=channel)
            return PlayResult(success=False, stdout="", stderr=resp.error)
        log.info("playground.execute.completed", channel=channel, success=resp.success)
        return PlayResult(success=resp.success, stdout=resp.stdout, stderr=resp.stderr)

    async def share_link(
        self, code: str, *, channel: str = DEFAULT_CHANNEL, edition: str = DEFAULT_EDITION
    ) -> str:
        """Save ``code`` as a gist and return a playground URL that opens it."""
        raw = await self._send(
            "POST", "/meta/gist/", json={"code": code}, headers={"Referer": GIST_REFERER}
        )
        try:
            gist = _GistResponse.model_validate_json(raw)
        except ValidationError as e:
            raise ExternalServiceError("playground", "gist response carried no id") from e
        log.info("playground.gist.created", gist_id=gist.id)
        query = urlencode(
            {"version": channel, "mode": "debug", "edition": edition, "gist": gist.id}
        )
        return f"{self._base_url}/?{query}"
