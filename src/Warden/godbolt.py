# src/Warden/godbolt.py
"""HTTP client for the godbolt.org compiler explorer API."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from Warden.config import Settings
from Warden.errors import ExternalServiceError
from Warden.http_api import JsonApiClient
from Warden.state import TargetInfo

log = structlog.get_logger()

DEFAULT_FLAGS = "-Copt-level=3 --edition=2021"
DEFAULT_RUSTC = "nightly"
# Room for the surrounding code fence inside one 2000 character message
MAX_OUTPUT_CHARS = 1900
MAX_OUTPUT_LINES = 45

_SEMVER_TRIPLE_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")


class _RemoteTarget(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    lang: str = "rust"
    compiler_type: str = Field(default="", alias="compilerType")
    semver: str = ""
    instruction_set: str = Field(default="", alias="instructionSet")


class _OutputSegment(BaseModel):
    text: str = ""


class _CompileResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: int
    stdout: list[_OutputSegment] = Field(default_factory=list)
    stderr: list[_OutputSegment] = Field(default_factory=list)
    asm: list[_OutputSegment] = Field(default_factory=list)


_TARGETS_ADAPTER = TypeAdapter(list[_RemoteTarget])


@dataclass(frozen=True)
class Compilation:
    success: bool
    asm: str
    stderr: str


def clean_semver(raw: str) -> str:
    """Lower-case, drop anything but alphanumerics and ``.-_``, strip ``rustc``."""
    cleaned = "".join(ch.lower() for ch in raw if ch.isalnum() or ch in ".-_ ")
    cleaned = cleaned.removeprefix("rustc ")
    return cleaned.replace(" ", "")


def semver_ranking(semver: str) -> tuple:
    """Sort key: beta, nightly, alternative compilers, then releases newest first."""
    if semver == "beta":
        return (0, ())
    if semver == "nightly":
        return (1, ())
    m = _SEMVER_TRIPLE_RE.match(semver)
    if m is None:
        return (2, (semver,))
    major, minor, patch = (int(g) for g in m.groups())
    return (3, (-major, -minor, -patch))


def sort_targets(targets: Iterable[TargetInfo]) -> list[TargetInfo]:
    return sorted(targets, key=lambda t: semver_ranking(t.semver))


def strip_code_fence(text: str) -> str:
    """Return the body of a ```lang fenced block, or the text unchanged."""
    stripped = text.strip()
    if not (stripped.startswith("```") and stripped.endswith("```") and len(stripped) >= 6):
        return stripped
    body = stripped[3:-3]
    first_newline = body.find("\n")
    # A fence opener may carry a language tag on its own line
    if first_newline != -1 and body[:first_newline].strip().isidentifier():
        body = body[first_newline + 1 :]
    return body.strip("\n")


def truncate_output(
    text: str, *, max_chars: int = MAX_OUTPUT_CHARS, max_lines: int = MAX_OUTPUT_LINES
) -> str:
    lines = text.splitlines()
    truncated = False
    if len(lines) > max_lines:
        lines = lines[:max_lines]
        truncated = True
    out = "\n".join(lines)
    if len(out) > max_chars:
        out = out[:max_chars]
        truncated = True
    if truncated:
        out += "\n... (output truncated)"
    return out


def _join_segments(segments: list[_OutputSegment]) -> str:
    return "".join(seg.text + "\n" for seg in segments)


class GodboltClient(JsonApiClient):
    service = "godbolt"

    def __init__(self, settings: Settings, *, client: httpx.AsyncClient | None = None):
        super().__init__(
            settings.godbolt_base_url, timeout=settings.http_timeout_seconds, client=client
        )
        self._language = settings.godbolt_language

    async def fetch_targets(self) -> list[TargetInfo]:
        raw = await self._send("GET", f"/api/compilers/{self._language}")
        try:
            remote = _TARGETS_ADAPTER.validate_json(raw)
        except ValidationError as e:
            raise ExternalServiceError("godbolt", "unexpected compiler list shape") from e
        targets = [
            TargetInfo(
                id=t.id,
                name=t.name,
                lang=t.lang,
                compiler_type=t.compiler_type,
                semver=clean_semver(t.semver),
                instruction_set=t.instruction_set,
            )
            for t in remote
        ]
        log.info("godbolt.targets.fetched", count=len(targets))
        return targets

    async def compile(
        self, target_id: str, source: str, *, flags: str = DEFAULT_FLAGS
    ) -> Compilation:
        raw = await self._send(
            "POST",
            f"/api/compiler/{target_id}/compile",
            json={
                "source": source,
                "options": {"userArguments": f"{flags} --color=never", "tools": []},
            },
        )
        try:
            resp = _CompileResponse.model_validate_json(raw)
        except ValidationError as e:
            raise ExternalServiceError("godbolt", "unexpected compile response shape") from e
        log.info("godbolt.compile.completed", target_id=target_id, exit_code=resp.code)
        return Compilation(
            success=resp.code == 0,
            asm=_join_segments(resp.asm),
            stderr=_join_segments(resp.stderr),
        )
