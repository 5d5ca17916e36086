"""Settings loader for Warden."""

from pathlib import Path
from typing import Any

import tomllib
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# (table, key) in config.toml -> Settings field
_TOML_FIELDS: dict[tuple[str, str], str] = {
    ("app", "env"): "env",
    ("discord", "api_base"): "discord_api_base",
    ("discord", "webhook_url_override"): "discord_webhook_url_override",
    ("bot", "prefixes"): "command_prefixes",
    ("bot", "mod_role_id"): "mod_role_id",
    ("bot", "case_insensitive"): "commands_case_insensitive",
    ("bot", "default_ban_hours"): "default_ban_hours",
    ("bot", "ban_sweep_interval_seconds"): "ban_sweep_interval_seconds",
    ("bot", "http_timeout_seconds"): "http_timeout_seconds",
    ("bot", "cache_entries"): "cache_entries",
    ("bot", "edit_replay_window_minutes"): "edit_replay_window_minutes",
    ("features", "user_prefixes"): "features_user_prefixes",
    ("features", "slash"): "features_slash",
    ("godbolt", "base_url"): "godbolt_base_url",
    ("godbolt", "language"): "godbolt_language",
    ("godbolt", "update_seconds"): "godbolt_update_seconds",
    ("playground", "base_url"): "playground_base_url",
    ("crates", "base_url"): "crates_base_url",
    ("crates", "user_agent"): "crates_user_agent",
    ("logging", "enabled"): "logging_enabled",
    ("logging", "level"): "logging_level",
    ("logging", "file_path"): "logging_file_path",
    ("logging", "max_bytes"): "logging_max_bytes",
    ("logging", "backup_count"): "logging_backup_count",
    ("ops", "metrics_endpoint_enabled"): "metrics_endpoint_enabled",
}


def _handler_level(value: Any, overall: str) -> str:
    # Per-handler levels: INFO|DEBUG|WARNING|ERROR|CRITICAL|NONE, or a bool
    # where True follows the overall level and False disables the handler
    if isinstance(value, bool):
        return overall if value else "NONE"
    if isinstance(value, str):
        return value.upper()
    return overall


def _toml_settings_source() -> dict[str, Any]:
    """Read config.toml from the working directory.

    Only keys present in the file are returned, so field defaults apply to
    the rest. This source ranks below env and .env.
    """
    cfg_path = Path("config.toml")
    if not cfg_path.exists():
        return {}
    with cfg_path.open("rb") as f:
        t = tomllib.load(f)

    out: dict[str, Any] = {}
    for (table, key), field_name in _TOML_FIELDS.items():
        section = t.get(table) or {}
        if key in section:
            out[field_name] = section[key]

    log_cfg = t.get("logging") or {}
    overall = str(log_cfg.get("level", "INFO")).upper()
    if "console" in log_cfg:
        out["logging_console"] = _handler_level(log_cfg["console"], overall)
    if "to_file" in log_cfg:
        out["logging_file"] = _handler_level(log_cfg["to_file"], overall)
    return out


class Settings(BaseSettings):
    env: str = Field(default="dev")
    database_url: str = Field(default="sqlite+aiosqlite:///./warden.sqlite3")

    # --- Discord Credentials ---
    discord_app_id: str | None = None
    discord_public_key: str = ""
    discord_bot_token: SecretStr | None = None
    discord_api_base: str = "https://discord.com/api/v10"
    # Redirects interaction follow-ups to a local sink during development
    discord_webhook_url_override: str | None = None
    # Shared secret the gateway relay sends with forwarded message events
    relay_secret: SecretStr | None = None

    # --- Bot Behavior ---
    mod_role_id: int | None = None
    command_prefixes: list[str] = Field(default_factory=lambda: ["?"])
    commands_case_insensitive: bool = True
    features_user_prefixes: bool = False
    features_slash: bool = True
    default_ban_hours: int = 24
    ban_sweep_interval_seconds: int = 3600
    http_timeout_seconds: float = 10.0
    # Upper bound on cached tag and prefix entries each
    cache_entries: int = 10_000
    # Edited messages older than this are not re-dispatched
    edit_replay_window_minutes: int = 60

    # --- Godbolt ---
    godbolt_base_url: str = "https://godbolt.org"
    godbolt_language: str = "rust"
    godbolt_update_seconds: int = 60 * 60 * 12

    # --- Playground / crates.io ---
    playground_base_url: str = "https://play.rust-lang.org"
    crates_base_url: str = "https://crates.io/api/v1"
    crates_user_agent: str = "warden-discord-bot"

    # --- Logging ---
    logging_enabled: bool = True
    logging_level: str = "INFO"
    logging_console: str = "INFO"
    logging_file: str = "INFO"
    logging_file_path: str = "logs/warden.jsonl"
    logging_max_bytes: int = 5_000_000
    logging_backup_count: int = 5

    # --- Ops ---
    metrics_endpoint_enabled: bool = False

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",  # Safely ignore any extra env vars
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Precedence (highest to lowest):
        # 1) init_settings (explicit overrides in code/tests)
        # 2) dotenv (.env in cwd): developer-local overrides
        # 3) env_settings (OS env)
        # 4) TOML (repo config.toml): project defaults
        # 5) file_secret_settings
        return (
            init_settings,
            dotenv_settings,
            env_settings,
            _toml_settings_source,
            file_secret_settings,
        )


def load_settings() -> Settings:
    return Settings()
