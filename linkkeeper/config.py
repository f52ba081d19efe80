"""Configuration loading utilities for LinkKeeper."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)


DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or malformed."""


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    value = env.get(key)
    if not value:
        return float(default)
    try:
        return float(value)
    except ValueError:
        logger.warning("Invalid %s value: %s", key, value)
        return float(default)


@dataclass(frozen=True)
class Settings:
    """Typed view over the settings YAML file plus environment overrides."""

    db_path: Path
    telemetry_db_path: Path
    feed_timeout: float
    feed_user_agent: str
    llm_api_base: str
    llm_model: str
    llm_timeout: float
    llm_mock_mode: bool
    system_prompt: str
    summary_prefix: str
    max_message_length: int
    send_timeout: float

    @staticmethod
    def from_dict(data: Dict[str, Any], env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        store_cfg = data.get("store", {})
        telemetry_cfg = data.get("telemetry", {})
        feeds_cfg = data.get("feeds", {})
        llm_cfg = data.get("llm", {})
        discord_cfg = data.get("discord", {})
        return Settings(
            db_path=Path(env.get("LINKKEEPER_DB") or store_cfg.get("path", "hyperlinks.db")),
            telemetry_db_path=Path(
                env.get("LINKKEEPER_TELEMETRY_DB") or telemetry_cfg.get("path", "telemetry.db")
            ),
            feed_timeout=_env_float(env, "FEED_TIMEOUT", feeds_cfg.get("timeout_seconds", 30)),
            feed_user_agent=str(feeds_cfg.get("user_agent", "LinkKeeper")),
            llm_api_base=env.get("LLM_API_BASE") or str(llm_cfg.get("api_base", "https://api.perplexity.ai")),
            llm_model=env.get("LLM_MODEL_NAME") or str(llm_cfg.get("model", "sonar")),
            llm_timeout=_env_float(env, "LLM_TIMEOUT", llm_cfg.get("timeout_seconds", 60)),
            llm_mock_mode=env.get("LLM_MODE", "").lower() == "mock",
            system_prompt=str(llm_cfg.get("system_prompt", "Be precise and concise.")),
            summary_prefix=str(llm_cfg.get("summary_prefix", "Summarize this article: ")),
            max_message_length=int(discord_cfg.get("max_message_length", 1900)),
            send_timeout=float(discord_cfg.get("send_timeout_seconds", 15)),
        )


class SettingsLoader:
    """Loads and caches settings from YAML configuration files."""

    def __init__(self, path: Path | None = None, env: Optional[Mapping[str, str]] = None) -> None:
        self._path = path or DEFAULT_SETTINGS_PATH
        self._env = env
        self._cache: Settings | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self, force: bool = False) -> Settings:
        if self._cache is not None and not force:
            return self._cache
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Unable to read settings file {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Settings file {self._path} must contain a mapping")
        self._cache = Settings.from_dict(data, env=self._env)
        return self._cache


def get_settings() -> Settings:
    """Convenience accessor for default settings."""

    return SettingsLoader().load()


@dataclass(frozen=True)
class BotCredentials:
    """Secrets required before the bot may connect."""

    discord_token: str
    application_id: int
    llm_api_key: str

    @staticmethod
    def from_env(
        env: Optional[Mapping[str, str]] = None,
        *,
        require_llm_key: bool = True,
    ) -> "BotCredentials":
        env = os.environ if env is None else env
        required = ["DISCORD_TOKEN", "DISCORD_APP_ID"]
        if require_llm_key:
            required.append("LLM_API_KEY")
        missing = [key for key in required if not env.get(key, "").strip()]
        if missing:
            raise ConfigError(
                "Missing required environment variable(s): " + ", ".join(missing)
            )
        app_id_raw = env["DISCORD_APP_ID"].strip()
        try:
            application_id = int(app_id_raw)
        except ValueError as exc:
            raise ConfigError(f"DISCORD_APP_ID must be numeric, got {app_id_raw!r}") from exc
        return BotCredentials(
            discord_token=env["DISCORD_TOKEN"].strip(),
            application_id=application_id,
            llm_api_key=env.get("LLM_API_KEY", "").strip(),
        )


__all__ = ["BotCredentials", "ConfigError", "Settings", "SettingsLoader", "get_settings"]
