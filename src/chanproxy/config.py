"""chanproxy configuration: chanproxy.yaml plus CHANPROXY_* env vars."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _load_yaml_config() -> dict[str, Any]:
    """Load chanproxy.yaml from CHANPROXY_CONFIG_PATH or default locations."""
    config_path = os.getenv("CHANPROXY_CONFIG_PATH")
    search_paths = (
        [Path(config_path)]
        if config_path
        else [
            Path("/etc/chanproxy/chanproxy.yaml"),
            Path("chanproxy.yaml"),
        ]
    )
    for path in search_paths:
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}
    return {}


def _parse_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except ValueError:
                parsed = None
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        return [item.strip() for item in text.split(",") if item.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value).strip()] if str(value).strip() else []


class BreakerSettings(BaseModel):
    """Circuit breaker tuning for one external dependency."""

    timeout_s: float = Field(default=10.0, gt=0, description="Per-call timeout")
    error_threshold_percentage: float = Field(default=50.0, ge=0.0, le=100.0)
    reset_timeout_s: float = Field(default=30.0, gt=0, description="Open -> half-open cooldown")
    volume_threshold: int = Field(default=5, ge=1, description="Min calls before the breaker may trip")
    rolling_window_s: float = Field(default=10.0, gt=0)
    rolling_buckets: int = Field(default=10, ge=1)


class BreakersConfig(BaseModel):
    """Breaker settings per dependency. Missing entries fall back to `default`."""

    default: BreakerSettings = Field(default_factory=BreakerSettings)
    gmail: BreakerSettings = Field(
        default_factory=lambda: BreakerSettings(timeout_s=30.0, reset_timeout_s=60.0)
    )
    line: BreakerSettings | None = None
    discord: BreakerSettings | None = None
    llm: BreakerSettings | None = None

    def for_dependency(self, name: str) -> BreakerSettings:
        settings = getattr(self, name, None)
        if isinstance(settings, BreakerSettings):
            return settings
        return self.default


class DiscordConfig(BaseSettings):
    """Discord bot configuration."""

    enabled: bool = False
    bot_token: str = Field(default="", description="Discord bot token")
    api_base: str = "https://discord.com/api/v10"
    channel_ids: Annotated[list[str], NoDecode] = Field(default_factory=list, description="Text channels to poll")
    poll_interval_s: float = Field(default=5.0, gt=0, le=300)
    fetch_limit: int = Field(default=50, ge=1, le=100)
    retry_delay_s: float = Field(default=3.0, gt=0, le=60)

    @field_validator("channel_ids", mode="before")
    @classmethod
    def _parse_channel_ids(cls, value: Any) -> list[str]:
        return _parse_str_list(value)

    model_config = SettingsConfigDict(env_prefix="CHANPROXY_DISCORD_")


class GmailConfig(BaseSettings):
    """Gmail API OAuth configuration."""

    client_id: str = ""
    client_secret: str = ""
    refresh_token: str = ""
    api_base: str = "https://gmail.googleapis.com/gmail/v1"
    token_url: str = "https://oauth2.googleapis.com/token"
    refresh_margin_s: int = Field(default=300, ge=0, description="Refresh the token this early")

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    model_config = SettingsConfigDict(env_prefix="CHANPROXY_GMAIL_")


class LineConfig(BaseSettings):
    """LINE Messaging API configuration."""

    channel_access_token: str = Field(default="", description="Fallback bearer token")
    channel_secret: str = Field(default="", description="Used for webhook signatures")
    api_base: str = "https://api.line.me/v2/bot"
    data_api_base: str = Field(default="https://api-data.line.me/v2/bot", description="Message content host")
    verify_signature: bool = True

    model_config = SettingsConfigDict(env_prefix="CHANPROXY_LINE_")


class LLMConfig(BaseSettings):
    """Reply-drafting LLM configuration."""

    model: str = Field(
        default="anthropic/claude-3-5-sonnet-20241022",
        description="LiteLLM model identifier",
    )
    api_key: str = Field(default="", description="API key for the LLM provider")
    api_base: str | None = Field(default=None, description="Custom API base URL")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, gt=0)
    language: str = Field(default="Japanese", description="Language replies are drafted in")
    max_reply_chars: int = Field(default=200, gt=0)

    model_config = SettingsConfigDict(env_prefix="CHANPROXY_LLM_")


class ProxyConfig(BaseSettings):
    """Root chanproxy configuration."""

    # Server
    host: str = Field(default="0.0.0.0", description="Server bind host")
    port: int = Field(default=3000, description="Server bind port")
    environment: str = Field(default="production")

    # Auth
    api_key: str = Field(default="", description="API key for the proxy's own endpoints. Empty = no auth")

    # Cache
    cache_capacity: int = Field(default=100, ge=1, description="Recent messages kept in memory")

    # Sub-configs
    breakers: BreakersConfig = Field(default_factory=BreakersConfig)
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    gmail: GmailConfig = Field(default_factory=GmailConfig)
    line: LineConfig = Field(default_factory=LineConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="'json' or 'console'")

    model_config = SettingsConfigDict(
        env_prefix="CHANPROXY_",
        env_nested_delimiter="__",
    )

    @classmethod
    def load(cls) -> ProxyConfig:
        """Load config from YAML + env vars.

        Keys present in the YAML file win; everything else comes from env vars
        or defaults. A YAML sub-section replaces that sub-config entirely.
        """
        yaml_cfg = _load_yaml_config()

        discord_data = yaml_cfg.pop("discord", {})
        gmail_data = yaml_cfg.pop("gmail", {})
        line_data = yaml_cfg.pop("line", {})
        llm_data = yaml_cfg.pop("llm", {})

        # Only pass YAML sub-configs if they have data;
        # otherwise let pydantic-settings pick up env vars
        kwargs: dict[str, Any] = {**yaml_cfg}
        if discord_data:
            kwargs["discord"] = DiscordConfig(**discord_data)
        if gmail_data:
            kwargs["gmail"] = GmailConfig(**gmail_data)
        if line_data:
            kwargs["line"] = LineConfig(**line_data)
        if llm_data:
            kwargs["llm"] = LLMConfig(**llm_data)

        return cls(**kwargs)


# Singleton
_config: ProxyConfig | None = None


def get_config() -> ProxyConfig:
    """Get or create the global config."""
    global _config
    if _config is None:
        _config = ProxyConfig.load()
    return _config
