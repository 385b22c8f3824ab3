"""
config/settings.py — govmap-agent Runtime Settings

Merges config.yaml (policy constants) with .env (secrets).
Pydantic-powered — all fields are validated and typed.

  - HistoryConfig derives summary_keep_recent from summary_threshold when
    it is not set explicitly (threshold - 10)
  - SessionConfig rejects a secret lifetime that outlives the idle timeout
  - validate_all() performs full startup validation and raises ConfigError
    with a clear, human-readable message listing every problem found
  - load_settings() respects GOVMAP_AGENT_CONFIG env var as a fallback
    when no explicit config_path argument is given
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_VALID_STORE_BACKENDS = {"memory", "redis"}


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class AgentConfig(BaseModel):
    name: str = "GovMap Assistant"
    version: str = "1.0.0"
    max_tool_rounds: int = 3
    tool_timeout_seconds: float = 20.0

    @field_validator("max_tool_rounds")
    @classmethod
    def _positive_rounds(cls, v: int) -> int:
        if v < 1:
            raise ValueError("agent.max_tool_rounds must be >= 1")
        return v

    @field_validator("tool_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("agent.tool_timeout_seconds must be > 0")
        return v


class LLMRetryConfig(BaseModel):
    """Backoff for transient provider errors. One attempt = no retry."""
    max_attempts: int = 1
    base_delay: float = 1.0
    max_delay: float = 10.0


class LLMConfig(BaseModel):
    provider: str = "openai"
    model: str = "gpt-4.1-mini"
    temperature: float = 0.3
    max_tokens: int = 2048
    timeout_seconds: float = 60.0
    base_url: Optional[str] = None
    retry: LLMRetryConfig = Field(default_factory=LLMRetryConfig)

    @field_validator("provider")
    @classmethod
    def _known_provider(cls, v: str) -> str:
        if v != "openai":
            raise ValueError(f"llm.provider '{v}' is not supported. Supported: ['openai']")
        return v

    @field_validator("temperature")
    @classmethod
    def _valid_temperature(cls, v: float) -> float:
        if not (0.0 <= v <= 2.0):
            raise ValueError("llm.temperature must be between 0.0 and 2.0")
        return v

    @field_validator("max_tokens")
    @classmethod
    def _positive_tokens(cls, v: int) -> int:
        if v < 1:
            raise ValueError("llm.max_tokens must be >= 1")
        return v


class HistoryConfig(BaseModel):
    history_limit: int = 30
    summary_threshold: int = 30
    summary_keep_recent: Optional[int] = None

    @model_validator(mode="after")
    def _derive_keep_recent(self) -> "HistoryConfig":
        if self.summary_keep_recent is None:
            self.summary_keep_recent = max(self.summary_threshold - 10, 1)
        if self.summary_keep_recent >= self.summary_threshold:
            raise ValueError(
                "history.summary_keep_recent must be smaller than history.summary_threshold"
            )
        return self

    @field_validator("history_limit", "summary_threshold")
    @classmethod
    def _positive_limits(cls, v: int) -> int:
        if v < 2:
            raise ValueError("history limits must be >= 2")
        return v


class SessionConfig(BaseModel):
    ttl_seconds: int = 60 * 60                  # idle timeout and store TTL
    secret_lifetime_seconds: int = 10 * 60
    cookie_name: str = "sid"
    secret_header: str = "X-Session-Magic"
    cookie_max_age_seconds: int = 24 * 60 * 60

    @model_validator(mode="after")
    def _secret_shorter_than_session(self) -> "SessionConfig":
        if self.secret_lifetime_seconds >= self.ttl_seconds:
            raise ValueError(
                "session.secret_lifetime_seconds must be shorter than session.ttl_seconds"
            )
        return self


class StoreConfig(BaseModel):
    backend: str = "memory"
    key_prefix: str = "session:"

    @field_validator("backend")
    @classmethod
    def _known_backend(cls, v: str) -> str:
        if v not in _VALID_STORE_BACKENDS:
            raise ValueError(
                f"store.backend must be one of {sorted(_VALID_STORE_BACKENDS)}, got '{v}'"
            )
        return v


class CatalogConfig(BaseModel):
    max_layers: int = 50
    max_fields_per_layer: int = 50
    max_prompt_chars: int = 12_000


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3001
    frontend_origin: str = "http://localhost:5173"
    production: bool = False


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 100
    backup_count: int = 5
    console_output: bool = True
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    govmap-agent runtime settings.

    Priority (highest to lowest):
      1. Environment variables
      2. .env file
      3. config.yaml
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    # -- Secrets from .env ---------------------------------------------------
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    google_maps_api_key: Optional[str] = Field(default=None, alias="GOOGLE_MAPS_API_KEY")
    google_api_key: Optional[str] = Field(default=None, alias="GOOGLE_API_KEY")
    tavily_api_key: Optional[str] = Field(default=None, alias="TAVILY_API_KEY")
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")

    # -- Structured config (from config.yaml) --------------------------------
    agent: AgentConfig = Field(default_factory=AgentConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("agent", mode="before")
    @classmethod
    def _coerce_agent(cls, v: Any) -> Any:
        return AgentConfig(**v) if isinstance(v, dict) else v

    @field_validator("llm", mode="before")
    @classmethod
    def _coerce_llm(cls, v: Any) -> Any:
        return LLMConfig(**v) if isinstance(v, dict) else v

    @field_validator("history", mode="before")
    @classmethod
    def _coerce_history(cls, v: Any) -> Any:
        return HistoryConfig(**v) if isinstance(v, dict) else v

    @field_validator("session", mode="before")
    @classmethod
    def _coerce_session(cls, v: Any) -> Any:
        return SessionConfig(**v) if isinstance(v, dict) else v

    @field_validator("store", mode="before")
    @classmethod
    def _coerce_store(cls, v: Any) -> Any:
        return StoreConfig(**v) if isinstance(v, dict) else v

    @field_validator("catalog", mode="before")
    @classmethod
    def _coerce_catalog(cls, v: Any) -> Any:
        return CatalogConfig(**v) if isinstance(v, dict) else v

    @field_validator("server", mode="before")
    @classmethod
    def _coerce_server(cls, v: Any) -> Any:
        return ServerConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def google_key(self) -> Optional[str]:
        """GOOGLE_MAPS_API_KEY, falling back to GOOGLE_API_KEY."""
        return self.google_maps_api_key or self.google_api_key

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir)

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Field validators catch type/value errors at parse time; this method
        catches cross-field and runtime problems Pydantic can't see.
        Missing Google/Tavily keys are not errors: those capabilities report
        the missing key to the model as a failed tool result instead.
        """
        errors: list[str] = []

        if not self.openai_api_key:
            errors.append("LLM provider 'openai' requires OPENAI_API_KEY to be set in your .env file.")

        if self.store.backend == "redis" and not self.redis_url.startswith(("redis://", "rediss://", "unix://")):
            errors.append(f"REDIS_URL '{self.redis_url}' is not a redis:// URL.")

        if self.history.history_limit < self.history.summary_keep_recent + 1:
            errors.append(
                "history.history_limit must leave room for the kept tail plus one summary message."
            )

        if not self.server.frontend_origin.startswith(("http://", "https://")):
            errors.append(
                f"server.frontend_origin '{self.server.frontend_origin}' must be an http(s) origin."
            )

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\ngovmap-agent startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your .env file "
                f"and restart.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader
# ─────────────────────────────────────────────────────────────────────────────

_KNOWN_SECTIONS = {
    "agent", "llm", "history", "session", "store", "catalog", "server", "logging",
}


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. GOVMAP_AGENT_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("GOVMAP_AGENT_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Load settings by merging config.yaml with environment variables.

    Called once by the entry point; everything else receives the returned
    Settings explicitly.
    """
    yaml_data = _load_yaml(_resolve_config_path(config_path))
    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}
    return Settings(**init_kwargs)
