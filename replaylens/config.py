"""ReplayLens — Engine configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. Environment variables prefixed with REPLAYLENS_ (nested with ``__``,
       e.g. ``REPLAYLENS_EXECUTION__RETRY_ATTEMPTS=5``)
    3. User config:   ~/.replaylens/config.yaml
    4. An explicit config file passed to ``Settings.load()``

File values are passed as init arguments, which pydantic-settings ranks
above the environment.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class RecordingConfig(BaseModel):
    """Capture toggles, snapshotted by every recording session."""

    capture_clicks: bool = True
    capture_typing: bool = True
    capture_navigation: bool = True
    capture_scrolling: bool = False
    capture_hovers: bool = False
    ignore_system: bool = Field(
        default=True,
        description="Drop mousemove/mouseenter/mouseleave noise.",
    )
    smart_grouping: bool = True
    auto_optimize: bool = Field(
        default=True,
        description="Drop duplicates and merge typing while recording; otherwise only at stop.",
    )
    duplicate_window_ms: Annotated[int, Field(ge=0)] = 1000
    navigation_group_window_ms: Annotated[int, Field(ge=0)] = 5000


class ExecutionConfig(BaseModel):
    retry_attempts: Annotated[int, Field(ge=0, le=20)] = Field(
        default=3,
        description="Retries shared by all steps of one execution.",
    )
    retry_delay_ms: Annotated[int, Field(ge=0)] = Field(
        default=1000,
        description="Linear backoff unit: retry N waits retry_delay_ms * N.",
    )
    navigation_timeout_ms: Annotated[int, Field(ge=1)] = 10000
    action_timeout_ms: Annotated[int, Field(ge=1)] = 5000
    wait_default_ms: Annotated[int, Field(ge=0)] = 1000
    wait_timeout_ms: Annotated[int, Field(ge=1)] = 10000
    poll_interval_ms: Annotated[int, Field(ge=1)] = 100
    history_limit: Annotated[int, Field(ge=1)] = Field(
        default=100,
        description="Finished executions kept in memory for inspection.",
    )


class PatternConfig(BaseModel):
    min_length: Annotated[int, Field(ge=1)] = 2
    max_length: Annotated[int, Field(ge=1)] = 5
    max_patterns: Annotated[int, Field(ge=1)] = Field(
        default=1000,
        description="Pattern table capacity; the stalest, rarest entry is evicted first.",
    )
    frequent_threshold: Annotated[int, Field(ge=1)] = 3
    max_suggestions: Annotated[int, Field(ge=1)] = 500
    max_waits: Annotated[int, Field(ge=0)] = 3
    max_selector_length: Annotated[int, Field(ge=1)] = 50


class StorageConfig(BaseModel):
    data_dir: Path = Path("~/.replaylens")


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="REPLAYLENS_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    recording: RecordingConfig = Field(default_factory=RecordingConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    patterns: PatternConfig = Field(default_factory=PatternConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("storage", mode="before")
    @classmethod
    def expand_storage_paths(cls, v: object) -> object:
        if isinstance(v, dict) and isinstance(v.get("data_dir"), str):
            v["data_dir"] = Path(v["data_dir"]).expanduser()
        return v

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from YAML file(s) + environment variables."""
        data: dict[str, object] = {}

        candidates = [Path.home() / ".replaylens" / "config.yaml"]
        if config_file:
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                import yaml

                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
                    data.update(loaded)

        return cls(**data)

    @property
    def data_dir(self) -> Path:
        return self.storage.data_dir.expanduser()


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
