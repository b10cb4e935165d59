from __future__ import annotations

from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".newsdesk"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (
    ("db_path", Path("newsdesk.db")),
    ("log_dir", Path("logs")),
)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = (
    "scheduler_enabled",
    "telemetry_enabled",
)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{NEWSDESK_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Every option is read from a `NEWSDESK_*` environment variable (or `.env`)
    and documented here together with its default.
    """

    model_config = SettingsConfigDict(
        env_prefix="NEWSDESK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Core paths.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for the database, logs, and the scheduler lock.",
    )
    db_path: Path = Field(
        default=_default_in_data_dir(Path("newsdesk.db")),
        description=f"SQLite database path. {_data_dir_default_note(Path('newsdesk.db'))}",
    )
    default_timezone: str = Field(
        default="UTC",
        description="Timezone in which the scheduler's wall-clock fetch hours are evaluated.",
    )

    # Scheduler.
    scheduler_enabled: bool = Field(
        default=True,
        validation_alias="NEWSDESK_ENABLE_SCHEDULER",
        description="Start the news scheduler when the API process boots.",
    )
    scheduler_fetch_page_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Articles requested per scheduled fetch.",
    )
    scheduler_poll_interval_seconds: int = Field(
        default=30,
        ge=1,
        description="Upper bound on how long the scheduler thread sleeps between due checks.",
    )

    # News source.
    newsapi_api_key: str | None = Field(
        default=None,
        description="API key for the news search provider.",
    )
    newsapi_base_url: str = Field(
        default="https://newsapi.org/v2",
        description="Base URL of the news search provider.",
    )
    newsapi_timeout_seconds: float = Field(
        default=20.0,
        description="HTTP timeout for news provider calls.",
    )

    # Full-content extraction.
    content_fetch_timeout_seconds: float = Field(
        default=15.0,
        description="HTTP timeout when downloading an article page for body extraction.",
    )
    content_fetch_user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="Browser-like User-Agent sent when downloading article pages.",
    )
    content_backfill_batch_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Posts re-extracted per content backfill run.",
    )

    # Retention.
    retention_max_sourced_posts: int = Field(
        default=50,
        ge=0,
        description="Ingested posts kept by the retention sweep (newest by publish date).",
    )

    # Read cache.
    read_cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        description="TTL for cached post/category reads. 0 disables caching.",
    )
    read_cache_max_entries: int = Field(
        default=256,
        ge=1,
        description="Maximum number of cached read results.",
    )

    # Logging.
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Directory for backend log files. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stdout).",
    )
    log_max_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Size at which log files are rotated.",
    )
    log_backup_count: int = Field(
        default=5,
        ge=0,
        description="Number of rotated log files kept.",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description=(
            "Telemetry sink backend. `log` emits structured telemetry locally; "
            "`none` disables sink output."
        ),
    )

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("NEWSDESK_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("NEWSDESK_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("newsapi_base_url", mode="before")
    @classmethod
    def _normalize_newsapi_base_url(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("NEWSDESK_NEWSAPI_BASE_URL must be a string.")
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError("NEWSDESK_NEWSAPI_BASE_URL must not be empty.")
        return normalized

    @field_validator("default_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        normalized = value.strip()
        try:
            ZoneInfo(normalized)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError("NEWSDESK_DEFAULT_TIMEZONE must be a valid IANA timezone.") from exc
        return normalized

    @field_validator("content_fetch_user_agent", mode="before")
    @classmethod
    def _normalize_user_agent(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("NEWSDESK_CONTENT_FETCH_USER_AGENT must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("NEWSDESK_CONTENT_FETCH_USER_AGENT must not be empty.")
        return normalized

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)

    @field_validator("newsapi_api_key", mode="before")
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)


def _validate_news_source_configuration(*, newsapi_api_key: str | None) -> None:
    errors: list[str] = []

    if newsapi_api_key is None:
        errors.append("NEWSDESK_NEWSAPI_API_KEY is required to fetch news.")

    if errors:
        bullets = "\n".join(f"- {message}" for message in errors)
        raise ValueError(f"Invalid news source configuration:\n{bullets}")


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings(*, validate_api_key: bool = True) -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    settings = _resolve_path_fields(settings)

    if validate_api_key:
        _validate_news_source_configuration(newsapi_api_key=settings.newsapi_api_key)

    return settings
