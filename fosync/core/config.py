from functools import lru_cache
from pathlib import Path
import re

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "FOSYNC_"
DEFAULT_SOURCES_PATH = Path(__file__).resolve().parents[1] / "data" / "sources.yaml"
_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*(\.[a-z_][a-z0-9_]*)?$")


class ConfigurationError(Exception):
    """Raised when mandatory configuration is missing or invalid."""


class Settings(BaseSettings):
    environment: str = "dev"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    dry_run: bool = False
    database_url: str | None = None
    database_password: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 2
    database_statement_timeout_seconds: float = 15.0
    jobs_table: str = "jobs"
    anthropic_api_key: str | None = None
    classifier_model: str = "claude-haiku-4-5"
    classifier_batch_size: int = 20
    classifier_max_tokens: int = 2000
    classifier_timeout_seconds: float = 30.0
    adzuna_app_id: str | None = None
    adzuna_app_key: str | None = None
    sources: str | None = None
    sources_path: Path = DEFAULT_SOURCES_PATH
    http_timeout_seconds: float = 10.0
    http_user_agent: str = "Mozilla/5.0 (compatible; fosync/0.1)"
    firm_delay_seconds: float = 0.3
    page_delay_seconds: float = 0.5
    classifier_delay_seconds: float = 0.2
    retention_days: int = 60
    dedup_chunk_size: int = 500
    write_batch_size: int = 100
    otel_enabled: bool = True
    otel_service_name: str = "fosync"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    @field_validator("jobs_table")
    @classmethod
    def _validate_jobs_table(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not _IDENTIFIER_RE.match(normalized):
            raise ValueError(f"jobs_table must be a plain sql identifier, got {value!r}")
        return normalized

    @property
    def source_names(self) -> list[str]:
        if not self.sources:
            return []
        return [name.strip().lower() for name in self.sources.split(",") if name.strip()]

    @property
    def adzuna_enabled(self) -> bool:
        return bool(self.adzuna_app_id and self.adzuna_app_key)

    def missing_required(self) -> list[str]:
        missing: list[str] = []
        if not self.dry_run and not self.database_url:
            missing.append(f"{ENV_PREFIX}DATABASE_URL")
        if not self.anthropic_api_key:
            missing.append(f"{ENV_PREFIX}ANTHROPIC_API_KEY")
        return missing


@lru_cache
def get_settings() -> Settings:
    return Settings()
