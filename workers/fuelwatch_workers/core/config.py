from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from fuelwatch.schemas.sync import FORM_SYNC_MAX_BATCH


class Settings(BaseSettings):
    environment: str = "dev"
    api_base_url: str = "http://localhost:8000"
    module_id: str = "form-sync"
    api_key: str = "local-form-sync-key"
    sheet_base_url: str = "https://opensheet.elk.sh"
    sheet_id: str | None = None
    sheet_name: str = "Form Responses 1"
    sync_interval_seconds: float = 300.0
    max_backoff_seconds: float = 900.0
    request_timeout_seconds: float = 10.0
    push_batch_size: int = FORM_SYNC_MAX_BATCH
    otel_enabled: bool = True
    otel_service_name: str = "fuelwatch-form-sync"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="FW_WORKER_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
