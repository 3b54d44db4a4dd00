from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "fuelwatch-api"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    admin_notify_webhook_url: str | None = None
    notify_timeout_seconds: float = 5.0
    default_page_size: int = 10
    event_queue_size: int = 100
    otel_enabled: bool = True
    otel_service_name: str = "fuelwatch-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="FW_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()


def validate_startup_settings(settings: Settings) -> None:
    missing = [
        name
        for name, value in (
            ("FW_SUPABASE_URL", settings.supabase_url),
            ("FW_SUPABASE_ANON_KEY", settings.supabase_anon_key),
        )
        if not value
    ]
    if missing:
        raise RuntimeError(f"Supabase environment variables are missing: {', '.join(missing)}")
