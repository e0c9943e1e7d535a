from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "cuepoint-api"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    supabase_service_role_key: str | None = None
    auth_timeout_seconds: float = 5.0
    storage_bucket: str = "job-images"
    storage_timeout_seconds: float = 15.0
    public_base_url: str = "http://localhost:3000"
    draft_ttl_seconds: int = 6 * 60 * 60
    company_groups_cache_ttl_seconds: float = 120.0
    company_groups_cache_max_entries: int = 20
    company_jobs_cache_ttl_seconds: float = 30.0
    company_jobs_cache_max_entries: int = 200
    otel_enabled: bool = True
    otel_service_name: str = "cuepoint-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="CP_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
