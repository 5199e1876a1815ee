from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "job-portal-api"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    jwt_secret: str = "dev-only-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expires_minutes: int = 7 * 24 * 60
    bcrypt_rounds: int = 12
    admin_email: str | None = None
    admin_password: str | None = None
    cors_allowed_origins: str = "*"
    otel_enabled: bool = True
    otel_service_name: str = "job-portal-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="JP_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
