"""Application settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    prometheus_url: str = "http://localhost:9090"
    prometheus_bearer_token: str | None = None
    query_timeout_seconds: float = 30.0
    # Window used for range queries when the caller passes none
    range_query_seconds: int = 3600
    range_query_step_seconds: int = 30

    datasource: str = "prometheus"
    default_cluster: str | None = None
    # Metric used to discover cluster names, defaults to kube_namespace_status_phase
    cluster_filter: str | None = None

    refresh_interval_seconds: int = 30
    prometheus_port: int = 9300
    log_level: str = "INFO"
    log_json: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="",
        extra="ignore",
    )
