"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./pix_poller.db"
    log_level: str = "INFO"

    # Backend REST API
    api_base_url: str = "http://localhost:8080/api/v1"
    api_token: str = ""
    api_timeout_ms: int = 10000
    api_retry_attempts: int = 3
    gateway: str = "http"  # "http" or "mock"

    # Status polling
    poll_pending_interval_ms: int = 5000
    poll_processing_interval_ms: int = 2000
    poll_max_interval_ms: int = 30000
    poll_backoff_growth: float = 1.5
    poll_dedup_window_ms: int = 2000
    poll_request_timeout_ms: int = 2000
    charge_default_ttl_minutes: int = 30  # Countdown only, never stops polling

    mock_failure_rate: float = 0.05  # 5% simulated failure rate
    mock_latency_ms: int = 100  # Simulated gateway latency

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
