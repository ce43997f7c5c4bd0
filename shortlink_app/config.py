from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Loading priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values below
    """

    # Environment
    environment: str = "development"
    debug: bool = True

    # Application
    app_name: str = "Shortlink Service"
    app_version: str = "1.0.0"

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # Options: "text", "json"

    # Database
    database_url: str = "sqlite:///./shortlinks.db"

    # Short code generation
    base_url: str = "http://127.0.0.1:8000"
    short_code_length: int = 6
    max_retries: int = 10  # Ceiling for collision retries before giving up
    custom_code_min_length: int = 3
    custom_code_max_length: int = 20

    # Password protection
    bcrypt_rounds: int = Field(12, ge=12)

    # Queue settings (access events)
    queue_backend: str = "redis_streams"  # Options: "redis_streams", "memory"
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = "shortlink_access"
    queue_consumer_group: str = "access_log_workers"
    queue_batch_size: int = 100
    queue_worker_interval: float = 1.0  # Seconds to sleep when the queue is empty

    # Access log storage
    access_log_backend: str = "database"  # Options: "database", "memory"
    embedded_worker: bool = True  # Drain the queue inside the API process

    # Analytics
    analytics_window_days: int = 30
    analytics_top_n: int = 10

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Create settings instance
settings = Settings()
