"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "HealthNest"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Database ---
    database_url: str  # postgres connection string for asyncpg
    db_pool_min_size: int = 2
    db_pool_max_size: int = 20
    auto_create_schema: bool = True  # CREATE TABLE IF NOT EXISTS at startup

    # --- Auth ---
    jwt_secret: str  # shared HMAC secret, tokens are issued by the login service
    jwt_algorithm: str = "HS256"

    # --- AI assistant (Ollama) ---
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "healthbot"
    ollama_timeout_seconds: float = 60.0
    chat_max_message_length: int = 1000

    # --- Mock health data ---
    mock_data_enabled: bool = True
    mock_update_interval_seconds: int = 3600  # per-patient freshness tick
    maintenance_interval_seconds: int = 6 * 3600
    backfill_days: int = 31
    backfill_batch_size: int = 10

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
