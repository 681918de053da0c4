"""Application settings loaded from environment variables using pydantic-settings."""

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Policyvault application configuration.

    All settings can be overridden via environment variables.
    Ingestion and supervisor limits are passed explicitly to the
    coordinator and the restart supervisor at construction time.
    """

    DATABASE_DIR: str = "./data"
    FRONTEND_URL: str = "http://localhost:3000"
    HOST: str = "127.0.0.1"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # Ingestion workers
    MAX_CONCURRENT_INGESTIONS: int = 4
    INGESTION_TIMEOUT_SECONDS: float | None = None
    WORKER_START_METHOD: Literal["spawn", "fork", "forkserver"] = "spawn"

    # Restart supervisor
    SUPERVISOR_ENABLED: bool = True
    LOAD_METRIC: Literal["loadavg", "loadavg_percent"] = "loadavg"
    LOAD_THRESHOLD: float = 70.0
    LOAD_SAMPLE_INTERVAL_SECONDS: float = 1.0
    RESTART_GRACE_SECONDS: float = 5.0
    RESTART_SPAWN_ATTEMPTS: int = 3

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }
