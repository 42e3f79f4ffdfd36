# duesledger/config.py
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # --- Database ---
    database_url: str = "sqlite:///duesledger/ledger_dev.db"

    # --- Calendar ---
    # Periods and grace days are evaluated in the association's local time.
    timezone: str = "America/Lima"
    default_start_period: str = "2025-01"

    # --- Batch jobs ---
    generation_workers: int = 4

    # --- Conditional writes ---
    write_max_attempts: int = 5
    write_retry_wait_seconds: float = 0.05
    store_max_attempts: int = 3
    store_retry_wait_seconds: float = 0.2

    # --- Logging ---
    log_level: str = "INFO"
    json_logs: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

# Ensure path directory exists (for SQLite)
if settings.database_url.startswith("sqlite:///"):
    db_path = Path(settings.database_url.replace("sqlite:///", ""))
    db_path.parent.mkdir(parents=True, exist_ok=True)

# --- SQLAlchemy setup ---
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
