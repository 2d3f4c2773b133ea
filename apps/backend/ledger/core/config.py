from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    APP_NAME: str = "Ledger Backend"
    ENV: str = "dev"

    # Default SQLite file DB next to the backend package, absolute so the CWD does not matter
    _default_db_path = Path(__file__).resolve().parents[2] / "ledger.sqlite3"
    DATABASE_URL: str = f"sqlite:///{_default_db_path}"

    CORS_ORIGINS: list[str] = ["*"]
    TIMEZONE: str = "Asia/Kolkata"
    LOG_LEVEL: str = "INFO"

    # Caller-facing deadline for a single ledger write (lock wait + commit)
    STORE_TIMEOUT_SECONDS: float = 5.0
    # 0 disables the background scheduler timer; runs are then caller-driven only
    SCHEDULER_INTERVAL_SECONDS: float = 0
    CANDIDATE_MIN_CONFIDENCE: float = 0.5
    SEED_DEFAULTS: bool = True

    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="LEDGER_", case_sensitive=False)


settings = Settings()
