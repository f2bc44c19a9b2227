"""Application configuration via environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = "sqlite:///./tradecore.db"
    encryption_key: str = ""  # Fernet key for venue API credentials
    log_level: str = "INFO"

    # Service token for the engine endpoints
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 365

    # Scheduling
    enable_scheduler: bool = True
    cycle_interval_seconds: int = 30
    reconcile_interval_seconds: int = 300
    lock_timeout_seconds: int = 120

    # Outbound HTTP
    http_timeout_seconds: float = 10.0
    http_max_retries: int = 3

    # External analysis collaborator
    signal_source_url: str = ""

    # Paper trading
    paper_balance_usd: float = 10000.0
    paper_slippage_seed: int | None = None

    model_config = {"env_prefix": "TC_", "env_file": ".env"}


settings = Settings()
