"""Venue model: a connected exchange account with encrypted API credentials."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Venue(SQLModel, table=True):
    __tablename__ = "venue"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)  # "binance", "okx", "bybit"
    api_key_encrypted: str = ""  # Fernet-encrypted
    api_secret_encrypted: str = ""
    passphrase_encrypted: str = ""  # OKX only
    is_enabled: bool = True
    is_connected: bool = True
    spot_enabled: bool = True
    futures_enabled: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key_encrypted and self.api_secret_encrypted)
