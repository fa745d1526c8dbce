"""
Configuration for the chat client.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Client configuration, read from SEALED_* environment variables."""

    # Public key directory
    SERVER_URL: str = field(default_factory=lambda: os.getenv("SEALED_SERVER_URL", "http://localhost:8000"))
    HTTP_TIMEOUT: float = field(default_factory=lambda: float(os.getenv("SEALED_HTTP_TIMEOUT", "10")))

    # Device-local key storage
    STORAGE_DIR: Path = field(default_factory=lambda: Path(os.getenv("SEALED_STORAGE_DIR", "client_data")))
    STORE_TIMEOUT: float = field(default_factory=lambda: float(os.getenv("SEALED_STORE_TIMEOUT", "5")))

    # Send "PLAIN:" messages to users without a published key
    ALLOW_PLAINTEXT: bool = field(default_factory=lambda: _env_flag("SEALED_ALLOW_PLAINTEXT"))

    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("SEALED_LOG_LEVEL", "WARNING"))

    def key_store_path(self, username: str) -> Path:
        """SQLite file holding this device's private keys for a user"""
        return self.STORAGE_DIR / f"{username}.keys.db"
