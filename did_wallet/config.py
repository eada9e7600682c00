"""
config.py - Central configuration for the DID Wallet engine
"""
import logging
from typing import Optional

from pydantic_settings import BaseSettings

from .crypto import DEFAULT_KEY_TYPE
from .storage import BACKEND_MEMORY, DEFAULT_STORE_PATH


class WalletSettings(BaseSettings):
    # Storage
    STORE_BACKEND: str = BACKEND_MEMORY   # "memory" or "file"
    STORE_PATH: str = DEFAULT_STORE_PATH

    # Identifiers
    DID_METHOD: str = "wallet"
    KEY_TYPE: str = DEFAULT_KEY_TYPE
    HOLDER_DID: Optional[str] = None      # Wallet holder; created on demand when unset

    LOG_LEVEL: str = "INFO"

    class Config:
        env_prefix = "DID_WALLET_"
        env_file = ".env"  # Can be loaded from a .env file


settings = WalletSettings()


def configure_logging(level: Optional[str] = None):
    """Basic console logging at the configured level"""
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
