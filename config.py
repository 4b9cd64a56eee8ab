# config.py
"""
Configuration for MyPack, read from environment variables.
"""

import os
from dataclasses import dataclass


@dataclass
class Config:
    """Application configuration"""
    # Store endpoint (SQLAlchemy URL)
    database_url: str = "sqlite:///mypack.db"

    # Flask session signing
    secret_key: str = "change-me"

    # Logging
    log_level: str = "INFO"

    # XP a user aims for each day (dashboard progress bar)
    daily_xp_target: int = 150


def load_config() -> Config:
    """Load configuration from environment variables"""
    return Config(
        database_url=os.getenv("MYPACK_DATABASE_URL", "sqlite:///mypack.db"),
        secret_key=os.getenv("MYPACK_SECRET_KEY", "change-me"),
        log_level=os.getenv("MYPACK_LOG_LEVEL", "INFO"),
        daily_xp_target=int(os.getenv("MYPACK_DAILY_XP_TARGET", "150")),
    )
