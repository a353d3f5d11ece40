"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LedgerConfig(BaseSettings):
    """Ledger store configuration"""

    # Persistence configuration
    snapshot_path: str = "bank.json"
    lock_path: str = "bank.lock"
    write_debounce_seconds: float = 1.0  # Window for batching writes

    # Business rules configuration
    password_min_length: int = 10
    reservoir_balance: int = 10000  # Reported balance of the external reservoir

    # Security configuration
    scrypt_n: int = 16384

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    class Config:
        env_prefix = "LEDGER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
