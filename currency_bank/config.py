"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class BankConfig(BaseSettings):
    """Currency bank configuration"""

    # Database configuration
    database_path: str = "currency_bank.db"
    use_sqlite: bool = True  # False selects the in-memory backend

    # Interest rule files
    interest_config_dir: str = "configs/interest"
    create_example_config: bool = True

    # Scheduler configuration
    interest_period_hours: int = 24  # Fixed repeat period after the first fire
    interest_fallback_delay_seconds: int = 60  # Used when cron has no future match
    interest_recurring_cron: bool = False  # Recompute every fire from cron instead
    scheduler_max_workers: int = 4
    scheduler_timezone: Optional[str] = None  # None = host local zone

    # Wallet service configuration
    wallet_url: str = ""  # Empty = in-process wallet
    wallet_timeout: float = 5.0
    wallet_api_key: str = ""

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    class Config:
        env_prefix = "BANK_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = BankConfig()


def get_config() -> BankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankConfig:
    """Reload configuration from environment"""
    global config
    config = BankConfig()
    return config
