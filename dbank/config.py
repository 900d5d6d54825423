"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class DBankConfig(BaseSettings):
    """dBank ledger engine configuration"""
    
    # Business rules configuration (rates as decimal strings)
    interest_rate: str = "0.05"              # Balance interest per period
    staking_reward_rate: str = "0.08"        # Staking reward per period
    loan_interest_rate: str = "0.12"         # Simple loan interest per day
    max_loan_to_staking_ratio: str = "0.7"
    min_staking_amount: int = 1000
    min_loan_amount: int = 500
    seconds_per_period: int = 86400          # One day
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Snapshot persistence configuration
    snapshot_enabled: bool = True
    snapshot_path: str = "dbank_snapshot.db"
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    
    class Config:
        env_prefix = "DBANK_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = DBankConfig()


def get_config() -> DBankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> DBankConfig:
    """Reload configuration from environment"""
    global config
    config = DBankConfig()
    return config
