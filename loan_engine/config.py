"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LoanEngineConfig(BaseSettings):
    """Loan engine configuration"""
    
    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "loan_engine.db"
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    
    # Loan configuration defaults, used when no active configuration is stored
    default_late_fee: str = "500.00"
    default_grace_period_days: int = 3
    default_reminder_before_due_days: int = 3
    
    # Settlement gateway configuration
    gateway_mode: str = "simulated"  # simulated or http
    gateway_url: str = ""
    gateway_api_key: str = ""
    gateway_timeout_seconds: float = 10.0
    gateway_payment_success_rate: float = 0.90
    gateway_disbursement_success_rate: float = 0.95
    gateway_simulated_latency_seconds: float = 0.0
    gateway_seed: Optional[int] = None
    
    # Feature flags
    enable_audit_logging: bool = True
    
    class Config:
        env_prefix = "LOAN_ENGINE_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LoanEngineConfig()


def get_config() -> LoanEngineConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LoanEngineConfig:
    """Reload configuration from environment"""
    global config
    config = LoanEngineConfig()
    return config
