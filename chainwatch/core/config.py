"""
Configuration management using Pydantic Settings.
Supports multiple environments: development, staging, production.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings with environment-based configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Application
    app_name: str = "Chainwatch"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"

    # API
    host: str = "127.0.0.1"
    port: int = 3000
    api_run_indexer: bool = False  # poll events inside the API process

    # Record store
    database_url: Optional[str] = None
    database_pool_size: int = 10
    database_max_overflow: int = 20
    database_echo: bool = False

    # Chain
    rpc_url: str = "https://api.devnet.solana.com"
    contract_address: str = ""
    event_key_filter: List[str] = ["0x1"]
    chain_commitment: str = "confirmed"
    rpc_timeout: int = 30
    deployment_stage: str = "testnet"

    # Batch writer
    writer_max_attempts: int = 3
    writer_base_delay_ms: int = 1000
    writer_events_ordered: bool = False
    writer_health_checks_ordered: bool = True
    reconcile_window_seconds: float = 5.0

    # Health monitoring
    health_latency_threshold_ms: int = 1000
    health_check_interval: int = 60  # seconds
    health_cache_max_age: int = 300  # seconds
    credential_event_types: List[str] = ["ApiKeyUpdated"]

    # Indexer
    indexer_poll_interval: int = 10  # seconds
    indexer_batch_size: int = 100
    indexer_page_size: int = 100

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console
    log_file: Optional[str] = None

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("writer_max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("writer_max_attempts must be at least 1")
        return v

    @field_validator("deployment_stage")
    @classmethod
    def validate_deployment_stage(cls, v: str) -> str:
        if v not in DEPLOYMENT_STAGES:
            raise ValueError(f"Deployment stage must be one of: {list(DEPLOYMENT_STAGES)}")
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def writer_base_delay(self) -> float:
        """Backoff base delay in seconds."""
        return self.writer_base_delay_ms / 1000

    @property
    def stage(self) -> "DeploymentStage":
        return DEPLOYMENT_STAGES[self.deployment_stage]


@dataclass(frozen=True)
class DeploymentStage:
    """A named rollout stage of the monitored contract."""
    network: str
    features: List[str] = field(default_factory=list)
    is_limited: bool = True
    description: str = ""
    max_users: Optional[int] = None


DEPLOYMENT_STAGES: Dict[str, DeploymentStage] = {
    "testnet": DeploymentStage(
        network="devnet",
        features=["basic-contract", "event-indexing", "health-monitoring"],
        is_limited=True,
        description="Initial testnet deployment for development and testing",
    ),
    "testnet_prod": DeploymentStage(
        network="devnet",
        max_users=100,
        features=["basic-contract", "event-indexing", "health-monitoring", "user-authentication"],
        is_limited=True,
        description="Testnet deployment with real users",
    ),
    "mainnet_limited": DeploymentStage(
        network="mainnet-beta",
        max_users=1000,
        features=["basic-contract", "event-indexing", "health-monitoring", "user-authentication"],
        is_limited=True,
        description="Limited mainnet deployment with controlled user base",
    ),
    "mainnet_full": DeploymentStage(
        network="mainnet-beta",
        features=[
            "basic-contract", "event-indexing", "health-monitoring",
            "user-authentication", "full-features",
        ],
        is_limited=False,
        description="Full mainnet deployment with all features",
    ),
}


# Global settings instance
settings = Settings()


class DatabaseConfig:
    """Database-specific configuration."""

    @staticmethod
    def get_database_url(config: Optional[Settings] = None) -> str:
        """Get database URL with the async driver, failing fast when unset."""
        url = (config or settings).database_url
        if not url:
            raise ConfigurationError(
                "Database URL is not configured. Set DATABASE_URL in the environment or .env file.",
                {"setting": "database_url"},
            )
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://") and not url.startswith("sqlite+aiosqlite://"):
            return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url

    @staticmethod
    def get_engine_config(config: Optional[Settings] = None) -> dict:
        """Get SQLAlchemy engine configuration."""
        config = config or settings
        engine_config = {"echo": config.database_echo}
        if DatabaseConfig.get_database_url(config).startswith("sqlite"):
            return engine_config
        engine_config.update({
            "pool_size": config.database_pool_size,
            "max_overflow": config.database_max_overflow,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        })
        return engine_config


class ChainConfig:
    """Chain-specific configuration and constants."""

    # Event key -> event name for the monitored contract
    EVENT_KEYS = {
        "0x1": "ApiKeyUpdated",
        "0x2": "UsersBatchUpdated",
        "0x3": "LimitChanged",
    }

    @staticmethod
    def get_rpc_config(config: Optional[Settings] = None) -> dict:
        """Get chain RPC client configuration."""
        config = config or settings
        return {
            "endpoint": config.rpc_url,
            "commitment": config.chain_commitment,
            "timeout": config.rpc_timeout,
        }

    @staticmethod
    def require_contract_address(config: Optional[Settings] = None) -> str:
        address = (config or settings).contract_address
        if not address:
            raise ConfigurationError(
                "CONTRACT_ADDRESS environment variable is not set",
                {"setting": "contract_address"},
            )
        return address
