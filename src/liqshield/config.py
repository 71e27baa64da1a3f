"""
Centralized configuration management using pydantic-settings.
All services should import Settings from this module.
"""

from typing import Dict, List, Optional
from enum import Enum
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Environment types."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTNET = "testnet"


class KafkaSettings(BaseSettings):
    """Kafka-specific settings."""
    bootstrap_servers: str = Field(default="localhost:9092", description="Kafka bootstrap servers")
    consumer_group_prefix: str = Field(default="liqshield", description="Prefix for consumer groups")
    producer_timeout_ms: int = Field(default=10000, description="Producer timeout in milliseconds")

    # Topic names
    topic_protection_commands: str = Field(default="protection_commands", description="Monitor -> protection commands")
    topic_cycle_completions: str = Field(default="cycle_completions", description="Protection -> monitor completion signals")
    topic_protocol_events: str = Field(default="protocol_events", description="Observed lending protocol events")
    topic_protection_events: str = Field(default="protection_events", description="Protection outcome events")

    model_config = SettingsConfigDict(env_prefix="KAFKA_")


class ProtectionSettings(BaseSettings):
    """Execution-domain settings."""
    routine_cooldown_seconds: int = Field(default=300, description="Cooldown between routine remediation attempts")
    emergency_cooldown_seconds: int = Field(default=60, description="Cooldown for emergency-flagged checks")
    max_concurrent_checks: int = Field(default=8, description="Parallel subscription checks during a batch")

    # Market id -> assets accepted as protection funds
    supported_markets: Dict[str, List[str]] = Field(
        default_factory=lambda: {"WETH-USDC": ["WETH", "USDC"]},
        description="Supported markets and their protection assets",
    )
    trusted_sender: str = Field(default="liqshield-monitor", description="Only sender allowed to issue check commands")
    paper_mode: bool = Field(default=True, description="Use the simulated protocol instead of the gateway")
    service_port: int = Field(default=8020, description="Protection API port")

    model_config = SettingsConfigDict(env_prefix="PROTECTION_")


class DispatcherSettings(BaseSettings):
    """Monitor-domain dispatch policy."""
    periodic_interval_seconds: int = Field(default=300, description="Minimum time between batch cycles")
    emergency_cooldown_seconds: int = Field(default=30, description="Rate limit for liquidation-triggered checks")
    risk_decreasing_cooldown_seconds: int = Field(default=60, description="Rate limit for repay/deposit triggered checks")
    stale_multiplier: int = Field(default=3, description="In-flight flag is stale after this many periodic intervals")
    tick_interval_seconds: int = Field(default=30, description="Timer tick period")
    monitored_markets: List[str] = Field(default_factory=lambda: ["WETH-USDC"], description="Initially monitored markets")
    sender_id: str = Field(default="liqshield-monitor", description="Identity stamped on outbound commands")
    service_port: int = Field(default=8021, description="Monitor admin API port")

    model_config = SettingsConfigDict(env_prefix="DISPATCHER_")


class ProtocolSettings(BaseSettings):
    """Lending protocol gateway settings."""
    gateway_url: str = Field(default="http://localhost:8545", description="Protocol gateway REST URL")
    request_timeout: float = Field(default=10.0, description="Gateway request timeout in seconds")
    executor_address: str = Field(default="liqshield-executor", description="Spender address holding user authorizations")
    custody_address: str = Field(default="liqshield-custody", description="Recipient of protection funds before the protocol call")

    model_config = SettingsConfigDict(env_prefix="PROTOCOL_")


class RedisSettings(BaseSettings):
    """State persistence settings."""
    enabled: bool = Field(default=False, description="Persist ledger and dispatcher state")
    url: str = Field(default="redis://localhost:6379/0", description="Redis URL")
    key_prefix: str = Field(default="liqshield", description="Key namespace")

    model_config = SettingsConfigDict(env_prefix="REDIS_")


class MonitoringSettings(BaseSettings):
    """Monitoring and observability settings."""
    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format (json or text)")
    log_file: Optional[str] = Field(default=None, description="Log file path")

    # Health checks
    health_check_interval: int = Field(default=30, description="Health check interval in seconds")

    model_config = SettingsConfigDict(env_prefix="MONITORING_")


class Settings(BaseSettings):
    """Main settings class combining all service settings."""
    # Environment
    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Environment")
    service_name: str = Field(default="liqshield", description="Service name")

    # Sub-settings
    kafka: KafkaSettings = Field(default_factory=KafkaSettings)
    protection: ProtectionSettings = Field(default_factory=ProtectionSettings)
    dispatcher: DispatcherSettings = Field(default_factory=DispatcherSettings)
    protocol: ProtocolSettings = Field(default_factory=ProtocolSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
