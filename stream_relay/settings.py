"""Relay settings.

All behavior is configurable from the environment (or a ``.env`` file).
Defaults target the Aptos testnet transaction stream and the truthoracle
prediction-market module.

Usage:
    from stream_relay.settings import get_settings

    settings = get_settings()
    settings.interest_event_names  # ["MarketCreated", "buy_shares", ...]
"""

import re
from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ADDRESS_PATTERN = re.compile(r'^0x[0-9a-fA-F]{1,64}$')

KNOWN_SINKS = ("broadcast", "websocket", "sse")

DEFAULT_MODULE_ADDRESS = "0xf57ffdaa57e13bc27ac9b46663749a5d03a846ada4007dfdf1483d482b48dace"


class RelaySettings(BaseSettings):
    """Stream relay settings."""

    # =========================================================================
    # UPSTREAM STREAM
    # =========================================================================
    stream_endpoint: str = "grpc.testnet.aptoslabs.com:443"
    aptos_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("aptos_api_key", "aptos_api_key_testnet"),
        description="Bearer token for the transaction stream",
    )
    starting_version: int = Field(default=0, ge=0)
    expected_chain_id: int = Field(default=2, ge=0)  # testnet
    stream_connect_timeout: float = Field(default=10.0, gt=0, le=300.0)

    # =========================================================================
    # INTEREST TABLE
    # =========================================================================
    module_address: str = DEFAULT_MODULE_ADDRESS
    module_name: str = "truthoracle"
    interest_events: str = Field(
        default="MarketCreated,buy_shares,withdraw_payout",
        description="Comma-separated event names inside the module",
    )

    # =========================================================================
    # RECONNECTION
    # =========================================================================
    max_retries: int = Field(default=5, ge=0, le=100)
    retry_delay_ms: int = Field(default=5000, ge=0, le=600_000)
    abandon_on_integrity_fault: bool = False

    # =========================================================================
    # DELIVERY
    # =========================================================================
    delivery_sinks: str = "broadcast,websocket,sse"
    sink_queue_size: int = Field(default=1000, ge=1, le=100_000)

    # Broadcast bus (Redis pub/sub)
    redis_url: str = "redis://localhost:6379"
    broadcast_channel: str = "aptos-events"
    broadcast_event: str = "account-event"

    # Websocket group
    websocket_auth_token: str = "local-dev-token"
    websocket_auth_required: bool = False
    websocket_idle_timeout: float = Field(default=120.0, ge=10.0, le=3600.0)

    # Server-sent events
    sse_keepalive_interval: float = Field(default=15.0, ge=1.0, le=300.0)

    # =========================================================================
    # API CONFIGURATION
    # =========================================================================
    api_host: str = "0.0.0.0"
    api_port: int = Field(default=8000, ge=1, le=65535)
    cors_origins: str = "*"

    # =========================================================================
    # LOGGING
    # =========================================================================
    log_level: str = "INFO"
    log_json: bool = True

    # =========================================================================
    # VALIDATORS
    # =========================================================================
    @field_validator('module_address', mode='after')
    @classmethod
    def validate_module_address(cls, v: str) -> str:
        """Validate that the module address is a 0x-prefixed hex string."""
        if not _ADDRESS_PATTERN.match(v):
            raise ValueError(f"Invalid module address: {v}. Must be 0x-prefixed hex")
        return v

    @field_validator('redis_url', mode='after')
    @classmethod
    def validate_redis_url(cls, v: str) -> str:
        """Validate Redis URL format."""
        if not v.startswith(('redis://', 'rediss://')):
            raise ValueError(f"Invalid Redis URL: {v}. Must start with redis:// or rediss://")
        return v

    @field_validator('delivery_sinks', mode='after')
    @classmethod
    def validate_delivery_sinks(cls, v: str) -> str:
        """Reject unknown sink names early."""
        unknown = [name for name in _split_csv(v) if name not in KNOWN_SINKS]
        if unknown:
            raise ValueError(
                f"Unknown delivery sinks: {unknown}. Valid: {list(KNOWN_SINKS)}"
            )
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # =========================================================================
    # HELPER METHODS
    # =========================================================================
    @property
    def interest_event_names(self) -> List[str]:
        return _split_csv(self.interest_events)

    @property
    def enabled_sinks(self) -> List[str]:
        return _split_csv(self.delivery_sinks)

    @property
    def cors_origin_list(self) -> List[str]:
        return _split_csv(self.cors_origins)

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000.0


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@lru_cache(maxsize=1)
def get_settings() -> RelaySettings:
    """Get the process-wide settings instance."""
    return RelaySettings()


__all__ = ["RelaySettings", "get_settings", "KNOWN_SINKS", "DEFAULT_MODULE_ADDRESS"]
