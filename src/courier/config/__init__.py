"""Configuration models and parser for courier.yaml."""

from courier.config.models import (
    CourierConfig,
    SseServerConfig,
    StdioServerConfig,
    TransportConfig,
)
from courier.config.parser import ConfigError, load_config

__all__ = [
    "ConfigError",
    "CourierConfig",
    "SseServerConfig",
    "StdioServerConfig",
    "TransportConfig",
    "load_config",
]
