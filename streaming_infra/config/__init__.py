"""Deployment configuration for the streaming infrastructure."""

from .exceptions import ConfigurationError
from .settings import (
    SUBNET_ID_PREFIX,
    Config,
    Stage,
    get_config,
    parse_subnet_topology,
    resolve_config,
)

__all__ = [
    "SUBNET_ID_PREFIX",
    "Config",
    "ConfigurationError",
    "Stage",
    "get_config",
    "parse_subnet_topology",
    "resolve_config",
]
