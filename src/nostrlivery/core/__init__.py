"""Core layer: exceptions, structured logging, and configuration.

Depends only on ``nostrlivery.models`` and is depended upon by every layer
above it.

Attributes:
    NostrliveryError: Root of the exception hierarchy.
        See [nostrlivery.core.exceptions][].
    Logger: Structured logger supporting key=value and JSON output modes.
        See [Logger][nostrlivery.core.logger.Logger].
    AppConfig: Pydantic configuration for relay, node, events and handshake.
        See [AppConfig][nostrlivery.core.config.AppConfig].
    YAML: Safe YAML loading with ``yaml.safe_load()``.
        See [load_yaml()][nostrlivery.core.yaml.load_yaml].
"""

from .config import AppConfig, AssociationConfig, EventsConfig, NodeConfig, RelayConfig
from .exceptions import (
    ConfigurationError,
    ConnectivityError,
    InvalidKeyEncoding,
    NostrliveryError,
    PublishRejected,
    QueryTimeout,
    RelayUnreachable,
    SigningFailure,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .yaml import load_yaml


__all__ = [
    "AppConfig",
    "AssociationConfig",
    "ConfigurationError",
    "ConnectivityError",
    "EventsConfig",
    "InvalidKeyEncoding",
    "Logger",
    "NodeConfig",
    "NostrliveryError",
    "PublishRejected",
    "QueryTimeout",
    "RelayConfig",
    "RelayUnreachable",
    "SigningFailure",
    "StructuredFormatter",
    "format_kv_pairs",
    "load_yaml",
]
