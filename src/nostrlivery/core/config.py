"""Application configuration models.

Pydantic models for the relay endpoint, the node service endpoint, the
well-known event settings, and the association handshake behaviour. Values
come from defaults, an optional YAML file, and environment overrides, in
that order of increasing precedence.

Examples:
    ```yaml
    relay:
      url: wss://relay.example.com
      timeout: 10
    events:
      association_request_kind: 20000
      limit: 50
    association:
      allow_unsigned_responses: false
    ```

    ```python
    config = AppConfig.from_yaml("config/nostrlivery.yaml").with_env_overrides()
    ```

See Also:
    [load_yaml()][nostrlivery.core.yaml.load_yaml]: Safe YAML loader used by
        [AppConfig.from_yaml()][nostrlivery.core.config.AppConfig.from_yaml].
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any, Self

from pydantic import BaseModel, Field, ValidationError, field_validator
from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError
from rfc3986.exceptions import ValidationError as UriValidationError
from rfc3986.validators import Validator

from nostrlivery.models.constants import EventKind

from .exceptions import ConfigurationError
from .yaml import load_yaml


if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path


def _validate_url(value: str, schemes: tuple[str, ...]) -> str:
    uri = uri_reference(value.strip()).normalize()
    validator = (
        Validator()
        .require_presence_of("scheme", "host")
        .allow_schemes(*schemes)
        .check_validity_of("scheme", "host", "port", "path")
    )
    try:
        validator.validate(uri)
    except UnpermittedComponentError:
        raise ValueError(f"URL must start with {' or '.join(f'{s}://' for s in schemes)}") from None
    except UriValidationError as e:
        raise ValueError(f"Invalid URL: {e}") from None
    return uri.unsplit()


class RelayConfig(BaseModel):
    """Relay endpoint used for every publish and subscription."""

    url: str = Field(default="ws://192.168.1.199:7000", description="Relay WebSocket URL")
    timeout: float = Field(default=10.0, gt=0, description="Connect and query timeout in seconds")
    ok_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for an OK acknowledgement after publishing",
    )

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _validate_url(value, ("ws", "wss"))


class NodeConfig(BaseModel):
    """HTTP node service endpoint (alternate transport, consumed by the apps)."""

    url: str = Field(default="http://192.168.1.199:3000", description="Node service URL")
    timeout: float = Field(default=5.0, gt=0, description="Request timeout in seconds")

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _validate_url(value, ("http", "https"))


class EventsConfig(BaseModel):
    """Event kinds and backlog size for the association listener."""

    association_request_kind: int = Field(default=int(EventKind.ASSOCIATION), gt=0, le=65_535)
    limit: int = Field(default=50, ge=1, description="Backlog size requested from the relay")


class AssociationConfig(BaseModel):
    """Handshake behaviour.

    ``allow_unsigned_responses`` enables the development fallback where a
    response is published without a signature when no key material is
    configured. It is off by default so the fallback is always an explicit
    choice.
    """

    allow_unsigned_responses: bool = False
    company_name: str = Field(default="Company", description="Name shown for accepted companies")
    driver_name: str = Field(default="Driver", description="Name shown for requested drivers")


class AppConfig(BaseModel):
    """Top-level configuration aggregating every section."""

    relay: RelayConfig = Field(default_factory=RelayConfig)
    node: NodeConfig = Field(default_factory=NodeConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    association: AssociationConfig = Field(default_factory=AssociationConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Validate a configuration mapping.

        Raises:
            ConfigurationError: If validation fails.
        """
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> Self:
        return cls.from_dict(load_yaml(config_path))

    def with_env_overrides(self, environ: Mapping[str, str] | None = None) -> Self:
        """Return a copy with ``RELAY_URL``, ``RELAY_TIMEOUT``, ``NODE_URL`` and
        ``NODE_TIMEOUT`` applied from *environ* (defaults to ``os.environ``).

        Raises:
            ConfigurationError: If an override is invalid.
        """
        env = os.environ if environ is None else environ
        data = self.model_dump()
        overrides = {
            ("relay", "url"): env.get("RELAY_URL"),
            ("relay", "timeout"): env.get("RELAY_TIMEOUT"),
            ("node", "url"): env.get("NODE_URL"),
            ("node", "timeout"): env.get("NODE_TIMEOUT"),
        }
        for (section, key), value in overrides.items():
            if value:
                data[section][key] = value
        return type(self).from_dict(data)
