r"""Nostrlivery -- Nostr client core for a delivery platform.

Drivers and companies identify themselves by Nostr key pairs and coordinate
through a single relay: they sign and publish events, query and stream
events, and run a request/accept handshake that associates a driver with a
company. Profiles (kind 0) and menus (kind 30000) are published the same way.

Imports flow strictly downward:

```text
              services         Association handshake, profiles and menus
             /        \
          nips        utils    Wire codec and builders / keys, transport, subscriptions
             \        /
               core            Exceptions, logging, configuration
                 |
              models           Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Events, filters, handshake messages, profiles. Depends only on stdlib.
    core: Exception hierarchy, structured logger, YAML and pydantic config.
    nips: NIP-01 frame codec and builders for every published event.
    utils: Key decoding and signing, relay connection, subscription manager.
    services: Association protocol and profile/menu directory.

Note:
    Top-level imports (``from nostrlivery import RelayConnection``) use lazy
    loading and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nostrlivery")

__all__ = [
    "AppConfig",
    "AssociationProtocol",
    "Directory",
    "Filter",
    "Logger",
    "RelayConnection",
    "SignedEvent",
    "SubscriptionManager",
    "UnsignedEvent",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "AppConfig": ("nostrlivery.core", "AppConfig"),
    "Logger": ("nostrlivery.core", "Logger"),
    "Filter": ("nostrlivery.models", "Filter"),
    "SignedEvent": ("nostrlivery.models", "SignedEvent"),
    "UnsignedEvent": ("nostrlivery.models", "UnsignedEvent"),
    "RelayConnection": ("nostrlivery.utils", "RelayConnection"),
    "SubscriptionManager": ("nostrlivery.utils", "SubscriptionManager"),
    "AssociationProtocol": ("nostrlivery.services", "AssociationProtocol"),
    "Directory": ("nostrlivery.services", "Directory"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostrlivery' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
