"""Application services built on the relay client.

Attributes:
    AssociationProtocol: Driver/company association handshake.
        See [nostrlivery.services.association][].
    Directory: Profile and menu documents.
        See [nostrlivery.services.directory][].
"""

from .association import AssociationProtocol, RespondResult
from .directory import Directory


__all__ = ["AssociationProtocol", "Directory", "RespondResult"]
