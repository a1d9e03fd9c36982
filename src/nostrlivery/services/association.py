"""Driver/company association handshake.

A company (the *requester*) asks a driver (the *target*, holder of the
addressed identity) to associate by publishing a kind 20000 event with
content ``{"type": "DRIVER_ASSOCIATION_REQUEST", "driverNpub": ...}``. The
driver answers with ``DRIVER_ASSOCIATION_ACCEPTED`` or
``DRIVER_ASSOCIATION_REJECTED``, echoing the request event id as
``originalRequestId``. Either side may later revoke an accepted association
with a kind 1 event tagged ``["type", "DRIVER_ASSOCIATION"]``.

[AssociationProtocol][nostrlivery.services.association.AssociationProtocol]
plays both roles. It keeps two pieces of bookkeeping:

* **pending requests**: inbound requests addressed to this identity that
  have not been answered, deduplicated by event id.
* **associations**: one
  [EntityAssociation][nostrlivery.models.association.EntityAssociation] per
  counterparty, whose status only moves out of ``pending`` once.

Note:
    Secret keys are passed per call to the operations that sign and are
    never stored on the protocol.

Examples:
    ```python
    conn = RelayConnection.from_config(config.relay)
    protocol = AssociationProtocol(SubscriptionManager(conn), identity=driver_pubkey)
    async with protocol:
        for request in protocol.pending_requests:
            await protocol.respond(secret, request, Decision.ACCEPT)
    ```
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Self

from nostrlivery.core.config import AssociationConfig, EventsConfig
from nostrlivery.core.exceptions import InvalidKeyEncoding, PublishRejected, SigningFailure
from nostrlivery.core.logger import Logger
from nostrlivery.models.association import (
    AssociationAcceptedMessage,
    AssociationRejectedMessage,
    AssociationRemovedMessage,
    AssociationRequest,
    AssociationRequestMessage,
    EntityAssociation,
    UnknownMessage,
    parse_handshake_message,
)
from nostrlivery.models.constants import AssociationStatus, Decision, EventKind
from nostrlivery.models.filter import Filter
from nostrlivery.nips.event_builders import (
    REVOCATION_TAG,
    build_association_removal,
    build_association_request,
    build_association_response,
)
from nostrlivery.nips.nip01 import UnparseableContent, decode_content
from nostrlivery.utils.keys import normalize_public_key, same_identity, sign


if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from types import TracebackType

    from nostrlivery.models.event import SignedEvent
    from nostrlivery.utils.subscriptions import SubscriptionManager


@dataclass(frozen=True, slots=True)
class RespondResult:
    """Outcome of [respond()][nostrlivery.services.association.AssociationProtocol.respond].

    Attributes:
        request: The request that was answered.
        decision: Accept or reject.
        signed: False when the unsigned development fallback was used.
        event_id: Id of the published response, ``None`` when unsigned.
    """

    request: AssociationRequest
    decision: Decision
    signed: bool
    event_id: str | None = None


def _identity_key(identity: str) -> str:
    try:
        return normalize_public_key(identity)
    except InvalidKeyEncoding:
        return identity


def _is_public_key(value: str) -> bool:
    try:
        normalize_public_key(value)
    except InvalidKeyEncoding:
        return False
    return True


class AssociationProtocol:
    """Association state machine on top of a subscription manager.

    Args:
        subscriptions: Manager bound to the relay connection used for
            every publish and listen.
        identity: This party's public key (hex or ``npub1...``). When set,
            requests addressed to other identities are ignored.
        config: Handshake behaviour, including the unsigned fallback switch.
        events: Event kind and backlog size for the listener.
        on_request: Called once per newly recorded pending request.
        on_association: Called whenever an association is added, changes
            status, or is removed (with ``None``).
    """

    SERVICE_NAME = "association"

    def __init__(
        self,
        subscriptions: SubscriptionManager,
        *,
        identity: str | None = None,
        config: AssociationConfig | None = None,
        events: EventsConfig | None = None,
        on_request: Callable[[AssociationRequest], None] | None = None,
        on_association: Callable[[str, EntityAssociation | None], None] | None = None,
    ) -> None:
        self._subscriptions = subscriptions
        self._connection = subscriptions.connection
        self._identity = _identity_key(identity) if identity else None
        self._config = config or AssociationConfig()
        self._events = events or EventsConfig()
        self._on_request = on_request
        self._on_association = on_association
        self._logger = Logger(self.SERVICE_NAME)

        self._pending: dict[str, AssociationRequest] = {}
        self._answered: set[str] = set()
        self._sent_requests: dict[str, str] = {}
        self._last_request_at = 0
        self._associations: dict[str, EntityAssociation] = {}
        self._cancels: list[Callable[[], None]] = []

    @property
    def identity(self) -> str | None:
        return self._identity

    @property
    def is_listening(self) -> bool:
        return bool(self._cancels)

    @property
    def pending_requests(self) -> tuple[AssociationRequest, ...]:
        """Unanswered inbound requests, oldest first."""
        return tuple(sorted(self._pending.values(), key=lambda r: r.received_at))

    @property
    def associations(self) -> Mapping[str, EntityAssociation]:
        """Associations keyed by the counterparty's hex public key."""
        return dict(self._associations)

    def association_for(self, identity: str) -> EntityAssociation | None:
        return self._associations.get(_identity_key(identity))

    # -------------------------------------------------------------------------
    # Listening
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to handshake and revocation events.

        Raises:
            RelayUnreachable: If the relay cannot be reached.
        """
        if self._cancels:
            return
        limit = self._events.limit
        handshake_filter = Filter(kinds=[self._events.association_request_kind], limit=limit)
        # Revocations are addressed with a ["p", <hex>] tag.
        revocation_tags = {"p": [self._identity]} if self._identity and _is_public_key(self._identity) else None
        revocation_filter = Filter(kinds=[EventKind.COMMAND], tags=revocation_tags, limit=limit)

        cancel = await self._subscriptions.listen(handshake_filter, self.handle_event)
        self._cancels.append(cancel)
        try:
            self._cancels.append(await self._subscriptions.listen(revocation_filter, self.handle_event))
        except Exception:
            self.stop()
            raise
        self._logger.info("listening", kind=self._events.association_request_kind, limit=limit)

    def stop(self) -> None:
        """Cancel the listeners. Safe to call repeatedly."""
        cancels, self._cancels = self._cancels, []
        for cancel in cancels:
            cancel()
        if cancels:
            self._logger.info("stopped")

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        self.stop()

    def handle_event(self, event: SignedEvent) -> None:
        """Feed one received event into the state machine.

        Content that is not a JSON object, unknown message types, and
        unrelated kind 1 notes are logged and skipped; this method does not
        raise on peer-supplied data.
        """
        if event.kind == EventKind.COMMAND:
            if list(REVOCATION_TAG) in [list(tag[:2]) for tag in event.tags]:
                self._handle_revocation(event)
            return
        if event.kind != self._events.association_request_kind:
            return

        data = decode_content(event.content)
        if isinstance(data, UnparseableContent):
            self._logger.debug("content_unparseable", event_id=event.id, reason=data.reason)
            return

        message = parse_handshake_message(data, event.content)
        if isinstance(message, AssociationRequestMessage):
            self._handle_request(event, message)
        elif isinstance(message, AssociationAcceptedMessage | AssociationRejectedMessage):
            self._handle_response(event, message)
        elif isinstance(message, AssociationRemovedMessage):
            self._drop(event.pubkey, reason="removed_message")
        elif isinstance(message, UnknownMessage):
            self._logger.debug("message_ignored", event_id=event.id, type=message.type)

    def _handle_request(self, event: SignedEvent, message: AssociationRequestMessage) -> None:
        if event.id in self._pending or event.id in self._answered:
            return
        if self._identity is not None:
            if event.pubkey == self._identity:
                return
            if not same_identity(message.driver_npub, self._identity):
                self._logger.debug("request_not_addressed", event_id=event.id)
                return

        request = AssociationRequest(
            request_id=event.id,
            from_pubkey=event.pubkey,
            driver_npub=message.driver_npub,
            received_at=event.created_at,
        )
        self._pending[event.id] = request
        self._logger.info("request_received", request_id=event.id, from_pubkey=event.pubkey)
        if self._on_request is not None:
            self._on_request(request)

    def _handle_response(
        self, event: SignedEvent, message: AssociationAcceptedMessage | AssociationRejectedMessage
    ) -> None:
        target = self._sent_requests.get(message.original_request_id)
        if target is None:
            return
        if not same_identity(event.pubkey, target):
            self._logger.warning(
                "response_author_mismatch",
                request_id=message.original_request_id,
                author=event.pubkey,
            )
            return

        status = (
            AssociationStatus.ACCEPTED
            if isinstance(message, AssociationAcceptedMessage)
            else AssociationStatus.REJECTED
        )
        self._logger.info(
            "response_received", request_id=message.original_request_id, status=status.value
        )
        self._set_status(target, status, default_name=self._config.driver_name)

    def _handle_revocation(self, event: SignedEvent) -> None:
        data = decode_content(event.content)
        if isinstance(data, UnparseableContent) or data.get("removed") is not True:
            return
        addressed = data.get("companyNpub")
        if self._identity is not None and not (
            isinstance(addressed, str) and same_identity(addressed, self._identity)
        ):
            return
        self._drop(event.pubkey, reason="revoked")

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def request_association(
        self, signer_key: str, target_identity: str, name: str | None = None
    ) -> SignedEvent:
        """Ask *target_identity* to associate.

        Returns:
            The published request event; its id is the correlation id.

        Raises:
            ValueError: If an accepted association with the target exists.
            InvalidKeyEncoding: If *signer_key* cannot be decoded.
            SigningFailure: If signing fails.
            RelayUnreachable: If the relay cannot be reached.
            PublishRejected: If the relay refuses the event.
        """
        key = _identity_key(target_identity)
        existing = self._associations.get(key)
        if existing is not None and existing.status is AssociationStatus.ACCEPTED:
            raise ValueError(f"already associated with {target_identity}")

        # Strictly increasing so a repeated request never reuses an answered id.
        created_at = max(int(time.time()), self._last_request_at + 1)
        self._last_request_at = created_at
        unsigned = build_association_request(
            target_identity, kind=self._events.association_request_kind, created_at=created_at
        )
        event = sign(signer_key, unsigned)

        # Recorded before publishing: the answer may arrive before the OK.
        self._sent_requests[event.id] = key
        self._associations[key] = EntityAssociation(
            entity_npub=target_identity, entity_name=name or self._config.driver_name
        )
        try:
            await self._publish(event)
        except Exception:
            del self._sent_requests[event.id]
            if existing is None:
                self._associations.pop(key, None)
            else:
                self._associations[key] = existing
            raise

        self._logger.info("request_sent", request_id=event.id, target=key)
        self._notify(key)
        return event

    async def respond(
        self, signer_key: str | None, request: AssociationRequest, decision: Decision
    ) -> RespondResult:
        """Accept or reject *request*.

        Without key material the response can only be published unsigned,
        and only when ``allow_unsigned_responses`` is enabled; relays that
        verify signatures will drop it, so the rejection is not reported.

        Raises:
            SigningFailure: If *signer_key* is ``None`` and the unsigned
                fallback is disabled, or signing fails.
            InvalidKeyEncoding: If *signer_key* cannot be decoded.
            RelayUnreachable: If the relay cannot be reached.
            PublishRejected: If the relay refuses a signed response.
        """
        decision = Decision(decision)
        unsigned = build_association_response(
            decision,
            driver_npub=request.driver_npub,
            company_pubkey=request.from_pubkey,
            original_request_id=request.request_id,
            kind=self._events.association_request_kind,
        )

        if signer_key is None:
            if not self._config.allow_unsigned_responses:
                raise SigningFailure("no key material to sign the association response")
            await self._connection.connect()
            try:
                await self._connection.publish_unsigned(unsigned)
            except PublishRejected as e:
                self._logger.warning("unsigned_response_rejected", request_id=request.request_id, reason=e.reason)
            result = RespondResult(request=request, decision=decision, signed=False)
        else:
            event = sign(signer_key, unsigned)
            await self._publish(event)
            result = RespondResult(request=request, decision=decision, signed=True, event_id=event.id)

        first_answer = request.request_id not in self._answered
        self._pending.pop(request.request_id, None)
        self._answered.add(request.request_id)
        status = AssociationStatus.ACCEPTED if decision is Decision.ACCEPT else AssociationStatus.REJECTED
        self._logger.info(
            "request_answered",
            request_id=request.request_id,
            decision=decision.value,
            signed=result.signed,
        )
        if first_answer:
            # A new request opens a new handshake, whatever the previous outcome was.
            self._restart(request.from_pubkey, status, default_name=self._config.company_name)
        else:
            self._set_status(request.from_pubkey, status, default_name=self._config.company_name)
        return result

    async def remove_association(self, signer_key: str, entity_identity: str) -> SignedEvent:
        """Revoke the association with *entity_identity* and forget it.

        Raises:
            KeyError: If there is no association with *entity_identity*.
            InvalidKeyEncoding: If *signer_key* cannot be decoded.
            SigningFailure: If signing fails.
            RelayUnreachable: If the relay cannot be reached.
            PublishRejected: If the relay refuses the event.
        """
        key = _identity_key(entity_identity)
        association = self._associations.get(key)
        if association is None:
            raise KeyError(entity_identity)

        recipient = _identity_key(association.entity_npub)
        unsigned = build_association_removal(
            association.entity_npub, recipient if _is_public_key(recipient) else None
        )
        event = sign(signer_key, unsigned)
        await self._publish(event)
        self._drop(key, reason="removed_locally")
        return event

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _publish(self, event: SignedEvent) -> None:
        await self._connection.connect()
        await self._connection.publish(event)

    def _set_status(self, identity: str, status: AssociationStatus, *, default_name: str) -> None:
        key = _identity_key(identity)
        current = self._associations.get(key)
        if current is None:
            current = EntityAssociation(entity_npub=identity, entity_name=default_name)
        elif current.status.is_terminal:
            self._logger.debug("status_unchanged", entity=key, status=current.status.value)
            return
        self._associations[key] = current.with_status(status)
        self._notify(key)

    def _restart(self, identity: str, status: AssociationStatus, *, default_name: str) -> None:
        key = _identity_key(identity)
        previous = self._associations.get(key)
        name = previous.entity_name if previous is not None else default_name
        self._associations[key] = EntityAssociation(entity_npub=identity, entity_name=name, status=status)
        self._notify(key)

    def _drop(self, identity: str, *, reason: str) -> None:
        key = _identity_key(identity)
        if self._associations.pop(key, None) is None:
            return
        self._logger.info("association_removed", entity=key, reason=reason)
        self._notify(key)

    def _notify(self, key: str) -> None:
        if self._on_association is not None:
            self._on_association(key, self._associations.get(key))

    def __repr__(self) -> str:
        return (
            f"AssociationProtocol(identity={self._identity!r}, pending={len(self._pending)}, "
            f"associations={len(self._associations)})"
        )
