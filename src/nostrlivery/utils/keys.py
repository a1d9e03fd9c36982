"""Key decoding and event signing.

Turns an opaque secret key string (``nsec1...`` bech32 or 64-char hex) into
a signature over an [UnsignedEvent][nostrlivery.models.event.UnsignedEvent],
producing a [SignedEvent][nostrlivery.models.event.SignedEvent]. Hashing and
Schnorr signing are delegated to ``nostr_sdk``.

Warning:
    The secret key is supplied per call and never stored: each function
    decodes it, uses it, and drops the ``nostr_sdk.Keys`` object before
    returning. Secret keys must never be logged.

Examples:
    ```python
    from nostrlivery.nips.nip01 import build_unsigned
    from nostrlivery.utils.keys import derive_public_key, sign

    unsigned = build_unsigned(20000, [], {"type": "DRIVER_ASSOCIATION_REQUEST"})
    event = sign(secret, unsigned)
    assert event.pubkey == derive_public_key(secret)
    ```
"""

from __future__ import annotations

import os
from typing import Any

from nostr_sdk import EventBuilder, Keys, Kind, PublicKey, Tag, Timestamp
from pydantic import BaseModel, Field, SecretStr, model_validator

from nostrlivery.core.exceptions import InvalidKeyEncoding, SigningFailure
from nostrlivery.models.event import SignedEvent, UnsignedEvent


ENV_PRIVATE_KEY = "PRIVATE_KEY"  # pragma: allowlist secret


def _parse_keys(secret_key: str) -> Keys:
    if not isinstance(secret_key, str) or not secret_key.strip():
        raise InvalidKeyEncoding("secret key is empty")
    try:
        return Keys.parse(secret_key.strip())
    except Exception as e:  # Rust FFI raises NostrSdkError subclasses
        raise InvalidKeyEncoding(f"cannot decode secret key: {type(e).__name__}") from None


def derive_public_key(secret_key: str) -> str:
    """Return the hex public key for *secret_key*.

    Raises:
        InvalidKeyEncoding: If the key cannot be decoded.
    """
    return _parse_keys(secret_key).public_key().to_hex()


def normalize_public_key(value: str) -> str:
    """Normalize an ``npub1...`` or hex public key to lowercase hex.

    Raises:
        InvalidKeyEncoding: If *value* is not a valid public key.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidKeyEncoding("public key is empty")
    try:
        return PublicKey.parse(value.strip()).to_hex()
    except Exception as e:  # Rust FFI raises NostrSdkError subclasses
        raise InvalidKeyEncoding(f"cannot decode public key {value[:12]}...: {e}") from None


def to_npub(public_key: str) -> str:
    """Encode a hex (or already bech32) public key as ``npub1...``."""
    return PublicKey.parse(normalize_public_key(public_key)).to_bech32()


def same_identity(a: str, b: str) -> bool:
    """Return True if *a* and *b* denote the same public key.

    Undecodable values fall back to plain string comparison, so a malformed
    peer-supplied identity simply never matches.
    """
    if a == b:
        return True
    try:
        return normalize_public_key(a) == normalize_public_key(b)
    except InvalidKeyEncoding:
        return False


def sign(secret_key: str, unsigned: UnsignedEvent) -> SignedEvent:
    """Sign *unsigned* with *secret_key*.

    The event id is a pure function of ``(pubkey, created_at, kind, tags,
    content)``; the signature uses fresh auxiliary randomness, so two
    signatures of the same draft share the id but not the ``sig``.

    Raises:
        InvalidKeyEncoding: If the secret key cannot be decoded.
        SigningFailure: If building or signing the event fails.
    """
    keys = _parse_keys(secret_key)
    try:
        builder = (
            EventBuilder(Kind(unsigned.kind), unsigned.content)
            .tags([Tag.parse(list(tag)) for tag in unsigned.tags])
            .custom_created_at(Timestamp.from_secs(unsigned.created_at))
        )
        signed = builder.sign_with_keys(keys)
        return SignedEvent.from_json(signed.as_json())
    except Exception as e:  # Rust FFI raises NostrSdkError subclasses
        raise SigningFailure(f"cannot sign kind {unsigned.kind} event: {e}") from e


# =============================================================================
# Environment Loading
# =============================================================================


def load_secret_key_from_env(env_var: str = ENV_PRIVATE_KEY) -> str:
    """Read and validate a secret key from an environment variable.

    Raises:
        ValueError: If the variable is not set or empty.
        InvalidKeyEncoding: If the value is not a valid secret key.
    """
    value = os.getenv(env_var)
    if not value:
        raise ValueError(
            f"{env_var} environment variable is required. Generate one with: openssl rand -hex 32"
        )
    derive_public_key(value)
    return value


class KeysConfig(BaseModel):
    """Pydantic model that loads the caller's secret key from the environment.

    Used by the CLI. The key is held as ``SecretStr`` so it never shows up
    in ``repr()`` or model dumps.
    """

    keys_env: str = Field(default=ENV_PRIVATE_KEY, min_length=1)
    secret_key: SecretStr = Field(description="Secret key loaded from keys_env")

    @model_validator(mode="before")
    @classmethod
    def _load_from_env(cls, data: Any) -> Any:
        if isinstance(data, dict) and "secret_key" not in data:
            data = {**data, "secret_key": load_secret_key_from_env(data.get("keys_env", ENV_PRIVATE_KEY))}
        return data

    @property
    def public_key(self) -> str:
        return derive_public_key(self.secret_key.get_secret_value())
