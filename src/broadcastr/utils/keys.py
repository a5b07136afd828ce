"""Nostr identity helpers for Broadcastr.

The engine works with hex public keys internally. Users supply their identity
either as 64-character hex or as a NIP-19 ``npub1...`` bech32 string; both are
normalized here with ``nostr_sdk.PublicKey``, which validates the bech32
checksum and that the key is a valid secp256k1 point.

Examples:
    ```python
    parse_pubkey("npub1...")      # -> '3bf0c63f...'
    to_npub("3bf0c63f...")       # -> 'npub1...'
    ```
"""

from __future__ import annotations

from nostr_sdk import PublicKey


NPUB_PREFIX = "npub1"


def parse_pubkey(value: str) -> str:
    """Normalize a hex or ``npub`` identity to lowercase hex.

    Args:
        value: Public key as 64 hex characters or as a NIP-19 ``npub1`` string.

    Returns:
        The 64-character lowercase hex public key.

    Raises:
        ValueError: If the value is empty, the bech32 checksum fails, or the
            key is not a valid public key. Nothing is partially normalized.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Public key must be a non-empty string")

    candidate = value.strip()
    try:
        if candidate.lower().startswith(NPUB_PREFIX):
            pubkey = PublicKey.from_bech32(candidate.lower())
        else:
            pubkey = PublicKey.from_hex(candidate.lower())
    # nostr-sdk raises its own FFI error types, whose names vary between releases
    except Exception as e:  # noqa: BLE001
        raise ValueError(f"Invalid public key {candidate[:16]}...: {e}") from e

    return pubkey.to_hex()


def to_npub(hex_pubkey: str) -> str:
    """Encode a hex public key as a NIP-19 ``npub1`` string.

    Raises:
        ValueError: If ``hex_pubkey`` is not a valid public key.
    """
    try:
        return PublicKey.from_hex(hex_pubkey).to_bech32()
    except Exception as e:  # noqa: BLE001
        raise ValueError(f"Invalid public key {hex_pubkey[:16]}...: {e}") from e
