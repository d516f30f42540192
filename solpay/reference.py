"""
Payment references and Solana address helpers.

A reference is a random 32-byte value encoded like a Solana public key. The
client adds it as a read-only, non-signing account on the transfer
instruction, which binds the on-chain transfer to one payment intent.
"""
import secrets

import base58

PUBKEY_LENGTH = 32
SIGNATURE_LENGTH = 64


def generate_reference() -> str:
    return base58.b58encode(secrets.token_bytes(PUBKEY_LENGTH)).decode('ascii')


def _decoded_length(value: str) -> int:
    try:
        return len(base58.b58decode(value))
    except ValueError:
        return -1


def is_valid_solana_address(address) -> bool:
    """Validate Solana address format (base58, 32 bytes)."""
    if not isinstance(address, str) or not 32 <= len(address) <= 44:
        return False
    return _decoded_length(address) == PUBKEY_LENGTH


def is_valid_transaction_signature(signature) -> bool:
    """Validate Solana transaction signature format (base58, 64 bytes)."""
    if not isinstance(signature, str) or not 64 <= len(signature) <= 88:
        return False
    return _decoded_length(signature) == SIGNATURE_LENGTH
