"""Pubkey / keypair parsing with operator-facing error messages."""

from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from src.shared.exceptions import InvalidInputError


def parse_pubkey(value: str, label: str = "pubkey") -> Pubkey:
    """Parse a base58 address, naming the offending value on failure."""
    try:
        return Pubkey.from_string(value.strip())
    except Exception as e:
        raise InvalidInputError(f"Invalid {label} '{value}': {e}") from e


def parse_optional_pubkey(value: Optional[str], label: str = "pubkey") -> Optional[Pubkey]:
    if value is None or not value.strip():
        return None
    return parse_pubkey(value, label)


def load_keypair(secret: Optional[str]) -> Keypair:
    """Load the operator keypair from a base58 secret (SOLANA_PRIVATE_KEY)."""
    if not secret:
        raise InvalidInputError("SOLANA_PRIVATE_KEY environment variable not set")
    try:
        return Keypair.from_base58_string(secret.strip())
    except Exception as e:
        raise InvalidInputError(f"Invalid SOLANA_PRIVATE_KEY format: {e}") from e
