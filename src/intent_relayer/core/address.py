"""
EVM address utilities: validation and normalisation.

Addresses are 20-byte values written as 0x-prefixed hex. Mixed-case input
must carry a valid EIP-55 checksum; all-lower or all-upper input is accepted
as-is. Internally addresses are carried in checksummed form.
"""

from __future__ import annotations

from eth_utils import is_address, to_checksum_address

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class AddressError(Exception):
    """Raised for malformed EVM addresses."""

    pass


def validate_address(address: str) -> str:
    """
    Validate an EVM address and return its checksummed form.

    Args:
        address: 0x-prefixed hex address

    Returns:
        str: EIP-55 checksummed address

    Raises:
        AddressError: if the address is malformed or has a bad checksum
    """
    if not isinstance(address, str) or not address.startswith("0x"):
        raise AddressError(f"Address must be a 0x-prefixed hex string: {address!r}")
    if not is_address(address):
        raise AddressError(f"Invalid address or checksum: {address}")
    return to_checksum_address(address)


def is_valid_address(address: str) -> bool:
    """
    Check if an EVM address is valid without raising exceptions.

    Returns:
        bool: True if valid, False otherwise
    """
    try:
        validate_address(address)
        return True
    except AddressError:
        return False


def is_zero_address(address: str) -> bool:
    """True for the all-zero address (native asset / unset)."""
    return is_valid_address(address) and int(address, 16) == 0


def same_address(a: str, b: str) -> bool:
    """Case-insensitive address equality."""
    return a.lower() == b.lower()
