"""Utility functions for the settlement codec."""

from typing import Union

from eth_utils import is_address, is_hexstr, to_bytes, to_checksum_address, to_hex

from .errors import ValidationError

# Zero address
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Marker address for orders buying native Ether (only meaningful as buy token)
BUY_ETH_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"

# Settlement contract on Ethereum mainnet
SETTLEMENT_CONTRACT_MAINNET = "0x9008D19f58AAbD9eD0D60971565AA8510560ab41"

# Ethereum mainnet chain ID
DEFAULT_CHAIN_ID = 1

BytesLike = Union[bytes, bytearray, str]

UINT32_MAX = 2**32 - 1


def to_checksum(address: str, name: str = "address") -> str:
    """Validate an address and return its checksummed form.

    Args:
        address: Address as a hex string (any casing) or 20 raw bytes
        name: Field name used in the error message

    Returns:
        EIP-55 checksummed address

    Raises:
        ValidationError: If the value is not a valid address
    """
    if isinstance(address, (bytes, bytearray)) and len(address) == 20:
        return to_checksum_address(bytes(address))
    if not isinstance(address, str) or not is_address(address):
        raise ValidationError(f"Invalid {name}: {address!r}")
    return to_checksum_address(address)


def to_byte_string(value: BytesLike, name: str = "value") -> bytes:
    """Convert a bytes-like value (raw bytes or 0x hex string) to bytes.

    Raises:
        ValidationError: If a string is not valid hex
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str) and (value in ("", "0x") or is_hexstr(value)):
        if len(value.removeprefix("0x")) % 2:
            raise ValidationError(f"Invalid {name}: odd-length hex string")
        return to_bytes(hexstr=value)
    raise ValidationError(f"Invalid {name}: {value!r}")


def to_hex_string(value: bytes) -> str:
    """Hex-encode bytes with a 0x prefix."""
    return to_hex(bytes(value))


def check_uint(value: int, bits: int, name: str) -> int:
    """Check that a value fits in an unsigned integer of the given width.

    Args:
        value: Integer to check
        bits: Bit width (e.g. 32 or 256)
        name: Field name used in the error message

    Returns:
        The value as an int

    Raises:
        ValidationError: If the value is not an integer or is out of range
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Invalid {name}: {value!r} is not an integer")
    if value < 0 or value >= 1 << bits:
        raise ValidationError(f"Invalid {name}: {value} does not fit in uint{bits}")
    return value
