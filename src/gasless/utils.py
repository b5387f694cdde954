from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Union

from eth_hash.auto import keccak

HexLike = Union[str, bytes, bytearray]

ZERO_ADDRESS = "0x" + "0" * 40


def keccak256(data: bytes) -> bytes:
    # Keccak-256 != SHA3-256 (NIST). Never use hashlib.sha3_256 here.
    return keccak(data)


def to_bytes(value: HexLike) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = value[2:] if value.startswith(("0x", "0X")) else value
    if len(text) % 2:
        text = "0" + text
    return bytes.fromhex(text)


def to_hex(value: bytes) -> str:
    return "0x" + bytes(value).hex()


def to_quantity(value: int) -> str:
    if value < 0:
        raise ValueError(f"Quantity must be non-negative: {value}")
    return hex(value)


def from_quantity(value: Union[str, int, None]) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16) if value.startswith(("0x", "0X")) else int(value)


def to_checksum_address(address: HexLike) -> str:
    """Convert an address to EIP-55 checksummed format."""
    raw = to_bytes(address)
    if len(raw) != 20:
        raise ValueError(f"Address must be 20 bytes, got {len(raw)}: {address!r}")
    addr = raw.hex()
    addr_hash = keccak256(addr.encode("utf-8")).hex()
    result = "0x"
    for i, c in enumerate(addr):
        if c in "abcdef":
            result += c.upper() if int(addr_hash[i], 16) >= 8 else c
        else:
            result += c
    return result


def same_address(a: str, b: str) -> bool:
    return to_bytes(a) == to_bytes(b)


def parse_units(amount: str, decimals: int) -> int:
    """Convert a decimal amount string ("0.1") to integer base units."""
    try:
        value = Decimal(amount)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {amount!r}") from exc
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {decimals} decimals")
    if scaled < 0:
        raise ValueError(f"Amount must be non-negative: {amount}")
    return int(scaled)


def format_units(value: int, decimals: int) -> str:
    return format(Decimal(value).scaleb(-decimals).normalize(), "f")
