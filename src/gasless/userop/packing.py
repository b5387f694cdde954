"""
Packed field codec for EntryPoint v0.7 PackedUserOperation.

- accountGasLimits = verificationGasLimit (16 bytes) || callGasLimit (16 bytes)
- gasFees          = maxPriorityFeePerGas (16 bytes) || maxFeePerGas (16 bytes)
- paymasterAndData = paymaster (20) || verificationGasLimit (16)
                     || postOpGasLimit (16) || paymasterData (*)

All integers are big-endian and left-padded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..utils import HexLike, to_bytes, to_checksum_address
from .errors import PackingError

UINT128_MAX = (1 << 128) - 1
ADDRESS_LENGTH = 20
PAYMASTER_DATA_OFFSET = ADDRESS_LENGTH + 16 + 16  # 52


@dataclass(frozen=True)
class PaymasterFields:
    paymaster: str
    verification_gas_limit: int
    post_op_gas_limit: int
    data: bytes = b""


def _uint128(value: int, name: str) -> bytes:
    if not isinstance(value, int) or isinstance(value, bool):
        raise PackingError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0 or value > UINT128_MAX:
        raise PackingError(f"{name} does not fit in 128 bits: {value}")
    return value.to_bytes(16, "big")


def pack_two128(hi: int, lo: int) -> bytes:
    """Concatenate two uint128 values into one 32-byte word (hi first)."""
    return _uint128(hi, "hi") + _uint128(lo, "lo")


def unpack_two128(word: HexLike) -> tuple[int, int]:
    raw = to_bytes(word)
    if len(raw) != 32:
        raise PackingError(f"Packed word must be 32 bytes, got {len(raw)}")
    return int.from_bytes(raw[:16], "big"), int.from_bytes(raw[16:], "big")


def pack_account_gas_limits(verification_gas_limit: int, call_gas_limit: int) -> bytes:
    return pack_two128(verification_gas_limit, call_gas_limit)


def pack_gas_fees(max_priority_fee_per_gas: int, max_fee_per_gas: int) -> bytes:
    return pack_two128(max_priority_fee_per_gas, max_fee_per_gas)


def address_bytes(address: HexLike) -> bytes:
    try:
        raw = to_bytes(address)
    except ValueError as exc:
        raise PackingError(f"Invalid address {address!r}: {exc}") from exc
    if len(raw) != ADDRESS_LENGTH:
        raise PackingError(f"Address must be 20 bytes, got {len(raw)}")
    return raw


def pack_paymaster_and_data(
    paymaster: Optional[HexLike],
    verification_gas_limit: int = 0,
    post_op_gas_limit: int = 0,
    data: HexLike = b"",
) -> bytes:
    """
    Serialize the paymaster address, its two gas limits and its payload.

    Passing ``paymaster=None`` is the explicit "no sponsorship" request and
    is the only way to get an empty result.
    """
    if paymaster is None:
        return b""
    return (
        address_bytes(paymaster)
        + _uint128(verification_gas_limit, "paymasterVerificationGasLimit")
        + _uint128(post_op_gas_limit, "paymasterPostOpGasLimit")
        + to_bytes(data)
    )


def split_paymaster_and_data(blob: HexLike) -> Optional[PaymasterFields]:
    """Inverse of pack_paymaster_and_data. Returns None for an empty field."""
    raw = to_bytes(blob)
    if not raw:
        return None
    if len(raw) < PAYMASTER_DATA_OFFSET:
        raise PackingError(
            f"paymasterAndData must be empty or at least {PAYMASTER_DATA_OFFSET} bytes, "
            f"got {len(raw)}"
        )
    return PaymasterFields(
        paymaster=to_checksum_address(raw[:ADDRESS_LENGTH]),
        verification_gas_limit=int.from_bytes(raw[20:36], "big"),
        post_op_gas_limit=int.from_bytes(raw[36:52], "big"),
        data=raw[PAYMASTER_DATA_OFFSET:],
    )
