"""
UserOperation record (EntryPoint v0.7 PackedUserOperation).

The packed form is what the EntryPoint hashes and what ``handleOps`` takes;
the bundler RPC takes the unpacked JSON form produced by ``to_rpc_dict``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional

from ..utils import to_bytes, to_checksum_address, to_hex, to_quantity
from .errors import PackingError
from .packing import (
    ADDRESS_LENGTH,
    PaymasterFields,
    split_paymaster_and_data,
    unpack_two128,
)


@dataclass(frozen=True)
class UserOperation:
    sender: str
    nonce: int
    call_data: bytes
    account_gas_limits: bytes
    pre_verification_gas: int
    gas_fees: bytes
    init_code: bytes = b""
    paymaster_and_data: bytes = b""
    signature: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "sender", to_checksum_address(self.sender))
        for name in ("call_data", "init_code", "paymaster_and_data", "signature",
                     "account_gas_limits", "gas_fees"):
            object.__setattr__(self, name, to_bytes(getattr(self, name)))
        if len(self.account_gas_limits) != 32:
            raise PackingError("accountGasLimits must be 32 bytes")
        if len(self.gas_fees) != 32:
            raise PackingError("gasFees must be 32 bytes")
        if self.nonce < 0 or self.pre_verification_gas < 0:
            raise PackingError("nonce and preVerificationGas must be non-negative")
        # Validates the empty-or->=52-bytes rule.
        split_paymaster_and_data(self.paymaster_and_data)

    # -- unpacked views --

    @property
    def verification_gas_limit(self) -> int:
        return unpack_two128(self.account_gas_limits)[0]

    @property
    def call_gas_limit(self) -> int:
        return unpack_two128(self.account_gas_limits)[1]

    @property
    def max_priority_fee_per_gas(self) -> int:
        return unpack_two128(self.gas_fees)[0]

    @property
    def max_fee_per_gas(self) -> int:
        return unpack_two128(self.gas_fees)[1]

    @property
    def paymaster_fields(self) -> Optional[PaymasterFields]:
        return split_paymaster_and_data(self.paymaster_and_data)

    @property
    def is_signed(self) -> bool:
        return bool(self.signature)

    def with_signature(self, signature: bytes) -> "UserOperation":
        return replace(self, signature=bytes(signature))

    def unsigned(self) -> "UserOperation":
        return replace(self, signature=b"")

    def as_abi_tuple(self) -> tuple:
        """Field order of the Solidity PackedUserOperation struct."""
        return (
            self.sender,
            self.nonce,
            self.init_code,
            self.call_data,
            self.account_gas_limits,
            self.pre_verification_gas,
            self.gas_fees,
            self.paymaster_and_data,
            self.signature,
        )

    def to_rpc_dict(self) -> dict[str, Any]:
        """Unpacked v0.7 JSON form for eth_sendUserOperation and friends."""
        verification_gas_limit, call_gas_limit = unpack_two128(self.account_gas_limits)
        max_priority_fee, max_fee = unpack_two128(self.gas_fees)
        result: dict[str, Any] = {
            "sender": self.sender,
            "nonce": to_quantity(self.nonce),
            "callData": to_hex(self.call_data),
            "callGasLimit": to_quantity(call_gas_limit),
            "verificationGasLimit": to_quantity(verification_gas_limit),
            "preVerificationGas": to_quantity(self.pre_verification_gas),
            "maxFeePerGas": to_quantity(max_fee),
            "maxPriorityFeePerGas": to_quantity(max_priority_fee),
            "signature": to_hex(self.signature),
        }
        if self.init_code:
            if len(self.init_code) < ADDRESS_LENGTH:
                raise PackingError("initCode must start with a 20-byte factory address")
            result["factory"] = to_checksum_address(self.init_code[:ADDRESS_LENGTH])
            result["factoryData"] = to_hex(self.init_code[ADDRESS_LENGTH:])
        fields = self.paymaster_fields
        if fields is not None:
            result["paymaster"] = fields.paymaster
            result["paymasterVerificationGasLimit"] = to_quantity(fields.verification_gas_limit)
            result["paymasterPostOpGasLimit"] = to_quantity(fields.post_op_gas_limit)
            result["paymasterData"] = to_hex(fields.data)
        return result


@dataclass(frozen=True)
class SignedOperation:
    """A signed operation bound to the hash, chain and EntryPoint it was signed for."""

    operation: UserOperation
    user_op_hash: bytes
    chain_id: int
    entry_point: str

    def __post_init__(self) -> None:
        if not self.operation.is_signed:
            raise PackingError("SignedOperation requires a signature")
        object.__setattr__(self, "entry_point", to_checksum_address(self.entry_point))

    @property
    def user_op_hash_hex(self) -> str:
        return to_hex(self.user_op_hash)
