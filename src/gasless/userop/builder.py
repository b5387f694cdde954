"""
UserOperation builder.

Assembles an unsigned PackedUserOperation from the sender, a freshly read
nonce, the call payload, packed gas fields and packed paymaster data. The
only side effects are read-only chain queries (nonce, base fee).
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

from ..chain.abi import account_abi, entry_point_abi
from ..chain.rpc import RpcError, RpcTransportError, read_contract
from ..config import NetworkConfig
from ..utils import HexLike, from_quantity, to_bytes
from .errors import BuildError
from .gas import estimate_fees
from .operation import UserOperation
from .packing import pack_account_gas_limits, pack_gas_fees, pack_paymaster_and_data

logger = logging.getLogger(__name__)


class NonceSource(str, enum.Enum):
    ENTRY_POINT = "entry_point"  # EntryPoint.getNonce(sender, key)
    ACCOUNT = "account"  # account.getNonce(), key 0 only


@dataclass(frozen=True)
class GasConfig:
    verification_gas_limit: int
    call_gas_limit: int
    pre_verification_gas: int
    max_priority_fee_per_gas: Optional[int] = None
    max_fee_per_gas: Optional[int] = None

    @classmethod
    def from_network(cls, config: NetworkConfig) -> "GasConfig":
        return cls(
            verification_gas_limit=config.verification_gas_limit,
            call_gas_limit=config.call_gas_limit,
            pre_verification_gas=config.pre_verification_gas,
        )


@dataclass(frozen=True)
class PaymasterConfig:
    address: str
    verification_gas_limit: int
    post_op_gas_limit: int
    data: bytes = b""

    @classmethod
    def from_network(cls, config: NetworkConfig) -> Optional["PaymasterConfig"]:
        """Paymaster from config; its payload is the gas-token address when one is set."""
        if config.paymaster is None:
            return None
        return cls(
            address=config.paymaster,
            verification_gas_limit=config.paymaster_verification_gas_limit,
            post_op_gas_limit=config.paymaster_post_op_gas_limit,
            data=to_bytes(config.gas_token) if config.gas_token else b"",
        )

    def pack(self) -> bytes:
        return pack_paymaster_and_data(
            self.address, self.verification_gas_limit, self.post_op_gas_limit, self.data
        )


def get_nonce(
    sender: str,
    config: NetworkConfig,
    source: NonceSource = NonceSource.ENTRY_POINT,
    key: int = 0,
) -> int:
    """
    Read the sender's current nonce from the chain.

    Always queried fresh; there is no client-side nonce cache because
    concurrent submitters for the same sender would race it.
    """
    source = NonceSource(source)
    try:
        if source is NonceSource.ENTRY_POINT:
            nonce = read_contract(
                config.entry_point,
                "getNonce",
                config.rpc_url,
                args=[sender, key],
                abi=entry_point_abi(),
                timeout=config.rpc_timeout,
            )
        else:
            if key:
                raise BuildError("account.getNonce() only serves key 0; use the EntryPoint source")
            nonce = read_contract(
                sender, "getNonce", config.rpc_url, abi=account_abi(), timeout=config.rpc_timeout
            )
    except (RpcError, RpcTransportError) as exc:
        err = BuildError(f"Nonce lookup for {sender} failed: {exc}")
        err.retryable = exc.retryable
        raise err from exc

    if nonce is None:
        raise BuildError(f"Nonce source returned nothing for {sender}; is the account deployed?")
    return int(nonce)


def build_user_operation(
    sender: str,
    call_data: HexLike,
    config: NetworkConfig,
    gas: Optional[GasConfig] = None,
    paymaster: Optional[PaymasterConfig] = None,
    sponsored: bool = True,
    nonce: Optional[int] = None,
    nonce_source: NonceSource = NonceSource.ENTRY_POINT,
    nonce_key: int = 0,
) -> UserOperation:
    """
    Build an unsigned UserOperation.

    Args:
        sender: Deployed smart account address
        call_data: Encoded call for the account (usually execute(...))
        config: Network configuration
        gas: Gas limits and optional fee overrides (default: config floors + live fees)
        paymaster: Sponsor settings (default: the configured paymaster)
        sponsored: False builds an operation with empty paymasterAndData
        nonce: Explicit nonce; when omitted it is read from ``nonce_source``
        nonce_source: Where to read the nonce
        nonce_key: 192-bit nonce key for the EntryPoint source

    Returns:
        UserOperation with an empty signature and empty initCode
    """
    gas = gas or GasConfig.from_network(config)

    if nonce is None:
        nonce = get_nonce(sender, config, nonce_source, nonce_key)

    priority_fee, max_fee = gas.max_priority_fee_per_gas, gas.max_fee_per_gas
    if priority_fee is None or max_fee is None:
        fees = estimate_fees(config)
        priority_fee = fees.max_priority_fee_per_gas if priority_fee is None else priority_fee
        max_fee = fees.max_fee_per_gas if max_fee is None else max_fee

    paymaster_and_data = b""
    if sponsored:
        paymaster = paymaster or PaymasterConfig.from_network(config)
        if paymaster is None:
            raise BuildError("Sponsored operation requested but no paymaster is configured")
        paymaster_and_data = paymaster.pack()

    op = UserOperation(
        sender=sender,
        nonce=nonce,
        call_data=to_bytes(call_data),
        account_gas_limits=pack_account_gas_limits(gas.verification_gas_limit, gas.call_gas_limit),
        pre_verification_gas=gas.pre_verification_gas,
        gas_fees=pack_gas_fees(priority_fee, max_fee),
        paymaster_and_data=paymaster_and_data,
    )
    logger.info("built UserOperation sender=%s nonce=%d sponsored=%s", op.sender, op.nonce, sponsored)
    return op


def apply_gas_estimate(op: UserOperation, estimate: Mapping[str, Any]) -> UserOperation:
    """
    Replace gas limits with a bundler estimate (eth_estimateUserOperationGas).

    Must run before hashing: the hash, and so the signature, cover the gas
    fields. Missing keys keep their current values.
    """
    verification = from_quantity(estimate.get("verificationGasLimit")) or op.verification_gas_limit
    call = from_quantity(estimate.get("callGasLimit")) or op.call_gas_limit
    pre_verification = from_quantity(estimate.get("preVerificationGas")) or op.pre_verification_gas

    paymaster_and_data = op.paymaster_and_data
    fields = op.paymaster_fields
    if fields is not None:
        paymaster_and_data = pack_paymaster_and_data(
            fields.paymaster,
            from_quantity(estimate.get("paymasterVerificationGasLimit")) or fields.verification_gas_limit,
            from_quantity(estimate.get("paymasterPostOpGasLimit")) or fields.post_op_gas_limit,
            fields.data,
        )

    return replace(
        op,
        account_gas_limits=pack_account_gas_limits(verification, call),
        pre_verification_gas=pre_verification,
        paymaster_and_data=paymaster_and_data,
        signature=b"",
    )
