"""
UserOperation hash.

The remote strategy asks the EntryPoint (getUserOpHash) and is the default:
whatever the deployed EntryPoint computes is by definition what the account
will be asked to verify. The local strategy replicates the v0.7 derivation

    keccak256(abi.encode(
        keccak256(abi.encode(sender, nonce, keccak(initCode), keccak(callData),
                             accountGasLimits, preVerificationGas, gasFees,
                             keccak(paymasterAndData))),
        entryPoint, chainId))

and is only offered for EntryPoint versions listed in
``NetworkConfig.supports_local_hash``.
"""

from __future__ import annotations

import enum
import logging

from eth_abi import encode

from ..chain.abi import entry_point_abi
from ..chain.rpc import read_contract
from ..config import NetworkConfig
from ..utils import keccak256, to_hex
from .errors import ConfigError, HashMismatchError
from .operation import UserOperation

logger = logging.getLogger(__name__)


class HashStrategy(str, enum.Enum):
    REMOTE = "remote"
    LOCAL = "local"
    VERIFIED = "verified"  # remote, cross-checked against local


def remote_user_op_hash(op: UserOperation, config: NetworkConfig) -> bytes:
    """
    EntryPoint.getUserOpHash via eth_call.

    Network failures propagate (RpcTransportError is retryable).
    """
    result = read_contract(
        config.entry_point,
        "getUserOpHash",
        config.rpc_url,
        args=[op.unsigned().as_abi_tuple()],
        abi=entry_point_abi(),
        timeout=config.rpc_timeout,
    )
    if result is None or len(result) != 32:
        raise ConfigError(
            f"getUserOpHash returned {result!r}; is {config.entry_point} an EntryPoint v0.7?"
        )
    return bytes(result)


def local_user_op_hash(op: UserOperation, entry_point: str, chain_id: int) -> bytes:
    """EntryPoint v0.7 hash derivation, computed off-chain."""
    inner = encode(
        ["address", "uint256", "bytes32", "bytes32", "bytes32", "uint256", "bytes32", "bytes32"],
        [
            op.sender,
            op.nonce,
            keccak256(op.init_code),
            keccak256(op.call_data),
            op.account_gas_limits,
            op.pre_verification_gas,
            op.gas_fees,
            keccak256(op.paymaster_and_data),
        ],
    )
    return keccak256(
        encode(["bytes32", "address", "uint256"], [keccak256(inner), entry_point, chain_id])
    )


def user_op_hash(
    op: UserOperation,
    config: NetworkConfig,
    strategy: HashStrategy = HashStrategy.REMOTE,
) -> bytes:
    """Hash ``op`` for signing using the chosen strategy."""
    strategy = HashStrategy(strategy)
    if strategy is not HashStrategy.REMOTE and not config.supports_local_hash:
        raise ConfigError(
            f"Local hashing is not available for EntryPoint version {config.entry_point_version}"
        )

    if strategy is HashStrategy.LOCAL:
        digest = local_user_op_hash(op, config.entry_point, config.chain_id)
    else:
        digest = remote_user_op_hash(op, config)
        if strategy is HashStrategy.VERIFIED:
            local = local_user_op_hash(op, config.entry_point, config.chain_id)
            if local != digest:
                raise HashMismatchError(digest, local)

    logger.info("userOpHash %s (%s)", to_hex(digest), strategy.value)
    return digest
