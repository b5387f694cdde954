"""
Transaction Builder - Build, sign, and send relayer transactions.

Uses eth-account for signing and httpx-based JSON-RPC for sending.
Gas is paid by the relayer EOA; transactions are EIP-1559 (type 2).
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from eth_account import Account

from ..utils import to_checksum_address, to_hex
from .rpc import DEFAULT_TIMEOUT, estimate_gas, get_transaction_count, send_raw_transaction

logger = logging.getLogger(__name__)

GAS_LIMIT_BUFFER_PCT = 20


def build_transaction(
    to: str,
    data: str,
    sender: str,
    chain_id: int,
    max_fee_per_gas: int,
    max_priority_fee_per_gas: int,
    rpc_url: str,
    gas_limit: Optional[int] = None,
    value: int = 0,
    timeout: float = DEFAULT_TIMEOUT,
) -> dict[str, Any]:
    """
    Build an unsigned EIP-1559 contract call.

    Args:
        to: 0x-prefixed contract address
        data: 0x-prefixed calldata
        sender: Relayer address (nonce lookup and gas estimation)
        gas_limit: Gas limit (default: eth_estimateGas + 20%)

    Returns:
        Unsigned transaction dict

    Raises:
        RpcError: If gas estimation reverts (the error data carries the revert)
    """
    call = {
        "from": to_checksum_address(sender),
        "to": to_checksum_address(to),
        "data": data,
        "value": hex(value),
    }
    if gas_limit is None:
        estimated = estimate_gas(call, rpc_url, timeout=timeout)
        gas_limit = estimated + estimated * GAS_LIMIT_BUFFER_PCT // 100
        logger.debug("estimated gas %d, using %d", estimated, gas_limit)

    return {
        "type": 2,
        "to": call["to"],
        "data": data,
        "value": value,
        "nonce": get_transaction_count(call["from"], rpc_url, timeout=timeout),
        "gas": gas_limit,
        "maxFeePerGas": max_fee_per_gas,
        "maxPriorityFeePerGas": max_priority_fee_per_gas,
        "chainId": chain_id,
    }


def sign_and_send(
    tx: dict,
    private_key: str,
    rpc_url: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    """
    Sign a transaction and broadcast it.

    Returns:
        Transaction hash (0x-prefixed hex). Inclusion is not awaited.
    """
    account = Account.from_key(private_key)
    signed = account.sign_transaction(tx)
    raw_tx = to_hex(bytes(signed.raw_transaction))

    tx_hash = send_raw_transaction(raw_tx, rpc_url, timeout=timeout)
    logger.info("relayer %s sent %s (nonce %d)", account.address, tx_hash, tx["nonce"])
    return tx_hash
