"""
Gas fee estimation from the latest block's base fee.

maxFeePerGas = baseFee + maxPriorityFeePerGas + buffer, with the base fee
replaced by a floor when the chain reports zero or the read fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..chain.rpc import RpcError, RpcTransportError, get_block
from ..config import NetworkConfig
from ..utils import from_quantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeeEstimate:
    max_priority_fee_per_gas: int
    max_fee_per_gas: int
    base_fee: int


def derive_fees(base_fee: int, priority_fee: int, base_fee_floor: int, buffer: int = 0) -> FeeEstimate:
    base = base_fee if base_fee > 0 else base_fee_floor
    return FeeEstimate(
        max_priority_fee_per_gas=priority_fee,
        max_fee_per_gas=base + priority_fee + buffer,
        base_fee=base,
    )


def estimate_fees(config: NetworkConfig) -> FeeEstimate:
    """Read the latest base fee and derive the fee pair; never raises on RPC failure."""
    try:
        block = get_block(config.rpc_url, timeout=config.rpc_timeout) or {}
        base_fee = from_quantity(block.get("baseFeePerGas"))
    except (RpcError, RpcTransportError) as exc:
        logger.warning("base fee read failed, using floor %d wei: %s", config.base_fee_floor_wei, exc)
        base_fee = 0

    fees = derive_fees(
        base_fee,
        config.priority_fee_wei,
        config.base_fee_floor_wei,
        config.fee_buffer_wei,
    )
    logger.debug(
        "fees: base=%d priority=%d max=%d",
        fees.base_fee,
        fees.max_priority_fee_per_gas,
        fees.max_fee_per_gas,
    )
    return fees
