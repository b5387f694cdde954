"""
Confirmation of submitted operations.

The two transports hand back different keys and they are not
interchangeable:

- direct -> a transaction hash, resolved with eth_getTransactionReceipt on
  the node;
- bundler -> an operation hash, resolved with eth_getUserOperationReceipt on
  the bundler. The node has never heard of it.

Both are folded into one Receipt. A failed receipt is either a batch
revert (the whole handleOps transaction reverted) or an operation revert
(the transaction succeeded, the operation's execution did not); only the
latter carries a revert-reason event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from ..chain.abi import decode_event, entry_point_abi
from ..chain.rpc import (
    RpcError,
    RpcTransportError,
    eth_call,
    get_transaction,
    get_transaction_receipt,
    rpc_call,
)
from ..config import NetworkConfig
from ..utils import from_quantity, same_address, to_hex, to_quantity
from .errors import OperationRevertedError, SubmissionError
from .retry import RetryPolicy, poll
from .revert import RevertReason, decode_revert_data, extract_revert_data, find_revert_reasons
from .submit import OperationHandle, Transport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Receipt:
    success: bool
    transaction_hash: Optional[str]
    block_number: Optional[int]
    gas_used: Optional[int]
    user_op_hash: Optional[str] = None
    actual_gas_used: Optional[int] = None
    actual_gas_cost: Optional[int] = None
    batch_reverted: bool = False
    revert_reason: Optional[RevertReason] = None
    logs: tuple = field(default=(), repr=False)

    def raise_for_status(self) -> "Receipt":
        if not self.success:
            raise OperationRevertedError(self)
        return self


def _user_operation_events(logs: list[dict[str, Any]], entry_point: Optional[str]) -> list[dict[str, Any]]:
    abi = entry_point_abi()
    events = []
    for log in logs:
        if entry_point and log.get("address") and not same_address(log["address"], entry_point):
            continue
        decoded = decode_event(abi, "UserOperationEvent", log)
        if decoded is not None:
            decoded["userOpHash"] = to_hex(decoded["userOpHash"])
            events.append(decoded)
    return events


def receipt_from_node(
    raw: dict[str, Any],
    user_op_hash: Optional[str] = None,
    entry_point: Optional[str] = None,
) -> Receipt:
    """Build a Receipt from eth_getTransactionReceipt output."""
    logs = list(raw.get("logs") or [])
    status = from_quantity(raw.get("status"))

    events = _user_operation_events(logs, entry_point)
    if user_op_hash:
        events = [e for e in events if e["userOpHash"].lower() == user_op_hash.lower()]
    event = events[0] if events else None

    reasons = find_revert_reasons(logs, entry_point, user_op_hash)
    op_success = all(e["success"] for e in events) if events else True

    return Receipt(
        success=status == 1 and op_success,
        transaction_hash=raw.get("transactionHash"),
        block_number=from_quantity(raw.get("blockNumber")) if raw.get("blockNumber") else None,
        gas_used=from_quantity(raw.get("gasUsed")) if raw.get("gasUsed") else None,
        user_op_hash=event["userOpHash"] if event else user_op_hash,
        actual_gas_used=event["actualGasUsed"] if event else None,
        actual_gas_cost=event["actualGasCost"] if event else None,
        batch_reverted=status != 1,
        revert_reason=reasons[0] if reasons else None,
        logs=tuple(logs),
    )


def _bundler_reason(value: Any) -> RevertReason:
    """Bundlers report ``reason`` either as revert hex or as plain text."""
    revert_data = extract_revert_data(value)
    if revert_data:
        try:
            return decode_revert_data(revert_data)
        except ValueError:
            pass
    return RevertReason(kind="Error", raw=b"", message=str(value))


def receipt_from_bundler(raw: dict[str, Any], entry_point: Optional[str] = None) -> Receipt:
    """Build a Receipt from eth_getUserOperationReceipt output."""
    tx_receipt = raw.get("receipt") or {}
    user_op_hash = raw.get("userOpHash")
    logs = list(raw.get("logs") or tx_receipt.get("logs") or [])
    success = bool(raw.get("success"))

    reason = None
    if not success:
        reasons = find_revert_reasons(logs, entry_point, user_op_hash)
        if reasons:
            reason = reasons[0]
        elif raw.get("reason"):
            reason = _bundler_reason(raw["reason"])

    return Receipt(
        success=success,
        transaction_hash=tx_receipt.get("transactionHash"),
        block_number=from_quantity(tx_receipt.get("blockNumber")) if tx_receipt.get("blockNumber") else None,
        gas_used=from_quantity(tx_receipt.get("gasUsed")) if tx_receipt.get("gasUsed") else None,
        user_op_hash=user_op_hash,
        actual_gas_used=from_quantity(raw.get("actualGasUsed")) if raw.get("actualGasUsed") else None,
        actual_gas_cost=from_quantity(raw.get("actualGasCost")) if raw.get("actualGasCost") else None,
        batch_reverted=from_quantity(tx_receipt.get("status", "0x1")) != 1,
        revert_reason=reason,
        logs=tuple(logs),
    )


def replay_revert(tx_hash: str, config: NetworkConfig) -> Optional[RevertReason]:
    """
    Re-execute a reverted transaction on top of its parent block to recover
    the revert data.

    Returns None if the transaction is unknown or the replay no longer
    reverts (earlier transactions in the same block are not replayed).
    """
    tx = get_transaction(tx_hash, config.rpc_url, timeout=config.rpc_timeout)
    if not tx or not tx.get("to") or not tx.get("blockNumber"):
        return None
    try:
        eth_call(
            tx["to"],
            tx.get("input") or tx.get("data") or "0x",
            config.rpc_url,
            block=to_quantity(max(from_quantity(tx["blockNumber"]) - 1, 0)),
            sender=tx.get("from"),
            timeout=config.rpc_timeout,
        )
    except RpcError as exc:
        revert_data = extract_revert_data(exc.data)
        if revert_data:
            return decode_revert_data(revert_data)
        return RevertReason(kind="Error", raw=b"", message=exc.message)
    return None


def fetch_transaction_receipt(
    tx_hash: str,
    config: NetworkConfig,
    user_op_hash: Optional[str] = None,
) -> Optional[Receipt]:
    """One receipt lookup; batch reverts are replayed for their reason."""
    raw = get_transaction_receipt(tx_hash, config.rpc_url, timeout=config.rpc_timeout)
    if raw is None:
        return None
    receipt = receipt_from_node(raw, user_op_hash, config.entry_point)
    if receipt.batch_reverted and receipt.revert_reason is None:
        reason = replay_revert(tx_hash, config)
        if reason is not None:
            receipt = replace(receipt, revert_reason=reason)
    return receipt


def fetch_user_operation_receipt(user_op_hash: str, config: NetworkConfig) -> Optional[Receipt]:
    if not config.bundler_url:
        raise SubmissionError("Bundler receipt lookup needs a bundler URL")
    raw = rpc_call("eth_getUserOperationReceipt", [user_op_hash], config.bundler_url, timeout=config.rpc_timeout)
    if not raw:
        return None
    return receipt_from_bundler(raw, config.entry_point)


def wait_for_confirmation(
    handle: OperationHandle,
    config: NetworkConfig,
    policy: Optional[RetryPolicy] = None,
) -> Receipt:
    """
    Poll until the submitted operation is included.

    Raises:
        ConfirmationTimeoutError: If the policy's attempts or deadline run out
    """
    policy = policy or RetryPolicy()
    if handle.transport is Transport.DIRECT:
        user_op_hash = handle.user_op_hash if len(handle.user_op_hashes) == 1 else None
        receipt = poll(
            lambda: fetch_transaction_receipt(handle.transaction_hash, config, user_op_hash),
            policy,
            what=f"transaction {handle.transaction_hash}",
            transient=(RpcTransportError,),
        )
    else:
        receipt = poll(
            lambda: fetch_user_operation_receipt(handle.user_op_hash, config),
            policy,
            what=f"UserOperation {handle.user_op_hash}",
            transient=(RpcTransportError,),
        )

    logger.info(
        "confirmed %s in block %s: success=%s gas=%s",
        receipt.transaction_hash,
        receipt.block_number,
        receipt.success,
        receipt.gas_used,
    )
    return receipt
