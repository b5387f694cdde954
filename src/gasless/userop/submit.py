"""
UserOperation submission.

Two mutually exclusive transports:

- bundler: eth_sendUserOperation(unpackedOp, entryPoint) on the bundler's
  JSON-RPC endpoint. Returns the operation hash; inclusion is not implied.
- direct: EntryPoint.handleOps([packedOp, ...], beneficiary) sent as an
  ordinary EIP-1559 transaction by a funded relayer key. Returns the
  transaction hash. Used when the bundler rejects on policy grounds the
  caller controls (e.g. gas-efficiency heuristics).
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from ..chain.abi import encode_call, entry_point_abi
from ..chain.rpc import RpcError, RpcTransportError, rpc_call
from ..chain.tx import build_transaction, sign_and_send
from ..config import NetworkConfig
from ..keys.eth import RELAYER_KEY_VAR, get_account, load_private_key
from ..utils import same_address, to_bytes
from .errors import NonceMismatchError, PolicyRejectedError, SubmissionError
from .gas import estimate_fees
from .operation import SignedOperation, UserOperation
from .revert import RevertReason, decode_revert_data, extract_revert_data

logger = logging.getLogger(__name__)

# Well-formed 65-byte signature that recovers to some address; bundlers
# need one to simulate validation during gas estimation.
DUMMY_SIGNATURE = to_bytes(
    "0xfffffffffffffffffffffffffffffff0000000000000000000000000000000007"
    "aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1c"
)

# ERC-4337 bundler error codes for validation/policy rejections.
POLICY_CODES = range(-32599, -32499)


class Transport(str, enum.Enum):
    BUNDLER = "bundler"
    DIRECT = "direct"


@dataclass(frozen=True)
class OperationHandle:
    transport: Transport
    user_op_hashes: tuple[str, ...]
    transaction_hash: Optional[str] = None

    @property
    def user_op_hash(self) -> str:
        return self.user_op_hashes[0]

    @property
    def reference(self) -> str:
        """The key to poll with: tx hash for direct, op hash for bundler."""
        return self.transaction_hash if self.transport is Transport.DIRECT else self.user_op_hash


def _is_nonce_error(message: str) -> bool:
    text = message.lower()
    return "aa25" in text or "invalid account nonce" in text


def classify_error(
    message: str,
    code: Optional[int] = None,
    data: Any = None,
    reason: Optional[RevertReason] = None,
) -> SubmissionError:
    if _is_nonce_error(message):
        return NonceMismatchError(message, code=code, data=data, reason=reason)
    if code is not None and code in POLICY_CODES:
        return PolicyRejectedError(message, code=code, data=data, reason=reason)
    return SubmissionError(message, code=code, data=data, reason=reason)


def _check_binding(signed: SignedOperation, config: NetworkConfig) -> None:
    if signed.chain_id != config.chain_id or not same_address(signed.entry_point, config.entry_point):
        raise SubmissionError(
            f"Operation was signed for chain {signed.chain_id} / {signed.entry_point}, "
            f"not chain {config.chain_id} / {config.entry_point}"
        )


def _bundler_call(method: str, params: list, config: NetworkConfig) -> Any:
    if not config.bundler_url:
        raise SubmissionError("Bundler transport selected but no bundler URL is configured")
    try:
        return rpc_call(method, params, config.bundler_url, timeout=config.rpc_timeout)
    except RpcError as exc:
        raise classify_error(exc.message, exc.code, exc.data) from exc
    except RpcTransportError as exc:
        raise SubmissionError(str(exc), retryable=True) from exc


def estimate_user_operation_gas(op: UserOperation, config: NetworkConfig) -> dict[str, Any]:
    """eth_estimateUserOperationGas with a dummy signature."""
    dummy = op.with_signature(DUMMY_SIGNATURE)
    result = _bundler_call("eth_estimateUserOperationGas", [dummy.to_rpc_dict(), config.entry_point], config)
    if not isinstance(result, dict):
        raise SubmissionError(f"Invalid bundler response for eth_estimateUserOperationGas: {result!r}")
    logger.debug("bundler gas estimate: %s", result)
    return result


def send_via_bundler(signed: SignedOperation, config: NetworkConfig) -> OperationHandle:
    _check_binding(signed, config)
    result = _bundler_call(
        "eth_sendUserOperation",
        [signed.operation.to_rpc_dict(), config.entry_point],
        config,
    )
    if not isinstance(result, str):
        raise SubmissionError(f"Invalid bundler response for eth_sendUserOperation: {result!r}")
    if result.lower() != signed.user_op_hash_hex.lower():
        logger.warning("bundler returned %s, expected %s", result, signed.user_op_hash_hex)
    logger.info("submitted %s via bundler", result)
    return OperationHandle(transport=Transport.BUNDLER, user_op_hashes=(result,))


def send_via_entry_point(
    signed_ops: Sequence[SignedOperation],
    config: NetworkConfig,
    relayer_key: str,
    beneficiary: Optional[str] = None,
    gas_limit: Optional[int] = None,
) -> OperationHandle:
    """
    Submit already-signed operations with EntryPoint.handleOps.

    Gas estimation runs the full validation; a revert there is decoded and
    raised before anything is broadcast.
    """
    if not signed_ops:
        raise SubmissionError("No operations to submit")
    for signed in signed_ops:
        _check_binding(signed, config)

    relayer = get_account(relayer_key)
    beneficiary = beneficiary or relayer.address
    data = encode_call(
        entry_point_abi(),
        "handleOps",
        [[s.operation.as_abi_tuple() for s in signed_ops], beneficiary],
    )
    fees = estimate_fees(config)

    try:
        tx = build_transaction(
            to=config.entry_point,
            data=data,
            sender=relayer.address,
            chain_id=config.chain_id,
            max_fee_per_gas=fees.max_fee_per_gas,
            max_priority_fee_per_gas=fees.max_priority_fee_per_gas,
            rpc_url=config.rpc_url,
            gas_limit=gas_limit,
            timeout=config.rpc_timeout,
        )
    except RpcError as exc:
        revert_data = extract_revert_data(exc.data)
        reason = decode_revert_data(revert_data) if revert_data else None
        message = str(reason) if reason is not None and reason.kind != "empty" else exc.message
        raise classify_error(message, exc.code, exc.data, reason) from exc
    except RpcTransportError as exc:
        raise SubmissionError(str(exc), retryable=True) from exc

    try:
        tx_hash = sign_and_send(tx, relayer_key, config.rpc_url, timeout=config.rpc_timeout)
    except RpcError as exc:
        # Relayer tx refused by the node (nonce too low, underpriced): resend, do not re-sign.
        raise SubmissionError(exc.message, code=exc.code, data=exc.data, retryable=True) from exc
    except RpcTransportError as exc:
        raise SubmissionError(str(exc), retryable=True) from exc

    return OperationHandle(
        transport=Transport.DIRECT,
        user_op_hashes=tuple(s.user_op_hash_hex for s in signed_ops),
        transaction_hash=tx_hash,
    )


def submit(
    signed: SignedOperation,
    config: NetworkConfig,
    transport: Union[Transport, str] = Transport.BUNDLER,
    relayer_key: Optional[str] = None,
    beneficiary: Optional[str] = None,
) -> OperationHandle:
    """Send one signed operation by the selected transport."""
    transport = Transport(transport)
    logger.info("submitting %s via %s", signed.user_op_hash_hex, transport.value)
    if transport is Transport.BUNDLER:
        return send_via_bundler(signed, config)

    if relayer_key is None:
        try:
            relayer_key = load_private_key(RELAYER_KEY_VAR)
        except ValueError as exc:
            raise SubmissionError(f"Direct transport needs a relayer key: {exc}") from exc
    return send_via_entry_point([signed], config, relayer_key, beneficiary)
