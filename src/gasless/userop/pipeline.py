"""
End-to-end sponsored operation: build -> hash -> sign -> submit -> confirm.

Every step is synchronous and single-flight. Errors carry the stage that
failed; nothing here retries except receipt polling.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Union

from eth_account import Account

from ..config import NetworkConfig
from ..keys.eth import RELAYER_KEY_VAR, load_private_key, recover_signer, sign_user_op_hash
from ..utils import HexLike, same_address
from .builder import GasConfig, NonceSource, PaymasterConfig, apply_gas_estimate, build_user_operation
from .errors import PolicyRejectedError, SigningError
from .hashing import HashStrategy, user_op_hash
from .operation import SignedOperation, UserOperation
from .receipts import Receipt, wait_for_confirmation
from .retry import RetryPolicy
from .submit import OperationHandle, Transport, estimate_user_operation_gas, submit

logger = logging.getLogger(__name__)


class TransportMode(str, enum.Enum):
    BUNDLER = "bundler"
    DIRECT = "direct"
    AUTO = "auto"  # bundler, then direct on a policy rejection


@dataclass(frozen=True)
class SponsoredResult:
    signed: SignedOperation
    handle: OperationHandle
    receipt: Optional[Receipt] = None

    @property
    def operation(self) -> UserOperation:
        return self.signed.operation


def sign_operation(
    op: UserOperation,
    config: NetworkConfig,
    owner_key: str,
    strategy: HashStrategy = HashStrategy.REMOTE,
) -> SignedOperation:
    """Hash ``op`` as the EntryPoint does and sign the raw digest."""
    digest = user_op_hash(op.unsigned(), config, strategy)
    signature = sign_user_op_hash(digest, owner_key, config.signing_scheme)

    owner = Account.from_key(owner_key).address
    if not same_address(recover_signer(digest, signature), owner):
        raise SigningError("Signature does not recover to the owner key")

    logger.info("signed UserOperation %s", "0x" + digest.hex())
    return SignedOperation(
        operation=op.with_signature(signature),
        user_op_hash=digest,
        chain_id=config.chain_id,
        entry_point=config.entry_point,
    )


def _relayer_key(relayer_key: Optional[str]) -> Optional[str]:
    if relayer_key:
        return relayer_key
    try:
        return load_private_key(RELAYER_KEY_VAR)
    except ValueError:
        return None


def send_sponsored(
    sender: str,
    call_data: HexLike,
    config: NetworkConfig,
    owner_key: str,
    transport: Union[TransportMode, str] = TransportMode.BUNDLER,
    relayer_key: Optional[str] = None,
    beneficiary: Optional[str] = None,
    gas: Optional[GasConfig] = None,
    paymaster: Optional[PaymasterConfig] = None,
    nonce: Optional[int] = None,
    nonce_source: NonceSource = NonceSource.ENTRY_POINT,
    estimate_gas: bool = False,
    hash_strategy: HashStrategy = HashStrategy.REMOTE,
    wait: bool = True,
    retry: Optional[RetryPolicy] = None,
    check: bool = True,
) -> SponsoredResult:
    """
    Build, sign, submit and (optionally) confirm a paymaster-sponsored operation.

    Args:
        sender: Deployed smart account
        call_data: Account call, e.g. from ``calls.transfer_call``
        config: Network configuration
        owner_key: Private key of the account owner
        transport: bundler, direct, or auto
        relayer_key: Funded EOA for direct submission (default: RELAYER_PRIVATE_KEY)
        estimate_gas: Replace gas floors with the bundler's estimate before signing
        wait: Poll for the receipt
        check: Raise OperationRevertedError when the confirmed receipt failed

    Returns:
        SponsoredResult with the signed operation, handle and receipt
    """
    mode = TransportMode(transport)

    op = build_user_operation(
        sender,
        call_data,
        config,
        gas=gas,
        paymaster=paymaster,
        nonce=nonce,
        nonce_source=nonce_source,
    )
    if estimate_gas and config.bundler_url:
        op = apply_gas_estimate(op, estimate_user_operation_gas(op, config))

    signed = sign_operation(op, config, owner_key, hash_strategy)

    if mode is TransportMode.AUTO:
        fallback_key = _relayer_key(relayer_key)
        try:
            handle = submit(signed, config, Transport.BUNDLER)
        except PolicyRejectedError as exc:
            if fallback_key is None:
                raise
            logger.warning("bundler rejected (%s); resubmitting via handleOps", exc.message)
            handle = submit(signed, config, Transport.DIRECT, fallback_key, beneficiary)
    else:
        handle = submit(signed, config, Transport(mode.value), relayer_key, beneficiary)

    if not wait:
        return SponsoredResult(signed=signed, handle=handle)

    receipt = wait_for_confirmation(handle, config, retry)
    if check:
        receipt.raise_for_status()
    return SponsoredResult(signed=signed, handle=handle, receipt=receipt)
