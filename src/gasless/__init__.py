__all__ = [
    # Configuration
    "NetworkConfig",
    "ENTRY_POINT_V07",
    # Operation record
    "UserOperation",
    "SignedOperation",
    "PaymasterFields",
    "pack_account_gas_limits",
    "pack_gas_fees",
    "pack_paymaster_and_data",
    "split_paymaster_and_data",
    # Building
    "FeeEstimate",
    "estimate_fees",
    "GasConfig",
    "PaymasterConfig",
    "NonceSource",
    "get_nonce",
    "build_user_operation",
    "apply_gas_estimate",
    # Call payloads
    "encode_execute",
    "transfer_call",
    "approve_call",
    # Hashing / signing
    "HashStrategy",
    "user_op_hash",
    "local_user_op_hash",
    "remote_user_op_hash",
    "SigningScheme",
    "sign_user_op_hash",
    "recover_signer",
    "load_private_key",
    "get_address",
    # Submission / confirmation
    "Transport",
    "OperationHandle",
    "submit",
    "send_via_bundler",
    "send_via_entry_point",
    "Receipt",
    "RetryPolicy",
    "wait_for_confirmation",
    "RevertReason",
    "decode_revert_data",
    "find_revert_reasons",
    # Pipeline
    "TransportMode",
    "SponsoredResult",
    "sign_operation",
    "send_sponsored",
    # Errors
    "GaslessError",
    "ConfigError",
    "PackingError",
    "BuildError",
    "HashMismatchError",
    "SigningError",
    "SubmissionError",
    "NonceMismatchError",
    "PolicyRejectedError",
    "ConfirmationTimeoutError",
    "OperationRevertedError",
    "RpcError",
    "RpcTransportError",
]

from .chain.rpc import RpcError, RpcTransportError
from .config import ENTRY_POINT_V07, NetworkConfig
from .keys.eth import SigningScheme, get_address, load_private_key, recover_signer, sign_user_op_hash
from .userop.builder import (
    GasConfig,
    NonceSource,
    PaymasterConfig,
    apply_gas_estimate,
    build_user_operation,
    get_nonce,
)
from .userop.calls import approve_call, encode_execute, transfer_call
from .userop.errors import (
    BuildError,
    ConfigError,
    ConfirmationTimeoutError,
    GaslessError,
    HashMismatchError,
    NonceMismatchError,
    OperationRevertedError,
    PackingError,
    PolicyRejectedError,
    SigningError,
    SubmissionError,
)
from .userop.gas import FeeEstimate, estimate_fees
from .userop.hashing import HashStrategy, local_user_op_hash, remote_user_op_hash, user_op_hash
from .userop.operation import SignedOperation, UserOperation
from .userop.packing import (
    PaymasterFields,
    pack_account_gas_limits,
    pack_gas_fees,
    pack_paymaster_and_data,
    split_paymaster_and_data,
)
from .userop.pipeline import SponsoredResult, TransportMode, send_sponsored, sign_operation
from .userop.receipts import Receipt, wait_for_confirmation
from .userop.retry import RetryPolicy
from .userop.revert import RevertReason, decode_revert_data, find_revert_reasons
from .userop.submit import OperationHandle, Transport, send_via_bundler, send_via_entry_point, submit
