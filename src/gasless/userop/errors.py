"""
Error taxonomy for the UserOperation pipeline.

Every error names the stage that failed (build, hash, sign, submit,
confirm) so callers can report where a sponsored operation stopped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .receipts import Receipt
    from .revert import RevertReason


class GaslessError(RuntimeError):
    stage = "pipeline"
    retryable = False


class ConfigError(GaslessError, ValueError):
    stage = "config"


class PackingError(GaslessError, ValueError):
    """Operand out of range or malformed packed field."""

    stage = "build"


class BuildError(GaslessError):
    stage = "build"


class HashMismatchError(GaslessError):
    stage = "hash"

    def __init__(self, remote: bytes, local: bytes) -> None:
        super().__init__(
            f"EntryPoint hash 0x{remote.hex()} != local hash 0x{local.hex()}; "
            "refusing to sign"
        )
        self.remote = remote
        self.local = local


class SigningError(GaslessError):
    stage = "sign"


class SubmissionError(GaslessError):
    """Submission rejected or failed in transport.

    ``message`` is the endpoint's ``error.message`` verbatim when one exists.
    """

    stage = "submit"

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Any = None,
        retryable: bool = False,
        reason: Optional["RevertReason"] = None,
    ) -> None:
        super().__init__(message if code is None else f"[{code}] {message}")
        self.message = message
        self.code = code
        self.data = data
        self.retryable = retryable
        self.reason = reason


class NonceMismatchError(SubmissionError):
    pass


class PolicyRejectedError(SubmissionError):
    """Bundler refused the operation on policy grounds (-32500 class)."""


class ConfirmationTimeoutError(GaslessError):
    stage = "confirm"
    retryable = True


class OperationRevertedError(GaslessError):
    stage = "confirm"

    def __init__(self, receipt: "Receipt") -> None:
        reason = receipt.revert_reason
        detail = str(reason) if reason is not None else "no revert reason emitted"
        kind = "batch reverted" if receipt.batch_reverted else "operation reverted"
        super().__init__(f"{kind} in {receipt.transaction_hash}: {detail}")
        self.receipt = receipt
        self.reason = reason
