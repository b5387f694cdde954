"""
Revert reason decoding.

Account-abstraction failures surface one or two call frames below the
transaction the node reports, so the reason has to be dug out of:

1. EntryPoint ``UserOperationRevertReason`` / ``PostOpRevertReason`` logs
2. an EntryPoint error from the bundled ABI (``FailedOp``,
   ``FailedOpWithRevert``) or ``Error(string)`` / ``Panic(uint256)``
3. otherwise the raw bytes, kept verbatim.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from ..chain.abi import decode_event, entry_point_abi, entry_point_errors, input_types, selector
from ..utils import same_address, to_bytes, to_hex

ERROR_STRING_SELECTOR = selector("Error(string)")
PANIC_SELECTOR = selector("Panic(uint256)")

REVERT_EVENTS = ("UserOperationRevertReason", "PostOpRevertReason")


@dataclass(frozen=True)
class RevertReason:
    kind: str  # FailedOp | FailedOpWithRevert | Error | Panic | raw | empty
    raw: bytes
    op_index: Optional[int] = None
    message: Optional[str] = None
    panic_code: Optional[int] = None
    inner: Optional["RevertReason"] = None
    user_op_hash: Optional[str] = None
    event: Optional[str] = None

    def __str__(self) -> str:
        if self.kind in ("FailedOp", "FailedOpWithRevert"):
            text = f"{self.kind}(op {self.op_index}): {self.message}"
            if self.inner is not None and self.inner.kind != "empty":
                text += f" <- {self.inner}"
        elif self.kind == "Error":
            text = f"Error: {self.message}"
        elif self.kind == "Panic":
            text = f"Panic(0x{self.panic_code:02x})"
        elif self.kind == "empty":
            text = "reverted without data"
        else:
            text = f"raw revert data {to_hex(self.raw)}"
        if self.event:
            text = f"{self.event}: {text}"
        return text


def decode_revert_data(data: Any) -> RevertReason:
    """Decode revert bytes by selector; anything unknown is returned raw."""
    raw = to_bytes(data) if data else b""
    if not raw:
        return RevertReason(kind="empty", raw=raw)

    head, body = raw[:4], raw[4:]
    try:
        entry = entry_point_errors().get(head)
        if entry is not None:
            values = decode(input_types(entry), body)
            inner = decode_revert_data(values[2]) if len(values) > 2 else None
            return RevertReason(kind=entry["name"], raw=raw, op_index=values[0], message=values[1], inner=inner)
        if head == ERROR_STRING_SELECTOR:
            (message,) = decode(["string"], body)
            return RevertReason(kind="Error", raw=raw, message=message)
        if head == PANIC_SELECTOR:
            (code,) = decode(["uint256"], body)
            return RevertReason(kind="Panic", raw=raw, panic_code=code)
    except DecodingError:
        pass
    return RevertReason(kind="raw", raw=raw)


def extract_revert_data(error_data: Any) -> Optional[str]:
    """
    Pull 0x-hex revert bytes out of a JSON-RPC ``error.data`` value.

    Nodes disagree on the shape: a bare hex string, ``{"data": "0x.."}``,
    or a nested ``{"originalError": {"data": ...}}``.
    """
    if isinstance(error_data, str):
        return error_data if error_data.startswith("0x") else None
    if isinstance(error_data, dict):
        for key in ("data", "revertData", "originalError"):
            found = extract_revert_data(error_data.get(key))
            if found:
                return found
    return None


def find_revert_reasons(
    logs: Iterable[dict[str, Any]],
    entry_point: Optional[str] = None,
    user_op_hash: Optional[str] = None,
) -> list[RevertReason]:
    """Decode every revert-reason event in ``logs``, optionally filtered."""
    abi = entry_point_abi()
    reasons = []
    for log in logs:
        if entry_point and log.get("address") and not same_address(log["address"], entry_point):
            continue
        for event_name in REVERT_EVENTS:
            decoded = decode_event(abi, event_name, log)
            if decoded is None:
                continue
            op_hash = to_hex(decoded["userOpHash"])
            if user_op_hash and op_hash.lower() != user_op_hash.lower():
                continue
            inner = decode_revert_data(decoded["revertReason"])
            reasons.append(
                RevertReason(
                    kind=inner.kind,
                    raw=inner.raw,
                    op_index=inner.op_index,
                    message=inner.message,
                    panic_code=inner.panic_code,
                    inner=inner.inner,
                    user_op_hash=op_hash,
                    event=event_name,
                )
            )
    return reasons
