"""Tests for receipt folding, revert replay and confirmation polling."""

from __future__ import annotations

import pytest
from eth_abi import encode

from conftest import BUNDLER_URL, NODE_URL, PAYMASTER, SENDER, FakeChain, RpcFault, Unavailable
from gasless.chain.abi import entry_point_abi, event_topic, selector
from gasless.config import NetworkConfig
from gasless.userop.errors import ConfirmationTimeoutError, OperationRevertedError, SubmissionError
from gasless.userop.receipts import (
    fetch_transaction_receipt,
    receipt_from_bundler,
    receipt_from_node,
    wait_for_confirmation,
)
from gasless.userop.retry import RetryPolicy
from gasless.userop.submit import OperationHandle, Transport
from gasless.utils import to_hex

ENTRY_POINT = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
OP_HASH = "0x" + "ab" * 32
TX_HASH = "0x" + "cd" * 32
FAST = RetryPolicy(max_attempts=3, initial_delay=0.0, backoff=1.0, max_delay=0.0, timeout=5.0)


def address_topic(address: str) -> str:
    return to_hex(encode(["address"], [address]))


def user_operation_event(success: bool, gas_used: int = 91_000, op_hash: str = OP_HASH) -> dict:
    return {
        "address": ENTRY_POINT,
        "topics": [
            event_topic(entry_point_abi(), "UserOperationEvent"),
            op_hash,
            address_topic(SENDER),
            address_topic(PAYMASTER),
        ],
        "data": to_hex(encode(["uint256", "bool", "uint256", "uint256"], [5, success, 10**12, gas_used])),
    }


def revert_reason_event(message: str, op_hash: str = OP_HASH) -> dict:
    revert = selector("FailedOp(uint256,string)") + encode(["uint256", "string"], [0, message])
    return {
        "address": ENTRY_POINT,
        "topics": [event_topic(entry_point_abi(), "UserOperationRevertReason"), op_hash, address_topic(SENDER)],
        "data": to_hex(encode(["uint256", "bytes"], [5, revert])),
    }


def node_receipt(status: int, logs: list) -> dict:
    return {
        "transactionHash": TX_HASH,
        "blockNumber": "0x1a4",
        "gasUsed": hex(140_000),
        "status": hex(status),
        "logs": logs,
    }


class TestReceiptFromNode:
    def test_success(self) -> None:
        receipt = receipt_from_node(node_receipt(1, [user_operation_event(True)]), OP_HASH, ENTRY_POINT)
        assert receipt.success
        assert receipt.block_number == 420
        assert receipt.gas_used == 140_000
        assert receipt.actual_gas_used == 91_000
        assert receipt.actual_gas_cost == 10**12
        assert receipt.user_op_hash == OP_HASH
        assert receipt.raise_for_status() is receipt

    def test_operation_revert_with_reason(self) -> None:
        logs = [revert_reason_event("AA33 reverted"), user_operation_event(False)]
        receipt = receipt_from_node(node_receipt(1, logs), OP_HASH, ENTRY_POINT)
        assert not receipt.success
        assert not receipt.batch_reverted
        assert receipt.revert_reason.op_index == 0
        assert receipt.revert_reason.message == "AA33 reverted"
        with pytest.raises(OperationRevertedError, match="AA33 reverted") as exc_info:
            receipt.raise_for_status()
        assert exc_info.value.reason is receipt.revert_reason

    def test_batch_revert(self) -> None:
        receipt = receipt_from_node(node_receipt(0, []), OP_HASH, ENTRY_POINT)
        assert not receipt.success
        assert receipt.batch_reverted
        assert receipt.revert_reason is None

    def test_other_operation_in_batch_ignored(self) -> None:
        other = "0x" + "ef" * 32
        logs = [user_operation_event(False, op_hash=other), user_operation_event(True)]
        assert receipt_from_node(node_receipt(1, logs), OP_HASH, ENTRY_POINT).success


class TestReceiptFromBundler:
    def test_success(self) -> None:
        raw = {
            "userOpHash": OP_HASH,
            "success": True,
            "actualGasUsed": hex(91_000),
            "actualGasCost": hex(10**12),
            "receipt": node_receipt(1, [user_operation_event(True)]),
        }
        receipt = receipt_from_bundler(raw, ENTRY_POINT)
        assert receipt.success
        assert receipt.transaction_hash == TX_HASH
        assert receipt.user_op_hash == OP_HASH
        assert receipt.actual_gas_used == 91_000

    def test_failure_uses_logs(self) -> None:
        raw = {
            "userOpHash": OP_HASH,
            "success": False,
            "logs": [revert_reason_event("AA33 reverted")],
            "receipt": node_receipt(1, []),
        }
        receipt = receipt_from_bundler(raw, ENTRY_POINT)
        assert not receipt.success
        assert receipt.revert_reason.message == "AA33 reverted"

    def test_failure_falls_back_to_reason_field(self) -> None:
        reason = selector("Error(string)") + encode(["string"], ["paused"])
        raw = {"userOpHash": OP_HASH, "success": False, "reason": to_hex(reason), "receipt": node_receipt(1, [])}
        assert receipt_from_bundler(raw).revert_reason.message == "paused"

    def test_plain_text_reason_is_kept(self) -> None:
        raw = {"userOpHash": OP_HASH, "success": False, "reason": "AA33 reverted", "receipt": node_receipt(1, [])}
        reason = receipt_from_bundler(raw).revert_reason
        assert reason.kind == "Error"
        assert reason.message == "AA33 reverted"
        assert reason.raw == b""

    def test_malformed_hex_reason_is_kept(self) -> None:
        raw = {"userOpHash": OP_HASH, "success": False, "reason": "0xnothex", "receipt": node_receipt(1, [])}
        assert receipt_from_bundler(raw).revert_reason.message == "0xnothex"


class TestFetchTransactionReceipt:
    def test_pending_is_none(self, chain: FakeChain, config: NetworkConfig) -> None:
        chain.on(NODE_URL, "eth_getTransactionReceipt", None)
        assert fetch_transaction_receipt(TX_HASH, config) is None

    def test_batch_revert_is_replayed(self, chain: FakeChain, config: NetworkConfig) -> None:
        failed_op = selector("FailedOp(uint256,string)")
        revert = to_hex(failed_op + encode(["uint256", "string"], [0, "AA21 didn't pay prefund"]))

        def replay(params: list) -> None:
            raise RpcFault(3, "execution reverted", data=revert)

        chain.on(NODE_URL, "eth_getTransactionReceipt", node_receipt(0, []))
        chain.on(
            NODE_URL,
            "eth_getTransactionByHash",
            {"to": ENTRY_POINT, "from": SENDER, "input": "0x765e827f", "blockNumber": "0x1a4"},
        )
        chain.on(NODE_URL, "eth_call", replay)

        receipt = fetch_transaction_receipt(TX_HASH, config)
        assert receipt.batch_reverted
        assert receipt.revert_reason.message == "AA21 didn't pay prefund"
        (call, block) = chain.params("eth_call")[0]
        assert block == "0x1a3"
        assert call["from"] == SENDER


class TestWaitForConfirmation:
    def test_direct_polls_node(self, chain: FakeChain, config: NetworkConfig) -> None:
        answers = iter([None, node_receipt(1, [user_operation_event(True)])])
        chain.on(NODE_URL, "eth_getTransactionReceipt", lambda params: next(answers))
        handle = OperationHandle(Transport.DIRECT, (OP_HASH,), TX_HASH)

        receipt = wait_for_confirmation(handle, config, FAST)
        assert receipt.success
        assert chain.methods() == ["eth_getTransactionReceipt", "eth_getTransactionReceipt"]
        assert chain.methods(BUNDLER_URL) == []

    def test_bundler_polls_bundler(self, chain: FakeChain, config: NetworkConfig) -> None:
        chain.on(
            BUNDLER_URL,
            "eth_getUserOperationReceipt",
            {"userOpHash": OP_HASH, "success": True, "receipt": node_receipt(1, [])},
        )
        handle = OperationHandle(Transport.BUNDLER, (OP_HASH,))

        receipt = wait_for_confirmation(handle, config, FAST)
        assert receipt.transaction_hash == TX_HASH
        assert chain.params("eth_getUserOperationReceipt") == [[OP_HASH]]
        assert chain.methods(NODE_URL) == []

    def test_gives_up(self, chain: FakeChain, config: NetworkConfig) -> None:
        chain.on(BUNDLER_URL, "eth_getUserOperationReceipt", None)
        handle = OperationHandle(Transport.BUNDLER, (OP_HASH,))

        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            wait_for_confirmation(handle, config, FAST)
        assert exc_info.value.retryable
        assert len(chain.calls) == FAST.max_attempts

    def test_transient_errors_are_misses(self, chain: FakeChain, config: NetworkConfig) -> None:
        answers = iter([Unavailable(), {"userOpHash": OP_HASH, "success": True, "receipt": {}}])

        def flaky(params: list) -> dict:
            answer = next(answers)
            if isinstance(answer, Exception):
                raise answer
            return answer

        chain.on(BUNDLER_URL, "eth_getUserOperationReceipt", flaky)
        receipt = wait_for_confirmation(OperationHandle(Transport.BUNDLER, (OP_HASH,)), config, FAST)
        assert receipt.success

    def test_text_reason_surfaces_as_revert(self, chain: FakeChain, config: NetworkConfig) -> None:
        chain.on(
            BUNDLER_URL,
            "eth_getUserOperationReceipt",
            {"userOpHash": OP_HASH, "success": False, "reason": "AA33 reverted", "receipt": node_receipt(1, [])},
        )
        receipt = wait_for_confirmation(OperationHandle(Transport.BUNDLER, (OP_HASH,)), config, FAST)
        assert not receipt.success
        with pytest.raises(OperationRevertedError, match="AA33 reverted") as exc_info:
            receipt.raise_for_status()
        assert exc_info.value.stage == "confirm"

    def test_bundler_lookup_needs_url(self, config: NetworkConfig) -> None:
        config = NetworkConfig(rpc_url=NODE_URL)
        with pytest.raises(SubmissionError):
            wait_for_confirmation(OperationHandle(Transport.BUNDLER, (OP_HASH,)), config, FAST)
