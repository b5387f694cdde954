"""Shared fixtures: deterministic keys, a network config, and a fake JSON-RPC chain."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union
from unittest.mock import patch

import httpx
import pytest
from eth_abi import decode, encode
from eth_account import Account

from gasless.chain.abi import selector
from gasless.config import NetworkConfig
from gasless.userop.operation import UserOperation
from gasless.userop.packing import pack_account_gas_limits, pack_gas_fees, pack_paymaster_and_data
from gasless.utils import from_quantity, keccak256, to_bytes, to_hex

OWNER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
RELAYER_KEY = "0x8da4ef21b864d2cc526dbdb2a120bd2874c36c9d0a1fb7f8c63d7f7a8b41de8f"
OWNER_ADDRESS = Account.from_key(OWNER_KEY).address
RELAYER_ADDRESS = Account.from_key(RELAYER_KEY).address

SENDER = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
PAYMASTER = "0x2222222222222222222222222222222222222222"
TOKEN = "0x3333333333333333333333333333333333333333"
RECIPIENT = "0x4444444444444444444444444444444444444444"

NODE_URL = "http://node.test"
BUNDLER_URL = "http://bundler.test"
CHAIN_ID = 11155111

PACKED_OP_TYPE = "(address,uint256,bytes,bytes,bytes32,uint256,bytes32,bytes,bytes)"

GET_NONCE = selector("getNonce(address,uint192)")
GET_USER_OP_HASH = selector(f"getUserOpHash({PACKED_OP_TYPE})")
DECIMALS = selector("decimals()")

Handler = Callable[[list], Any]


class RpcFault(Exception):
    """Raised by a fake handler to answer with a JSON-RPC error envelope."""

    def __init__(self, code: int, message: str, data: Any = None, status: int = 200) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data
        self.status = status


class Unavailable(Exception):
    """Raised by a fake handler to answer with a bare HTTP 503."""


class FakeChain:
    """
    In-memory JSON-RPC endpoints keyed by host and method.

    eth_call is further routed on the 4-byte selector of the calldata.
    """

    def __init__(self) -> None:
        self.handlers: dict[tuple[str, str], Handler] = {}
        self.contract_calls: dict[bytes, Handler] = {}
        self.calls: list[tuple[str, str, list]] = []
        self.on(NODE_URL, "eth_call", self._route_eth_call)

    def on(self, url: str, method: str, handler: Union[Handler, Any]) -> None:
        host = httpx.URL(url).host
        self.handlers[(host, method)] = handler if callable(handler) else (lambda params, v=handler: v)

    def on_call(self, sig_selector: bytes, handler: Union[Handler, Any]) -> None:
        self.contract_calls[sig_selector] = handler if callable(handler) else (lambda data, v=handler: v)

    def methods(self, url: Optional[str] = None) -> list[str]:
        host = httpx.URL(url).host if url else None
        return [m for h, m, _ in self.calls if host is None or h == host]

    def params(self, method: str) -> list:
        return [p for _, m, p in self.calls if m == method]

    def _route_eth_call(self, params: list) -> Any:
        data = to_bytes(params[0]["data"])
        handler = self.contract_calls.get(data[:4])
        if handler is None:
            raise RpcFault(-32000, "execution reverted")
        return handler(data)

    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method, params = body["method"], body["params"]
        self.calls.append((request.url.host, method, params))

        envelope: dict[str, Any] = {"jsonrpc": "2.0", "id": body["id"]}
        handler = self.handlers.get((request.url.host, method))
        if handler is None:
            envelope["error"] = {"code": -32601, "message": f"the method {method} does not exist"}
            return httpx.Response(200, json=envelope)
        try:
            envelope["result"] = handler(params)
        except Unavailable:
            return httpx.Response(503, text="")
        except RpcFault as fault:
            envelope["error"] = {"code": fault.code, "message": fault.message}
            if fault.data is not None:
                envelope["error"]["data"] = fault.data
            return httpx.Response(fault.status, json=envelope)
        return httpx.Response(200, json=envelope)


def word(value: int) -> str:
    return to_hex(encode(["uint256"], [value]))


def op_from_tuple(fields: tuple) -> UserOperation:
    sender, nonce, init_code, call_data, gas_limits, pre_verification, gas_fees, pm_data, sig = fields
    return UserOperation(
        sender=sender,
        nonce=nonce,
        call_data=call_data,
        account_gas_limits=gas_limits,
        pre_verification_gas=pre_verification,
        gas_fees=gas_fees,
        init_code=init_code,
        paymaster_and_data=pm_data,
        signature=sig,
    )


def decode_packed_op(data: bytes) -> UserOperation:
    (fields,) = decode([PACKED_OP_TYPE], data[4:])
    return op_from_tuple(fields)


def decode_handle_ops(data: bytes) -> tuple[list[UserOperation], str]:
    """Operations and beneficiary from handleOps calldata."""
    ops, beneficiary = decode([f"{PACKED_OP_TYPE}[]", "address"], data[4:])
    return [op_from_tuple(fields) for fields in ops], beneficiary


def _address_word(address: str) -> bytes:
    return b"\x00" * 12 + to_bytes(address)


def v07_user_op_hash(op: UserOperation, entry_point: str, chain_id: int) -> bytes:
    """
    getUserOpHash of EntryPoint v0.7, laid out word by word from
    UserOperationLib.encode rather than through eth_abi.
    """
    inner = b"".join([
        _address_word(op.sender),
        op.nonce.to_bytes(32, "big"),
        keccak256(op.init_code),
        keccak256(op.call_data),
        op.account_gas_limits,
        op.pre_verification_gas.to_bytes(32, "big"),
        op.gas_fees,
        keccak256(op.paymaster_and_data),
    ])
    return keccak256(keccak256(inner) + _address_word(entry_point) + chain_id.to_bytes(32, "big"))


def entry_point_hash(data: bytes, chain_id: int = CHAIN_ID, entry_point: Optional[str] = None) -> str:
    """What a v0.7 EntryPoint answers for getUserOpHash."""
    op = decode_packed_op(data)
    return to_hex(v07_user_op_hash(op, entry_point or NetworkConfig().entry_point, chain_id))


@pytest.fixture()
def chain() -> Iterator[FakeChain]:
    """Route every JSON-RPC request through a FakeChain."""
    fake = FakeChain()

    def client(timeout: float) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(fake.handle), timeout=timeout)

    with patch("gasless.chain.rpc._http_client", client):
        yield fake


@pytest.fixture()
def ready_chain(chain: FakeChain) -> FakeChain:
    """A chain with a deployed account at nonce 5, a live base fee and a v0.7 EntryPoint."""
    chain.on_call(GET_NONCE, word(5))
    chain.on_call(GET_USER_OP_HASH, entry_point_hash)
    chain.on_call(DECIMALS, word(18))
    chain.on(NODE_URL, "eth_getBlockByNumber", {"number": "0x10", "baseFeePerGas": hex(2_000_000)})
    return chain


@pytest.fixture()
def config() -> NetworkConfig:
    return NetworkConfig(
        rpc_url=NODE_URL,
        chain_id=CHAIN_ID,
        bundler_url=BUNDLER_URL,
        paymaster=PAYMASTER,
        gas_token=TOKEN,
        rpc_timeout=5.0,
    )


@pytest.fixture()
def gasless_home(tmp_path: Path) -> Path:
    """Empty ~/.gasless so no developer .env leaks into tests."""
    home = tmp_path / ".gasless"
    home.mkdir()
    return home


@pytest.fixture()
def clean_env(gasless_home: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for var in list(os.environ):
        if var.startswith("GASLESS_") or var in ("OWNER_PRIVATE_KEY", "RELAYER_PRIVATE_KEY"):
            monkeypatch.delenv(var, raising=False)
    env_path = gasless_home / ".env"
    monkeypatch.setattr("gasless.keys.eth.GASLESS_ENV", env_path)
    monkeypatch.setattr("gasless.config.GASLESS_ENV", env_path)
    return env_path


def op_from_rpc(rpc: dict) -> UserOperation:
    """Re-pack the unpacked JSON form a bundler receives."""
    paymaster_and_data = b""
    if rpc.get("paymaster"):
        paymaster_and_data = pack_paymaster_and_data(
            rpc["paymaster"],
            from_quantity(rpc["paymasterVerificationGasLimit"]),
            from_quantity(rpc["paymasterPostOpGasLimit"]),
            rpc["paymasterData"],
        )
    return UserOperation(
        sender=rpc["sender"],
        nonce=from_quantity(rpc["nonce"]),
        call_data=rpc["callData"],
        account_gas_limits=pack_account_gas_limits(
            from_quantity(rpc["verificationGasLimit"]), from_quantity(rpc["callGasLimit"])
        ),
        pre_verification_gas=from_quantity(rpc["preVerificationGas"]),
        gas_fees=pack_gas_fees(from_quantity(rpc["maxPriorityFeePerGas"]), from_quantity(rpc["maxFeePerGas"])),
        paymaster_and_data=paymaster_and_data,
        signature=rpc["signature"],
    )


def bundler_accepts(params: list) -> str:
    """eth_sendUserOperation handler answering with the operation hash."""
    rpc_op, entry_point = params
    return to_hex(v07_user_op_hash(op_from_rpc(rpc_op), entry_point, CHAIN_ID))
