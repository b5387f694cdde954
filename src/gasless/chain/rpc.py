"""
JSON-RPC Client for EVM nodes and ERC-4337 bundlers.

Lightweight alternative to web3.py: uses httpx for HTTP + eth-abi for encoding.
The same transport serves the chain node (eth_*) and the bundler
(eth_sendUserOperation, eth_getUserOperationReceipt, ...), so every call
takes the endpoint URL explicitly.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Optional

import httpx

from ..utils import from_quantity
from .abi import decode_result, encode_call, load_abi

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

_ids = itertools.count(1)


class RpcError(RuntimeError):
    """JSON-RPC error envelope returned by the remote endpoint.

    ``message`` is the remote ``error.message`` verbatim.
    """

    retryable = False

    def __init__(self, method: str, code: Optional[int], message: str, data: Any = None) -> None:
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
        self.message = message
        self.data = data


class RpcTransportError(RuntimeError):
    """HTTP or network failure talking to the endpoint. Safe to retry."""

    retryable = True

    def __init__(self, method: str, url: str, cause: Exception) -> None:
        super().__init__(f"{method} to {url} failed: {cause}")
        self.method = method
        self.url = url


def _http_client(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout)


def rpc_call(
    method: str,
    params: list,
    rpc_url: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """
    Make a JSON-RPC call.

    Args:
        method: RPC method name (e.g., "eth_call")
        params: RPC parameters
        rpc_url: Endpoint URL (node or bundler)
        timeout: Request timeout in seconds

    Returns:
        Result field from the RPC response

    Raises:
        RpcError: If the response carries an error envelope
        RpcTransportError: On HTTP status or network failure
    """
    payload = {
        "jsonrpc": "2.0",
        "method": method,
        "params": params,
        "id": next(_ids),
    }
    logger.debug("rpc %s -> %s", method, rpc_url)

    try:
        with _http_client(timeout) as client:
            response = client.post(rpc_url, json=payload)
            data = response.json() if response.content else {}
            # Bundlers report validation failures as HTTP 4xx/5xx with a
            # JSON-RPC body; prefer the envelope over the status.
            if not (isinstance(data, dict) and "error" in data):
                response.raise_for_status()
    except ValueError as exc:
        raise RpcTransportError(method, rpc_url, exc) from exc
    except httpx.HTTPError as exc:
        raise RpcTransportError(method, rpc_url, exc) from exc

    if not isinstance(data, dict):
        raise RpcTransportError(method, rpc_url, ValueError(f"Unexpected response: {data!r}"))

    error = data.get("error")
    if error is not None:
        if isinstance(error, dict):
            raise RpcError(method, error.get("code"), str(error.get("message", "")), error.get("data"))
        raise RpcError(method, None, str(error))

    return data.get("result")


def eth_call(
    to: str,
    data: str,
    rpc_url: str,
    block: str = "latest",
    sender: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    """Execute a read-only call and return the raw 0x-prefixed result."""
    call: dict[str, Any] = {"to": to, "data": data}
    if sender:
        call["from"] = sender
    return rpc_call("eth_call", [call, block], rpc_url, timeout=timeout)


def get_chain_id(rpc_url: str, timeout: float = DEFAULT_TIMEOUT) -> int:
    return from_quantity(rpc_call("eth_chainId", [], rpc_url, timeout=timeout))


def get_transaction_count(address: str, rpc_url: str, timeout: float = DEFAULT_TIMEOUT) -> int:
    """
    Get transaction nonce for an EOA.

    Uses the "pending" tag so that a relayer with in-flight transactions
    does not reuse a nonce.
    """
    result = rpc_call("eth_getTransactionCount", [address, "pending"], rpc_url, timeout=timeout)
    return from_quantity(result)


def get_block(rpc_url: str, block: str = "latest", timeout: float = DEFAULT_TIMEOUT) -> Optional[dict]:
    return rpc_call("eth_getBlockByNumber", [block, False], rpc_url, timeout=timeout)


def get_balance(address: str, rpc_url: str, timeout: float = DEFAULT_TIMEOUT) -> int:
    """Get ETH balance for an address, in wei."""
    return from_quantity(rpc_call("eth_getBalance", [address, "latest"], rpc_url, timeout=timeout))


def estimate_gas(tx: dict, rpc_url: str, timeout: float = DEFAULT_TIMEOUT) -> int:
    return from_quantity(rpc_call("eth_estimateGas", [tx], rpc_url, timeout=timeout))


def send_raw_transaction(raw_tx: str, rpc_url: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """
    Send a signed raw transaction.

    Args:
        raw_tx: 0x-prefixed hex encoded signed transaction

    Returns:
        Transaction hash (0x-prefixed hex)
    """
    return rpc_call("eth_sendRawTransaction", [raw_tx], rpc_url, timeout=timeout)


def get_transaction(tx_hash: str, rpc_url: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[dict]:
    return rpc_call("eth_getTransactionByHash", [tx_hash], rpc_url, timeout=timeout)


def get_transaction_receipt(tx_hash: str, rpc_url: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[dict]:
    return rpc_call("eth_getTransactionReceipt", [tx_hash], rpc_url, timeout=timeout)


def read_contract(
    contract_address: str,
    function_name: str,
    rpc_url: str,
    args: Optional[list] = None,
    contract_name: Optional[str] = None,
    abi: Optional[list] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """
    Read from a smart contract (eth_call).

    Args:
        contract_address: 0x-prefixed contract address
        function_name: Function to call
        rpc_url: RPC endpoint URL
        args: Function arguments (default: [])
        contract_name: Name of a bundled ABI (e.g., "EntryPoint")
        abi: Pre-loaded ABI (if not using contract_name)

    Returns:
        Decoded return value(s)
    """
    if abi is None:
        if contract_name is None:
            raise ValueError("Either abi or contract_name must be provided")
        abi = load_abi(contract_name)

    calldata = encode_call(abi, function_name, args or [])
    result = eth_call(contract_address, calldata, rpc_url, timeout=timeout)

    if result is None or result == "0x":
        return None

    return decode_result(abi, function_name, result)
