"""Call payloads wrapped into UserOperation.callData."""

from __future__ import annotations

from typing import Optional

from ..chain.abi import account_abi, encode_call, erc20_abi
from ..chain.rpc import DEFAULT_TIMEOUT, read_contract
from ..utils import HexLike, parse_units, to_bytes, to_checksum_address


def encode_execute(dest: str, value: int, data: HexLike = b"") -> bytes:
    """SimpleAccount.execute(dest, value, func)."""
    return to_bytes(encode_call(account_abi(), "execute", [to_checksum_address(dest), value, to_bytes(data)]))


def encode_erc20_transfer(to: str, amount: int) -> bytes:
    return to_bytes(encode_call(erc20_abi(), "transfer", [to_checksum_address(to), amount]))


def encode_erc20_approve(spender: str, amount: int) -> bytes:
    return to_bytes(encode_call(erc20_abi(), "approve", [to_checksum_address(spender), amount]))


def token_decimals(token: str, rpc_url: str, timeout: float = DEFAULT_TIMEOUT) -> int:
    decimals: Optional[int] = read_contract(token, "decimals", rpc_url, abi=erc20_abi(), timeout=timeout)
    if decimals is None:
        raise ValueError(f"{token} returned no decimals(); is it an ERC-20?")
    return int(decimals)


def token_amount(
    token: str,
    amount: str,
    rpc_url: str,
    decimals: Optional[int] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> int:
    """Convert a human amount ("0.1") to base units using the token's decimals()."""
    if decimals is None:
        decimals = token_decimals(token, rpc_url, timeout=timeout)
    return parse_units(amount, decimals)


def transfer_call(token: str, to: str, amount: int) -> bytes:
    """execute(token, 0, transfer(to, amount))."""
    return encode_execute(token, 0, encode_erc20_transfer(to, amount))


def approve_call(token: str, spender: str, amount: int) -> bytes:
    """execute(token, 0, approve(spender, amount))."""
    return encode_execute(token, 0, encode_erc20_approve(spender, amount))
