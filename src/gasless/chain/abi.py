"""
ABI Loader - Loads contract ABIs bundled with the package.

Single source of truth: gasless/chain/abis/*.json (artifact-shaped files with
an "abi" key). Only the fragments this package calls are kept there.
Also provides the small amount of ABI machinery the package needs:
selectors, call encoding, event topics and log decoding.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Sequence

from eth_abi import decode, encode

from ..utils import keccak256, to_bytes

ABI_DIR = Path(__file__).resolve().parent / "abis"


@lru_cache(maxsize=16)
def load_abi(contract_name: str) -> list[dict[str, Any]]:
    """
    Load ABI for a contract.

    Args:
        contract_name: Contract name (e.g., "EntryPoint", "ERC20")

    Returns:
        ABI as a list of dicts

    Raises:
        FileNotFoundError: If ABI file not found
    """
    abi_path = ABI_DIR / f"{contract_name}.json"
    if not abi_path.exists():
        raise FileNotFoundError(f"ABI not found: {abi_path}")

    with abi_path.open("r", encoding="utf-8") as f:
        artifact = json.load(f)

    return artifact["abi"]


def entry_point_abi() -> list[dict[str, Any]]:
    """Load EntryPoint v0.7 ABI."""
    return load_abi("EntryPoint")


def account_abi() -> list[dict[str, Any]]:
    """Load SimpleAccount ABI."""
    return load_abi("SimpleAccount")


def erc20_abi() -> list[dict[str, Any]]:
    """Load ERC-20 ABI."""
    return load_abi("ERC20")


def find_entry(abi: Sequence[dict], name: str, kind: str = "function") -> dict[str, Any]:
    for entry in abi:
        if entry.get("type") == kind and entry.get("name") == name:
            return entry
    raise ValueError(f"{kind.capitalize()} {name} not found in ABI")


def canonical_type(param: dict[str, Any]) -> str:
    """Expand ``tuple`` params into their ``(t1,t2,...)`` form, keeping array suffixes."""
    kind = param["type"]
    if not kind.startswith("tuple"):
        return kind
    inner = ",".join(canonical_type(c) for c in param.get("components", []))
    return f"({inner}){kind[len('tuple'):]}"


def input_types(entry: dict[str, Any]) -> list[str]:
    return [canonical_type(p) for p in entry.get("inputs", [])]


def signature(entry: dict[str, Any]) -> str:
    return f"{entry['name']}({','.join(input_types(entry))})"


def selector(sig: str) -> bytes:
    """First 4 bytes of keccak256 of a canonical signature."""
    return keccak256(sig.encode("utf-8"))[:4]


def encode_call(abi: Sequence[dict], function_name: str, args: Sequence[Any]) -> str:
    """
    ABI-encode a function call.

    Returns:
        0x-prefixed hex encoded calldata
    """
    func = find_entry(abi, function_name)
    types = input_types(func)
    encoded_args = encode(types, list(args)) if types else b""
    return "0x" + selector(signature(func)).hex() + encoded_args.hex()


def decode_result(abi: Sequence[dict], function_name: str, data: str) -> Any:
    """
    ABI-decode a function call result.

    Returns:
        Decoded result (single value or tuple), None for functions with no outputs
    """
    func = find_entry(abi, function_name)
    output_types = [canonical_type(o) for o in func.get("outputs", [])]
    if not output_types:
        return None

    decoded = decode(output_types, to_bytes(data))
    if len(decoded) == 1:
        return decoded[0]
    return decoded


def event_topic(abi: Sequence[dict], event_name: str) -> str:
    entry = find_entry(abi, event_name, kind="event")
    return "0x" + keccak256(signature(entry).encode("utf-8")).hex()


def decode_event(abi: Sequence[dict], event_name: str, log: dict[str, Any]) -> Optional[dict[str, Any]]:
    """
    Decode a raw log against an event, or return None when the topic differs.

    Indexed static params are read from topics; the rest from ``data``.
    """
    entry = find_entry(abi, event_name, kind="event")
    topics = [t.lower() for t in log.get("topics", [])]
    if not topics or topics[0] != event_topic(abi, event_name):
        return None

    indexed = [p for p in entry["inputs"] if p.get("indexed")]
    plain = [p for p in entry["inputs"] if not p.get("indexed")]

    result: dict[str, Any] = {}
    for param, topic in zip(indexed, topics[1:]):
        (value,) = decode([canonical_type(param)], to_bytes(topic))
        result[param["name"]] = value

    values = decode([canonical_type(p) for p in plain], to_bytes(log.get("data", "0x")))
    for param, value in zip(plain, values):
        result[param["name"]] = value
    return result


def error_selectors(abi: Sequence[dict]) -> dict[bytes, dict[str, Any]]:
    return {selector(signature(e)): e for e in abi if e.get("type") == "error"}


@lru_cache(maxsize=1)
def entry_point_errors() -> dict[bytes, dict[str, Any]]:
    """EntryPoint custom errors keyed by selector."""
    return error_selectors(entry_point_abi())
