"""Tests for the bundled contract ABIs and the ABI helpers built on them."""

from __future__ import annotations

from gasless.chain.abi import (
    account_abi,
    entry_point_abi,
    entry_point_errors,
    erc20_abi,
    find_entry,
    selector,
    signature,
)


def names(abi: list[dict], kind: str = "function") -> set[str]:
    return {e["name"] for e in abi if e.get("type") == kind}


class TestBundledAbis:
    def test_only_called_functions_are_bundled(self) -> None:
        assert names(entry_point_abi()) == {"getUserOpHash", "handleOps", "getNonce"}
        assert names(account_abi()) == {"execute", "getNonce"}
        assert names(erc20_abi()) == {"transfer", "approve", "decimals"}

    def test_handle_ops_signature(self) -> None:
        entry = find_entry(entry_point_abi(), "handleOps")
        assert signature(entry) == (
            "handleOps((address,uint256,bytes,bytes,bytes32,uint256,bytes32,bytes,bytes)[],address)"
        )


class TestEntryPointErrors:
    def test_keyed_by_selector(self) -> None:
        errors = entry_point_errors()
        assert set(errors) == {
            selector("FailedOp(uint256,string)"),
            selector("FailedOpWithRevert(uint256,string,bytes)"),
        }
        assert errors[selector("FailedOp(uint256,string)")]["name"] == "FailedOp"
