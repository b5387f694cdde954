"""
Chain access layer.

Provides the JSON-RPC client, bundled ABI fragments, and relayer transaction
helpers used to talk to the node, the bundler and the EntryPoint.

Uses httpx + eth-account + eth-abi instead of the heavyweight web3.py.
"""
