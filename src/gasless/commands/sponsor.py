"""
Sponsored token operations.

Flow:
1. Load the owner key and resolve the token amount
2. Build the UserOperation (fresh nonce, fee floors, paymaster data)
3. Hash via the EntryPoint and sign the raw digest
4. Submit through the bundler, handleOps, or bundler-then-handleOps
5. Poll for the receipt and report success or the decoded revert
"""

from __future__ import annotations

import sys
from typing import Callable, Optional

import click

from ..chain.rpc import RpcError, RpcTransportError
from ..keys.eth import get_address, load_private_key
from ..userop.calls import approve_call, token_amount, transfer_call
from ..userop.errors import GaslessError
from ..userop.hashing import HashStrategy
from ..userop.pipeline import SponsoredResult, TransportMode, send_sponsored
from ..userop.retry import RetryPolicy
from ..utils import format_units
from .common import fail, load_config, network_options


def sponsor_options(func: Callable) -> Callable:
    options = [
        click.option("--sender", envvar="GASLESS_SENDER", required=True, help="Smart account address"),
        click.option("--token", default=None, help="ERC-20 token (default: GASLESS_GAS_TOKEN)"),
        click.option("--amount", required=True, help='Human-readable amount, e.g. "0.1"'),
        click.option("--decimals", type=int, default=None, help="Token decimals (default: read decimals())"),
        click.option(
            "--transport",
            type=click.Choice([m.value for m in TransportMode]),
            default=TransportMode.BUNDLER.value,
            show_default=True,
            help="bundler, direct handleOps, or bundler with handleOps fallback",
        ),
        click.option("--paymaster", default=None, help="Paymaster address override"),
        click.option("--estimate-gas", is_flag=True, help="Use the bundler's gas estimate instead of floors"),
        click.option("--verify-hash", is_flag=True, help="Cross-check the EntryPoint hash against a local one"),
        click.option("--nonce", type=int, default=None, help="Explicit nonce (default: read from EntryPoint)"),
        click.option("--no-wait", is_flag=True, help="Return after submission without polling"),
        click.option("--timeout", type=float, default=180.0, show_default=True, help="Confirmation deadline"),
    ]
    func = network_options(func)
    for option in reversed(options):
        func = option(func)
    return func


def _run(
    ctx: click.Context,
    title: str,
    build_call: Callable[[str, int], bytes],
    counterparty: str,
    sender: str,
    token: Optional[str],
    amount: str,
    decimals: Optional[int],
    transport: str,
    paymaster: Optional[str],
    estimate_gas: bool,
    verify_hash: bool,
    nonce: Optional[int],
    no_wait: bool,
    timeout: float,
    **network,
) -> None:
    click.echo(f"=== Gasless {title} ===")
    click.echo("")

    config = load_config(ctx, paymaster=paymaster, **network)

    try:
        owner_key = load_private_key()
    except ValueError as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(1)

    token = token or config.gas_token
    if not token:
        click.secho("ERROR: --token or GASLESS_GAS_TOKEN is required.", fg="red")
        sys.exit(1)

    try:
        value = token_amount(token, amount, config.rpc_url, decimals, timeout=config.rpc_timeout)
    except (ValueError, RpcError, RpcTransportError) as exc:
        click.secho(f"ERROR: Cannot resolve amount: {exc}", fg="red")
        sys.exit(1)

    click.echo(f"  Owner:     {get_address(owner_key)}")
    click.echo(f"  Sender:    {sender}")
    click.echo(f"  Token:     {token}")
    click.echo(f"  Amount:    {amount} ({value} base units)")
    click.echo(f"  Transport: {transport}")
    click.echo("")

    try:
        result: SponsoredResult = send_sponsored(
            sender,
            build_call(token, counterparty, value),
            config,
            owner_key,
            transport=transport,
            nonce=nonce,
            estimate_gas=estimate_gas,
            hash_strategy=HashStrategy.VERIFIED if verify_hash else HashStrategy.REMOTE,
            wait=not no_wait,
            retry=RetryPolicy(timeout=timeout),
        )
    except (GaslessError, RpcError, RpcTransportError, ValueError) as exc:
        fail(exc)

    click.echo(f"  Nonce:       {result.operation.nonce}")
    click.echo(f"  UserOpHash:  {result.signed.user_op_hash_hex}")
    click.echo(f"  Submitted:   {result.handle.transport.value} -> {result.handle.reference}")

    receipt = result.receipt
    if receipt is None:
        click.secho("SUBMITTED: not waiting for inclusion", fg="yellow")
        return

    click.secho("SUCCESS: operation confirmed", fg="green")
    click.echo(f"  TX:    {receipt.transaction_hash}")
    click.echo(f"  Block: {receipt.block_number}")
    if receipt.actual_gas_cost is not None:
        click.echo(f"  Paid by sponsor: {format_units(receipt.actual_gas_cost, 18)} ETH")


@click.command()
@click.option("--to", "recipient", required=True, help="Recipient address")
@sponsor_options
@click.pass_context
def transfer(ctx: click.Context, recipient: str, **kwargs) -> None:
    """
    Sponsored ERC-20 transfer from a smart account.

    Wraps token.transfer(to, amount) in account.execute(...) and lets the
    paymaster cover gas.
    """
    _run(ctx, "Transfer", transfer_call, recipient, **kwargs)


@click.command()
@click.option("--spender", required=True, help="Address allowed to spend")
@sponsor_options
@click.pass_context
def approve(ctx: click.Context, spender: str, **kwargs) -> None:
    """Sponsored ERC-20 approve from a smart account."""
    _run(ctx, "Approve", approve_call, spender, **kwargs)
