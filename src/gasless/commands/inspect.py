"""
Inspection commands.

- userop-hash: build an unsigned operation and compare the hash the
  EntryPoint computes with the local derivation
- decode-tx:   fetch a handleOps receipt and print decoded revert reasons
"""

from __future__ import annotations

import sys
from typing import Optional

import click

from ..chain.rpc import RpcError, RpcTransportError
from ..userop.builder import build_user_operation
from ..userop.errors import GaslessError
from ..userop.hashing import local_user_op_hash, remote_user_op_hash
from ..userop.receipts import fetch_transaction_receipt
from ..userop.revert import decode_revert_data
from ..utils import to_hex
from .common import fail, load_config, network_options


@click.command("userop-hash")
@click.option("--sender", envvar="GASLESS_SENDER", required=True, help="Smart account address")
@click.option("--call-data", default="0x", show_default=True, help="Account callData (hex)")
@click.option("--nonce", type=int, default=None, help="Explicit nonce (default: read from EntryPoint)")
@click.option("--unsponsored", is_flag=True, help="Build with empty paymasterAndData")
@network_options
@click.pass_context
def userop_hash(
    ctx: click.Context,
    sender: str,
    call_data: str,
    nonce: Optional[int],
    unsponsored: bool,
    **network,
) -> None:
    """
    Compare EntryPoint.getUserOpHash with the local hash.

    Exits 1 when they disagree; an operation signed over the wrong hash is
    rejected by the account without a readable reason.
    """
    config = load_config(ctx, **network)
    try:
        op = build_user_operation(sender, call_data, config, sponsored=not unsponsored, nonce=nonce)
        remote = remote_user_op_hash(op, config)
    except (GaslessError, RpcError, RpcTransportError, ValueError) as exc:
        fail(exc)

    click.echo(f"  Sender:   {op.sender}")
    click.echo(f"  Nonce:    {op.nonce}")
    click.echo(f"  Chain ID: {config.chain_id}")
    click.echo(f"  Remote:   {to_hex(remote)}")

    if not config.supports_local_hash:
        click.secho(
            f"  Local:    unavailable for EntryPoint v{config.entry_point_version}", fg="yellow"
        )
        return

    local = local_user_op_hash(op, config.entry_point, config.chain_id)
    click.echo(f"  Local:    {to_hex(local)}")
    if local == remote:
        click.secho("MATCH", fg="green")
    else:
        click.secho("MISMATCH: do not sign with the local hash", fg="red")
        sys.exit(1)


@click.command("decode-tx")
@click.argument("tx_hash")
@click.option("--user-op-hash", default=None, help="Only report this operation")
@network_options
@click.pass_context
def decode_tx(ctx: click.Context, tx_hash: str, user_op_hash: Optional[str], **network) -> None:
    """Fetch a handleOps receipt and decode its revert reasons."""
    config = load_config(ctx, **network)
    try:
        receipt = fetch_transaction_receipt(tx_hash, config, user_op_hash)
    except (RpcError, RpcTransportError) as exc:
        fail(exc)

    if receipt is None:
        click.secho(f"Transaction {tx_hash} not found (pending or unknown)", fg="yellow")
        sys.exit(1)

    click.echo(f"  TX:       {receipt.transaction_hash}")
    click.echo(f"  Block:    {receipt.block_number}")
    click.echo(f"  Gas used: {receipt.gas_used}")
    if receipt.user_op_hash:
        click.echo(f"  UserOp:   {receipt.user_op_hash}")
    if receipt.actual_gas_used is not None:
        click.echo(f"  Op gas:   {receipt.actual_gas_used}")

    if receipt.success:
        click.secho("SUCCESS", fg="green")
        return

    status = "BATCH REVERTED" if receipt.batch_reverted else "OPERATION REVERTED"
    click.secho(status, fg="red")
    click.echo(f"  Reason: {receipt.revert_reason or 'none emitted'}")
    sys.exit(1)


@click.command("decode-revert")
@click.argument("data")
def decode_revert(data: str) -> None:
    """Decode raw revert bytes (FailedOp, Error, Panic, ...)."""
    try:
        reason = decode_revert_data(data)
    except ValueError as exc:
        fail(exc)
    click.echo(str(reason))
