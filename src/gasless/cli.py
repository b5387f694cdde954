"""
Gasless CLI

Command-line interface for paymaster-sponsored ERC-4337 operations
against an EntryPoint v0.7.

Keys come from the environment or ~/.gasless/.env:
  OWNER_PRIVATE_KEY    - owner of the smart account (signs UserOperations)
  RELAYER_PRIVATE_KEY  - funded EOA for direct handleOps submission

Commands:
  transfer      - Sponsored ERC-20 transfer from a smart account
  approve       - Sponsored ERC-20 approve from a smart account
  userop-hash   - Compare EntryPoint and local UserOperation hashes
  decode-tx     - Decode revert reasons from a handleOps transaction
  decode-revert - Decode raw revert data
  whoami        - Show owner / relayer addresses
  info          - Show configuration
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from .chain.rpc import RpcError, RpcTransportError, get_balance, get_chain_id
from .commands.common import fail, load_config
from .commands.inspect import decode_revert, decode_tx, userop_hash
from .commands.sponsor import approve, transfer
from .config import NetworkConfig
from .keys.eth import GASLESS_ENV, OWNER_KEY_VAR, RELAYER_KEY_VAR, get_address
from .utils import format_units

# ============ Constants ============

VERSION = "0.3.0"


# ============ Main CLI Group ============


@click.group(invoke_without_command=True)
@click.version_option(version=VERSION, prog_name="gasless")
@click.option("--verbose", "-v", is_flag=True, help="Log pipeline stages and RPC calls")
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Load variables from this .env (default: {GASLESS_ENV})",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, env_file: Optional[Path]) -> None:
    """Gasless: paymaster-sponsored ERC-4337 operations."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        )
    ctx.ensure_object(dict)
    ctx.obj["env_file"] = env_file
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ============ Commands ============

cli.add_command(transfer)
cli.add_command(approve)
cli.add_command(userop_hash)
cli.add_command(decode_tx)
cli.add_command(decode_revert)


# ============ Identity ============


def _describe_key(var: str) -> str:
    try:
        return get_address(var=var)
    except ValueError:
        return click.style("not set", fg="yellow") + click.style(f"  ({var})", dim=True)


@cli.command()
def whoami() -> None:
    """Show owner and relayer addresses."""
    click.echo(f"Owner:   {_describe_key(OWNER_KEY_VAR)}")
    click.echo(f"Relayer: {_describe_key(RELAYER_KEY_VAR)}")


# ============ Info ============


@cli.command()
@click.option("--check", is_flag=True, help="Query the node for its chain ID and the relayer balance")
@click.pass_context
def info(ctx: click.Context, check: bool) -> None:
    """Show the effective configuration."""
    config = load_config(ctx)

    click.secho(f"  Gasless v{VERSION}", fg="cyan", bold=True)
    click.echo()
    rows = [
        ("RPC", config.rpc_url),
        ("Chain ID", str(config.chain_id)),
        ("EntryPoint", f"{config.entry_point} (v{config.entry_point_version})"),
        ("Bundler", config.bundler_url or "not configured"),
        ("Paymaster", config.paymaster or "not configured"),
        ("Gas token", config.gas_token or "none"),
        ("Signing", config.signing_scheme.value),
        ("Local hash", "available" if config.supports_local_hash else "unavailable"),
    ]
    for label, value in rows:
        click.echo(click.style(f"  {label + ':':<12}", dim=True) + click.style(value, fg="bright_white"))
    click.echo()
    click.echo(click.style("  Owner:      ", dim=True) + _describe_key(OWNER_KEY_VAR))
    click.echo(click.style("  Relayer:    ", dim=True) + _describe_key(RELAYER_KEY_VAR))

    if check:
        click.echo()
        _check_node(config)


def _check_node(config: NetworkConfig) -> None:
    try:
        relayer = get_address(var=RELAYER_KEY_VAR)
    except ValueError:
        relayer = None
    try:
        node_chain_id = get_chain_id(config.rpc_url, config.rpc_timeout)
        balance = get_balance(relayer, config.rpc_url, config.rpc_timeout) if relayer else None
    except (RpcError, RpcTransportError) as exc:
        fail(exc)

    if node_chain_id != config.chain_id:
        click.secho(f"  Node reports chain ID {node_chain_id}, configured {config.chain_id}", fg="red")
        sys.exit(1)
    click.secho(f"  Node chain ID {node_chain_id} matches", fg="green")
    if balance is not None:
        click.echo(click.style("  Relayer balance: ", dim=True) + f"{format_units(balance, 18)} ETH")


# ============ Entry Points ============


def main() -> None:
    """Gasless CLI entry point."""
    if sys.platform == "win32":
        for stream in (sys.stdout, sys.stderr):
            if hasattr(stream, "reconfigure"):
                stream.reconfigure(encoding="utf-8")
    cli()


if __name__ == "__main__":
    main()
