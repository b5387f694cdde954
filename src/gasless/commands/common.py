"""Shared option groups and error reporting for CLI commands."""

from __future__ import annotations

import sys
from typing import Callable, NoReturn

import click

from ..chain.rpc import RpcError, RpcTransportError
from ..config import NetworkConfig
from ..userop.errors import ConfigError, GaslessError, OperationRevertedError, SubmissionError


def network_options(func: Callable) -> Callable:
    """--rpc-url / --bundler-url / --entry-point / --chain-id overrides."""
    options = [
        click.option("--rpc-url", envvar="GASLESS_RPC_URL", default=None, help="Node JSON-RPC URL"),
        click.option("--bundler-url", envvar="GASLESS_BUNDLER_URL", default=None, help="Bundler JSON-RPC URL"),
        click.option("--entry-point", default=None, help="EntryPoint address (default: v0.7)"),
        click.option("--chain-id", type=int, default=None, help="Chain ID the operation is bound to"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def load_config(ctx: click.Context, **overrides) -> NetworkConfig:
    """NetworkConfig from the environment with command-line overrides applied."""
    env_file = (ctx.obj or {}).get("env_file")
    try:
        return NetworkConfig.from_env(env_file).with_overrides(**overrides)
    except ConfigError as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(2)


def fail(exc: Exception) -> NoReturn:
    """Report a pipeline failure with its stage and exit non-zero."""
    if isinstance(exc, OperationRevertedError):
        click.secho(f"REVERTED: {exc}", fg="red")
        receipt = exc.receipt
        if receipt.transaction_hash:
            click.echo(f"  TX: {receipt.transaction_hash}")
    elif isinstance(exc, SubmissionError):
        click.secho(f"Submission failed: {exc.message}", fg="red")
        if exc.code is not None:
            click.echo(f"  Code: {exc.code}")
        if exc.reason is not None:
            click.echo(f"  Reason: {exc.reason}")
    elif isinstance(exc, GaslessError):
        click.secho(f"ERROR [{exc.stage}]: {exc}", fg="red")
    elif isinstance(exc, (RpcError, RpcTransportError)):
        click.secho(f"RPC error: {exc}", fg="red")
    else:
        click.secho(f"ERROR: {exc}", fg="red")
    sys.exit(1)
