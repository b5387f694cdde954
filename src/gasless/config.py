"""
Network configuration.

One explicit record (chain id, EntryPoint, bundler, paymaster, gas floors)
is passed through the builder and the submitters; nothing downstream reads
the environment or embeds contract addresses.

Values come from the environment, optionally seeded from a .env file:

  GASLESS_RPC_URL, GASLESS_CHAIN_ID, GASLESS_ENTRY_POINT,
  GASLESS_BUNDLER_URL, GASLESS_PAYMASTER, GASLESS_GAS_TOKEN,
  GASLESS_PRIORITY_FEE_GWEI, GASLESS_RPC_TIMEOUT, GASLESS_SIGNING_SCHEME
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .keys.eth import GASLESS_ENV, SigningScheme, resolve_signing_scheme
from .userop.errors import ConfigError
from .utils import to_checksum_address

GWEI = 10**9

# EntryPoint v0.7 is deployed at the same address on every chain.
ENTRY_POINT_V07 = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"

DEFAULT_RPC_URL = "https://rpc.sepolia.org"
DEFAULT_CHAIN_ID = 11155111  # Sepolia

_LOCAL_HASH_VERSIONS = ("0.7",)


@dataclass(frozen=True)
class NetworkConfig:
    rpc_url: str = DEFAULT_RPC_URL
    chain_id: int = DEFAULT_CHAIN_ID
    entry_point: str = ENTRY_POINT_V07
    entry_point_version: str = "0.7"
    bundler_url: Optional[str] = None
    paymaster: Optional[str] = None
    gas_token: Optional[str] = None

    # Gas floors
    verification_gas_limit: int = 150_000
    call_gas_limit: int = 150_000
    pre_verification_gas: int = 100_000
    paymaster_verification_gas_limit: int = 100_000
    paymaster_post_op_gas_limit: int = 0

    # Fees
    priority_fee_wei: int = GWEI // 10
    base_fee_floor_wei: int = GWEI // 1000
    fee_buffer_wei: int = GWEI // 1000

    rpc_timeout: float = 30.0
    signing_scheme: SigningScheme = SigningScheme.RAW

    def __post_init__(self) -> None:
        if self.chain_id <= 0:
            raise ConfigError(f"chain_id must be positive, got {self.chain_id}")
        if self.rpc_timeout <= 0:
            raise ConfigError(f"rpc_timeout must be positive, got {self.rpc_timeout}")
        object.__setattr__(self, "signing_scheme", resolve_signing_scheme(self.signing_scheme))
        for name in ("entry_point", "paymaster", "gas_token"):
            value = getattr(self, name)
            if value is None:
                continue
            try:
                object.__setattr__(self, name, to_checksum_address(value))
            except ValueError as exc:
                raise ConfigError(f"Invalid {name}: {exc}") from exc

    @property
    def supports_local_hash(self) -> bool:
        return self.entry_point_version in _LOCAL_HASH_VERSIONS

    def with_overrides(self, **changes) -> "NetworkConfig":
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> "NetworkConfig":
        """
        Build a config from GASLESS_* environment variables.

        Args:
            env_path: .env file to load first (default: ~/.gasless/.env).
                      Variables already set in the environment win.
        """
        env_path = env_path or GASLESS_ENV
        if env_path.exists():
            load_dotenv(env_path, override=False)

        env = os.environ
        kwargs: dict = {
            "rpc_url": env.get("GASLESS_RPC_URL", DEFAULT_RPC_URL),
            "chain_id": _int_var("GASLESS_CHAIN_ID", DEFAULT_CHAIN_ID),
            "entry_point": env.get("GASLESS_ENTRY_POINT", ENTRY_POINT_V07),
            "entry_point_version": env.get("GASLESS_ENTRY_POINT_VERSION", "0.7"),
            "bundler_url": env.get("GASLESS_BUNDLER_URL") or None,
            "paymaster": env.get("GASLESS_PAYMASTER") or None,
            "gas_token": env.get("GASLESS_GAS_TOKEN") or None,
            "signing_scheme": env.get("GASLESS_SIGNING_SCHEME", SigningScheme.RAW.value),
        }
        if env.get("GASLESS_PRIORITY_FEE_GWEI"):
            kwargs["priority_fee_wei"] = _gwei_var("GASLESS_PRIORITY_FEE_GWEI")
        if env.get("GASLESS_RPC_TIMEOUT"):
            try:
                kwargs["rpc_timeout"] = float(env["GASLESS_RPC_TIMEOUT"])
            except ValueError as exc:
                raise ConfigError(f"GASLESS_RPC_TIMEOUT is not a number: {exc}") from exc
        return cls(**kwargs)


def _int_var(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw, 0)
    except ValueError as exc:
        raise ConfigError(f"{name} is not an integer: {raw!r}") from exc


def _gwei_var(name: str) -> int:
    raw = os.environ[name]
    try:
        return int(Decimal(raw) * GWEI)
    except InvalidOperation as exc:
        raise ConfigError(f"{name} is not a number: {raw!r}") from exc
