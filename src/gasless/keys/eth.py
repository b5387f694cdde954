"""
ECDSA / secp256k1 Key Management and UserOperation signing.

This module handles the two Ethereum keys the pipeline needs:
- The account owner key, which signs UserOperation hashes
- The relayer key, which pays for direct ``handleOps`` transactions

Keys are read from the environment or from ~/.gasless/.env
(OWNER_PRIVATE_KEY, RELAYER_PRIVATE_KEY).

UserOperation hashes are signed with the raw secp256k1 primitive over the
32-byte digest. The EntryPoint hands the account the unprefixed hash and
SimpleAccount recovers against it, so an EIP-191 ("personal_sign")
signature over the same digest is valid ECDSA but fails validation (AA24).

Dependencies: eth-account (lightweight, no full web3.py needed)
"""

from __future__ import annotations

import enum
import os
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_keys import keys

from ..userop.errors import ConfigError, SigningError

# Default config directory
GASLESS_DIR = Path.home() / ".gasless"
GASLESS_ENV = GASLESS_DIR / ".env"

OWNER_KEY_VAR = "OWNER_PRIVATE_KEY"
RELAYER_KEY_VAR = "RELAYER_PRIVATE_KEY"

SIGNATURE_LENGTH = 65


class SigningScheme(str, enum.Enum):
    RAW = "raw"
    EIP191 = "eip191"


def resolve_signing_scheme(value: Union[str, SigningScheme, None]) -> SigningScheme:
    """
    Validate a configured signing scheme.

    Only ``raw`` is accepted; ``eip191`` is recognised so that it can be
    rejected with a clear message rather than silently producing
    signatures the EntryPoint will refuse.
    """
    if value is None:
        return SigningScheme.RAW
    try:
        scheme = SigningScheme(str(getattr(value, "value", value)).lower())
    except ValueError as exc:
        raise ConfigError(f"Unknown signing scheme: {value!r}") from exc
    if scheme is not SigningScheme.RAW:
        raise ConfigError(
            "Signing scheme 'eip191' is not supported: the EntryPoint verifies "
            "the raw UserOperation hash. Use 'raw'."
        )
    return scheme


def load_private_key(var: str = OWNER_KEY_VAR, env_path: Optional[Path] = None) -> str:
    """
    Load a private key from .env file or environment.

    Args:
        var: Environment variable name (OWNER_PRIVATE_KEY / RELAYER_PRIVATE_KEY)
        env_path: Path to .env file (default: ~/.gasless/.env)

    Returns:
        0x-prefixed hex private key

    Raises:
        ValueError: If the variable is not set
    """
    env_path = env_path or GASLESS_ENV

    if env_path.exists():
        load_dotenv(env_path, override=False)

    private_key = os.environ.get(var)
    if not private_key:
        raise ValueError(f"{var} not found. Set it in the environment or in {env_path}")

    # Ensure 0x prefix
    if not private_key.startswith("0x"):
        private_key = "0x" + private_key

    return private_key


def get_account(private_key: Optional[str] = None, var: str = OWNER_KEY_VAR) -> LocalAccount:
    """
    Get an eth-account LocalAccount from a private key.

    Args:
        private_key: 0x-prefixed hex private key.
                     If None, loads ``var`` from the environment / .env.
    """
    if private_key is None:
        private_key = load_private_key(var)
    return Account.from_key(private_key)


def get_address(private_key: Optional[str] = None, var: str = OWNER_KEY_VAR) -> str:
    """0x-prefixed checksummed Ethereum address for a private key."""
    return get_account(private_key, var).address


def sign_user_op_hash(
    user_op_hash: bytes,
    private_key: str,
    scheme: Union[str, SigningScheme, None] = SigningScheme.RAW,
) -> bytes:
    """
    Sign a UserOperation hash with the account owner's key.

    Args:
        user_op_hash: 32-byte hash as returned by EntryPoint.getUserOpHash
        private_key: 0x-prefixed hex owner key
        scheme: Must resolve to ``raw``

    Returns:
        Signature as bytes (65 bytes: r + s + v, v in {27, 28})
    """
    resolve_signing_scheme(scheme)
    if len(user_op_hash) != 32:
        raise SigningError(f"UserOperation hash must be 32 bytes, got {len(user_op_hash)}")

    try:
        account = Account.from_key(private_key)
    except (ValueError, TypeError) as exc:
        raise SigningError(f"Invalid owner key: {exc}") from exc

    signed = account.unsafe_sign_hash(user_op_hash)
    signature = bytes(signed.signature)
    if len(signature) != SIGNATURE_LENGTH:
        raise SigningError(f"Expected a 65-byte signature, got {len(signature)}")
    return signature


def recover_signer(digest: bytes, signature: bytes) -> str:
    """Recover the checksummed address that produced ``signature`` over ``digest``."""
    if len(signature) != SIGNATURE_LENGTH:
        raise SigningError(f"Expected a 65-byte signature, got {len(signature)}")
    v = signature[64]
    if v >= 27:
        v -= 27
    sig = keys.Signature(signature_bytes=signature[:64] + bytes([v]))
    return sig.recover_public_key_from_msg_hash(digest).to_checksum_address()
