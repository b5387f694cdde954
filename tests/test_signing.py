"""Tests for raw-digest signing of UserOperation hashes."""

from __future__ import annotations

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from conftest import OWNER_ADDRESS, OWNER_KEY
from gasless.keys.eth import SigningScheme, recover_signer, sign_user_op_hash
from gasless.userop.errors import ConfigError, SigningError
from gasless.utils import keccak256

DIGEST = keccak256(b"user operation")


class TestSignUserOpHash:
    def test_signature_is_65_bytes(self) -> None:
        signature = sign_user_op_hash(DIGEST, OWNER_KEY)
        assert len(signature) == 65
        assert signature[64] in (27, 28)

    def test_recovers_owner_from_raw_digest(self) -> None:
        signature = sign_user_op_hash(DIGEST, OWNER_KEY)
        assert recover_signer(DIGEST, signature) == OWNER_ADDRESS

    def test_matches_eth_account_raw_signing(self) -> None:
        expected = Account.unsafe_sign_hash(DIGEST, OWNER_KEY).signature
        assert sign_user_op_hash(DIGEST, OWNER_KEY) == bytes(expected)

    def test_personal_message_signature_recovers_elsewhere(self) -> None:
        # What the EntryPoint would see for an EIP-191 signature over the same digest.
        prefixed = Account.sign_message(encode_defunct(primitive=DIGEST), OWNER_KEY)
        assert recover_signer(DIGEST, bytes(prefixed.signature)) != OWNER_ADDRESS

    def test_deterministic(self) -> None:
        assert sign_user_op_hash(DIGEST, OWNER_KEY) == sign_user_op_hash(DIGEST, OWNER_KEY)

    def test_eip191_scheme_refused(self) -> None:
        with pytest.raises(ConfigError):
            sign_user_op_hash(DIGEST, OWNER_KEY, SigningScheme.EIP191)

    def test_rejects_non_32_byte_hash(self) -> None:
        with pytest.raises(SigningError, match="32 bytes"):
            sign_user_op_hash(b"\x00" * 31, OWNER_KEY)

    def test_rejects_bad_key(self) -> None:
        with pytest.raises(SigningError, match="owner key"):
            sign_user_op_hash(DIGEST, "0x1234")


class TestRecoverSigner:
    def test_rejects_wrong_length(self) -> None:
        with pytest.raises(SigningError):
            recover_signer(DIGEST, b"\x00" * 64)
