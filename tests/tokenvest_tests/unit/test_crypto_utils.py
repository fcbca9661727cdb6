"""
Unit tests for permit signing helpers.
"""

import pytest

from tokenvest.core.crypto_utils import (
    address_from_public_key,
    generate_secp256k1_keypair_hex,
    is_canonical_signature,
    permit_digest,
    sign_message_hex,
    verify_signature_hex,
)

_CURVE_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

LEDGER = "0x" + "1e" * 20
OWNER = "0x" + "a1" * 20
SPENDER = "0x" + "b0" * 20


@pytest.fixture
def keypair():
    return generate_secp256k1_keypair_hex()


class TestPermitDigest:
    def test_digest_is_deterministic(self):
        assert permit_digest(LEDGER, OWNER, SPENDER, 500, 0, 100) == permit_digest(
            LEDGER, OWNER, SPENDER, 500, 0, 100
        )
        assert len(permit_digest(LEDGER, OWNER, SPENDER, 500, 0, 100)) == 32

    @pytest.mark.parametrize(
        "changed",
        [
            ("0x" + "2e" * 20, OWNER, SPENDER, 500, 0, 100),
            (LEDGER, SPENDER, OWNER, 500, 0, 100),
            (LEDGER, OWNER, SPENDER, 501, 0, 100),
            (LEDGER, OWNER, SPENDER, 500, 1, 100),
            (LEDGER, OWNER, SPENDER, 500, 0, 101),
        ],
    )
    def test_every_field_is_bound(self, changed):
        assert permit_digest(*changed) != permit_digest(LEDGER, OWNER, SPENDER, 500, 0, 100)

    def test_ledger_digest_matches_helper(self, ledger, accounts):
        expected = permit_digest(ledger.address, accounts.alice, accounts.bob, 7, 3, 99)
        assert ledger.permit_digest(accounts.alice.upper(), accounts.bob, 7, 3, 99) == expected


class TestSignatures:
    def test_sign_and_verify(self, keypair):
        private_hex, public_hex = keypair
        digest = permit_digest(LEDGER, address_from_public_key(public_hex), SPENDER, 1, 0, 10)

        signature = sign_message_hex(private_hex, digest)

        assert len(bytes.fromhex(signature)) == 64
        assert verify_signature_hex(public_hex, digest, signature) is True

    def test_tampered_digest_is_rejected(self, keypair):
        private_hex, public_hex = keypair
        signature = sign_message_hex(private_hex, permit_digest(LEDGER, OWNER, SPENDER, 1, 0, 10))

        assert verify_signature_hex(public_hex, permit_digest(LEDGER, OWNER, SPENDER, 2, 0, 10), signature) is False

    def test_high_s_signature_is_rejected(self, keypair):
        private_hex, public_hex = keypair
        digest = permit_digest(LEDGER, OWNER, SPENDER, 1, 0, 10)
        raw = bytes.fromhex(sign_message_hex(private_hex, digest))
        r, s = int.from_bytes(raw[:32], "big"), int.from_bytes(raw[32:], "big")
        malleated = (r.to_bytes(32, "big") + (_CURVE_ORDER - s).to_bytes(32, "big")).hex()

        assert is_canonical_signature(r, s) is True
        assert verify_signature_hex(public_hex, digest, malleated) is False

    @pytest.mark.parametrize("signature", ["", "zz", "00" * 63, "00" * 64])
    def test_malformed_signature_is_rejected(self, keypair, signature):
        _, public_hex = keypair
        assert verify_signature_hex(public_hex, b"\x00" * 32, signature) is False

    def test_malformed_public_key_is_rejected(self, keypair):
        private_hex, _ = keypair
        signature = sign_message_hex(private_hex, b"\x01" * 32)
        assert verify_signature_hex("00" * 64, b"\x01" * 32, signature) is False
        assert verify_signature_hex("abcd", b"\x01" * 32, signature) is False


def test_address_is_last_twenty_bytes(keypair):
    _, public_hex = keypair
    address = address_from_public_key(public_hex)
    assert address.startswith("0x")
    assert len(address) == 42
    assert address == address_from_public_key(public_hex)
