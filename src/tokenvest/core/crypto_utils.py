"""
Signing primitives for ledger permits.

A permit lets a token owner approve a spender off-line: the owner signs a
digest that binds the ledger address, owner, spender, value, the owner's next
nonce and a deadline. Anyone can then submit the permit; the ledger checks
that the public key hashes to the owner's address and that the signature
verifies.

Keys are secp256k1, exchanged as hex. Public keys are the 64-byte x||y
encoding without the 0x04 prefix; signatures are 64-byte r||s with low S.
"""

from __future__ import annotations

import hashlib

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

_CURVE = ec.SECP256K1()
_CURVE_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)
_HALF_ORDER = _CURVE_ORDER // 2
_SIGNATURE_ALGORITHM = ec.ECDSA(hashes.SHA256())

PERMIT_DOMAIN = "tokenvest-permit-v1"

# ==================== Keys and Addresses ====================

def generate_secp256k1_keypair_hex() -> tuple[str, str]:
    """Create a fresh (private_hex, public_hex) pair."""
    private_key = ec.generate_private_key(_CURVE)
    numbers = private_key.public_key().public_numbers()
    private_hex = private_key.private_numbers().private_value.to_bytes(32, "big").hex()
    public_hex = (numbers.x.to_bytes(32, "big") + numbers.y.to_bytes(32, "big")).hex()
    return private_hex, public_hex

def load_private_key_from_hex(private_hex: str) -> ec.EllipticCurvePrivateKey:
    value = int(private_hex, 16) % _CURVE_ORDER or 1
    return ec.derive_private_key(value, _CURVE)

def load_public_key_from_hex(public_hex: str) -> ec.EllipticCurvePublicKey:
    raw = bytes.fromhex(public_hex)
    if len(raw) != 64:
        raise ValueError("Public key hex must be 64 bytes (uncompressed without prefix).")
    return ec.EllipticCurvePublicKey.from_encoded_point(_CURVE, b"\x04" + raw)

def address_from_public_key(public_hex: str) -> str:
    """Ledger address owned by a public key: last 20 bytes of its SHA3-256."""
    digest = hashlib.sha3_256(bytes.fromhex(public_hex)).digest()
    return "0x" + digest[-20:].hex()

# ==================== Permit Digest ====================

def permit_digest(
    ledger_address: str,
    owner: str,
    spender: str,
    value: int,
    nonce: int,
    deadline: int,
) -> bytes:
    """
    Digest an owner signs to authorize a permit.

    Addresses are expected in normalized (lowercase) form. The ledger address
    and nonce make a signature valid for one ledger and one use only.

    Returns:
        32-byte SHA3-256 digest
    """
    message = f"{PERMIT_DOMAIN}:{ledger_address}:{owner}:{spender}:{value}:{nonce}:{deadline}"
    return hashlib.sha3_256(message.encode()).digest()

# ==================== Signatures ====================

def is_canonical_signature(r: int, s: int) -> bool:
    """True if both components are in range and S is in the lower half."""
    return 1 <= r < _CURVE_ORDER and 1 <= s <= _HALF_ORDER

def _encode_raw_signature(r: int, s: int) -> str:
    return (r.to_bytes(32, "big") + s.to_bytes(32, "big")).hex()

def _decode_raw_signature(signature_hex: str) -> tuple[int, int]:
    raw = bytes.fromhex(signature_hex)
    if len(raw) != 64:
        raise ValueError("Signature hex must be 64 bytes (r||s).")
    return int.from_bytes(raw[:32], "big"), int.from_bytes(raw[32:], "big")

def sign_message_hex(private_hex: str, message: bytes) -> str:
    """Sign message and return a low-S r||s signature."""
    der_signature = load_private_key_from_hex(private_hex).sign(message, _SIGNATURE_ALGORITHM)
    r, s = decode_dss_signature(der_signature)
    if s > _HALF_ORDER:
        s = _CURVE_ORDER - s
    return _encode_raw_signature(r, s)

def verify_signature_hex(public_hex: str, message: bytes, signature_hex: str) -> bool:
    """
    Check an r||s signature against a public key.

    Malformed keys or signatures and high-S signatures verify as False rather
    than raising, so a permit with garbage input is simply rejected.
    """
    try:
        public_key = load_public_key_from_hex(public_hex)
        r, s = _decode_raw_signature(signature_hex)
    except ValueError:
        return False
    if not is_canonical_signature(r, s):
        return False
    try:
        public_key.verify(encode_dss_signature(r, s), message, _SIGNATURE_ALGORITHM)
    except InvalidSignature:
        return False
    return True
