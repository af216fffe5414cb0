"""
Hashing and field-element primitives shared by the extraction, trust
and accumulator layers.

Current scope:
- SHA-256 over raw bytes
- Reduction of digests into the accumulator scalar field
- Fixed-width integer <-> bytes conversion

Explicit non-scope:
- Canonicalization of keys or attributes (handled by callers)
- Merkle node compression (see accumulator.compression)

IMPORTANT DESIGN RULE:
- This module hashes bytes, and bytes only.
"""

import hashlib
from typing import Union


# BN254 scalar field modulus (the circuit's native field).
BN254_SCALAR_FIELD = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)


def sha256_digest(data: Union[bytes, bytearray]) -> bytes:
    """
    Compute a raw SHA-256 digest.

    Input MUST already be in its canonical byte form. No transformation
    occurs here.
    """
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(
            "sha256_digest expects bytes, "
            f"got {type(data).__name__}"
        )

    return hashlib.sha256(data).digest()


def bytes_to_field(data: bytes, modulus: int = BN254_SCALAR_FIELD) -> int:
    """Interpret data as a big-endian integer reduced modulo the field."""
    return int.from_bytes(data, "big") % modulus


def int_to_fixed_bytes(value: int, width: int) -> bytes:
    """Big-endian encoding of value, left-padded to exactly width bytes."""
    if value < 0:
        raise ValueError("negative values have no fixed-width encoding")
    return value.to_bytes(width, "big")
