"""
Signer fingerprints and their accumulator field form.

Canonical key encodings (frozen byte layouts):

    ECDSA P-256:  X || Y                                   (64 bytes)
    RSA-2048:     limb[0] || ... || limb[17] || exponent   (292 bytes)
                  each limb as 16-byte big-endian,
                  exponent as 4-byte big-endian u32

The fingerprint is SHA-256 over the canonical encoding. Reordering any
part of a layout silently breaks allow-list matching, so both layouts are
fixed here and nowhere else.

The field form is the digest read as a big-endian integer and reduced
modulo the BN254 scalar field. The reduction is lossy; byte-form and
field-form fingerprints are never compared against each other.
"""

from __future__ import annotations

from attestor.app.codec.bignum import to_limbs
from attestor.app.errors import SizeConstraintError
from attestor.app.schemas.material import (
    EcdsaKey,
    Fingerprint,
    PublicKeyMaterial,
    RsaKey,
)
from attestor.app.utils.hashing import bytes_to_field, sha256_digest


EC_COORDINATE_BYTES = 32
LIMB_SERIALIZED_BYTES = 16
EXPONENT_SERIALIZED_BYTES = 4


def canonical_key_bytes(public_key: PublicKeyMaterial) -> bytes:
    if isinstance(public_key, EcdsaKey):
        for name, coord in (("x", public_key.x), ("y", public_key.y)):
            if len(coord) != EC_COORDINATE_BYTES:
                raise SizeConstraintError(
                    f"ec {name}",
                    f"{EC_COORDINATE_BYTES} bytes",
                    f"{len(coord)} bytes",
                )
        return public_key.x + public_key.y

    if isinstance(public_key, RsaKey):
        if not 0 <= public_key.exponent < (1 << 32):
            raise SizeConstraintError(
                "exponent", "u32", str(public_key.exponent)
            )

        out = bytearray()
        for limb in to_limbs(public_key.modulus, field="modulus"):
            out += limb.to_bytes(LIMB_SERIALIZED_BYTES, "big")
        out += public_key.exponent.to_bytes(EXPONENT_SERIALIZED_BYTES, "big")
        return bytes(out)

    raise TypeError(
        f"Unsupported public key material: {type(public_key).__name__}"
    )


def to_field(fingerprint_bytes: bytes) -> int:
    if len(fingerprint_bytes) != 32:
        raise SizeConstraintError(
            "fingerprint", "32 bytes", f"{len(fingerprint_bytes)} bytes"
        )
    return bytes_to_field(fingerprint_bytes)


def fingerprint_from_digest(digest: bytes) -> Fingerprint:
    return Fingerprint(digest=bytes(digest), field=to_field(digest))


def fingerprint(public_key: PublicKeyMaterial) -> Fingerprint:
    return fingerprint_from_digest(
        sha256_digest(canonical_key_bytes(public_key))
    )
