"""
BigNum codec for the RSA-2048 branch.

The external circuit represents 2048-bit integers as 18 limbs of 120 bits
each, least-significant limb first. This module converts fixed-width
big-endian buffers into that representation and precomputes the
parameters the circuit needs for modular reduction.

Reduction convention:
    Barrett. The reduction constant is

        floor(2^(2 * 2048 + 4) / N)

    where the extra 4 bits are the circuit's Barrett overflow allowance.
    Montgomery parameters (R^2 mod N) are NOT produced. The two are not
    interchangeable, and a constant computed under the wrong convention
    only surfaces as a proving failure downstream.

Preconditions (fail fast, naming expected vs. actual):
    - RSA values are exactly 256 bytes
    - the public exponent lies strictly within (0, 2^17)
"""

from __future__ import annotations

import logging
from typing import List

from pydantic import BaseModel, ConfigDict

from attestor.app.errors import SizeConstraintError
from attestor.app.schemas.material import RsaKey, RsaSignature

logger = logging.getLogger(__name__)


LIMB_BITS = 120
NUM_LIMBS = 18
LIMB_MASK = (1 << LIMB_BITS) - 1

RSA_MODULUS_BITS = 2048
RSA_BYTES = RSA_MODULUS_BITS // 8

BARRETT_OVERFLOW_BITS = 4
MAX_EXPONENT = 1 << 17


class ReductionParams(BaseModel):
    double_modulus: List[int]
    reduction_constant: List[int]

    model_config = ConfigDict(frozen=True, extra="forbid")


class RsaKeyLimbs(BaseModel):
    """Limb form of an RSA public key as consumed by the circuit."""

    modulus_limbs: List[int]
    redc_limbs: List[int]
    double_modulus_limbs: List[int]
    exponent: int

    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Limb conversion
# ---------------------------------------------------------------------------

def int_to_limbs(value: int) -> List[int]:
    """Split a non-negative integer into NUM_LIMBS little-endian limbs."""
    if value < 0:
        raise ValueError("limb decomposition requires a non-negative value")
    if value.bit_length() > LIMB_BITS * NUM_LIMBS:
        raise SizeConstraintError(
            "limb value",
            f"<= {LIMB_BITS * NUM_LIMBS} bits",
            f"{value.bit_length()} bits",
        )

    return [
        (value >> (LIMB_BITS * i)) & LIMB_MASK
        for i in range(NUM_LIMBS)
    ]


def limbs_to_int(limbs: List[int]) -> int:
    if len(limbs) != NUM_LIMBS:
        raise SizeConstraintError(
            "limbs", f"{NUM_LIMBS} limbs", f"{len(limbs)} limbs"
        )

    value = 0
    for i, limb in enumerate(limbs):
        if not 0 <= limb <= LIMB_MASK:
            raise SizeConstraintError(
                f"limb[{i}]", f"< 2^{LIMB_BITS}", str(limb)
            )
        value |= limb << (LIMB_BITS * i)
    return value


def to_limbs(data: bytes, *, field: str = "value") -> List[int]:
    """
    Convert a 256-byte big-endian buffer into 18 little-endian limbs.

    Raises SizeConstraintError if the buffer is not exactly 256 bytes.
    """
    if len(data) != RSA_BYTES:
        raise SizeConstraintError(
            field, f"{RSA_BYTES} bytes", f"{len(data)} bytes"
        )
    return int_to_limbs(int.from_bytes(data, "big"))


# ---------------------------------------------------------------------------
# Reduction parameters
# ---------------------------------------------------------------------------

def barrett_constant(modulus: int) -> int:
    if modulus <= 0:
        raise ValueError("modulus must be positive")
    return (1 << (2 * RSA_MODULUS_BITS + BARRETT_OVERFLOW_BITS)) // modulus


def reduction_params(modulus_limbs: List[int]) -> ReductionParams:
    """Return 2N and the Barrett constant, both as limbs."""
    modulus = limbs_to_int(modulus_limbs)
    if modulus == 0:
        raise SizeConstraintError("modulus", "non-zero", "0")

    return ReductionParams(
        double_modulus=int_to_limbs(2 * modulus),
        reduction_constant=int_to_limbs(barrett_constant(modulus)),
    )


def check_exponent(exponent: int) -> int:
    if not 0 < exponent < MAX_EXPONENT:
        raise SizeConstraintError(
            "exponent",
            f"0 < e < {MAX_EXPONENT}",
            str(exponent),
        )
    return exponent


# ---------------------------------------------------------------------------
# Key and signature encoding
# ---------------------------------------------------------------------------

def encode_rsa_key(key: RsaKey) -> RsaKeyLimbs:
    modulus_limbs = to_limbs(key.modulus, field="modulus")
    params = reduction_params(modulus_limbs)
    exponent = check_exponent(key.exponent)

    logger.debug(
        "Encoded RSA key: exponent=%d top_limb=%x",
        exponent,
        modulus_limbs[-1],
    )

    return RsaKeyLimbs(
        modulus_limbs=modulus_limbs,
        redc_limbs=params.reduction_constant,
        double_modulus_limbs=params.double_modulus,
        exponent=exponent,
    )


def signature_limbs(signature: RsaSignature) -> List[int]:
    return to_limbs(signature.value, field="signature")
