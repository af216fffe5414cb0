"""
WitnessBundle: the sole contract handed to the external proving service.

Encoding rules
--------------
- Byte strings are lowercase hex without a 0x prefix.
- Field elements and limbs are decimal strings.
- merkle_path always has exactly eight entries.
- The signature and public_key shapes are determined by `algorithm`.
- Every dump uses the wire names (signature.bytes), including plain
  model_dump() and model_dump_json().

The bundle is transient. It is produced per document and never stored
as mutable state.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


HEX32 = r"^[0-9a-f]{64}$"
HEX256 = r"^[0-9a-f]{512}$"
DECIMAL = r"^(0|[1-9][0-9]*)$"


# ---------------------------------------------------------------------------
# Signature shapes
# ---------------------------------------------------------------------------

class EcdsaSignatureWitness(BaseModel):
    r: str = Field(..., pattern=HEX32)
    s: str = Field(..., pattern=HEX32)

    model_config = ConfigDict(frozen=True, extra="forbid")


class RsaSignatureWitness(BaseModel):
    signature_bytes: str = Field(..., alias="bytes", pattern=HEX256)

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_by_name=True,
        serialize_by_alias=True,
    )


# ---------------------------------------------------------------------------
# Public key shapes
# ---------------------------------------------------------------------------

class EcdsaKeyWitness(BaseModel):
    x: str = Field(..., pattern=HEX32)
    y: str = Field(..., pattern=HEX32)

    model_config = ConfigDict(frozen=True, extra="forbid")


class RsaKeyWitness(BaseModel):
    modulus_limbs: List[str] = Field(..., min_length=18, max_length=18)
    redc_limbs: List[str] = Field(..., min_length=18, max_length=18)
    exponent: int = Field(..., gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------

class WitnessBundle(BaseModel):
    doc_hash: str = Field(..., pattern=HEX32)
    signed_attrs_hash: str = Field(..., pattern=HEX32)

    algorithm: Literal["ecdsa-p256", "rsa-2048"]
    signature: Union[EcdsaSignatureWitness, RsaSignatureWitness]
    public_key: Union[EcdsaKeyWitness, RsaKeyWitness]

    signer_fingerprint: str = Field(..., pattern=DECIMAL)
    trust_root: str = Field(..., pattern=DECIMAL)
    merkle_path: List[str] = Field(..., min_length=8, max_length=8)
    leaf_index: str = Field(..., pattern=DECIMAL)

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        serialize_by_alias=True,
    )

    @model_validator(mode="after")
    def shapes_match_algorithm(self) -> "WitnessBundle":
        if self.algorithm == "ecdsa-p256":
            expected = (EcdsaSignatureWitness, EcdsaKeyWitness)
        else:
            expected = (RsaSignatureWitness, RsaKeyWitness)

        if not isinstance(self.signature, expected[0]):
            raise ValueError(
                f"signature shape does not match algorithm {self.algorithm}"
            )
        if not isinstance(self.public_key, expected[1]):
            raise ValueError(
                f"public_key shape does not match algorithm {self.algorithm}"
            )
        return self

    def to_json_dict(self) -> Dict[str, Any]:
        """Serialize with the wire field names (e.g. signature.bytes)."""
        return self.model_dump(mode="json", by_alias=True)
