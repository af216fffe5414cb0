"""
Internal transport objects for signature and key material.

These objects carry raw bytes and integers between extraction, encoding
and accumulation. They are never serialized directly; the external
contract is the WitnessBundle in witness.py.

AUTHORITY
---------
- SignedDocument:
    The byte buffer and the ByteRange that selects what was signed.
    doc_hash is recomputed from the buffer, never read from the PDF.

- SignatureContainer:
    The single SignerInfo selected from the CMS container, with its
    signed attributes re-tagged to the canonical SET form.

- SignatureMaterial / PublicKeyMaterial:
    Closed sum types over the two supported families. Branches share
    no behavior, only the "kind" discriminator.

IMPORTANT
---------
Width constraints (32-byte coordinates, 256-byte RSA values) are
enforced by the code that extracts the material, which raises
SizeConstraintError. These models assume validated input.
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Signed document
# ---------------------------------------------------------------------------

class ByteRange(BaseModel):
    """Two (offset, length) segments that together form the signed input."""

    offset1: int
    length1: int
    offset2: int
    length2: int

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def segments(self) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        return (
            (self.offset1, self.length1),
            (self.offset2, self.length2),
        )


class SignedDocument(BaseModel):
    pdf_bytes: bytes = Field(..., repr=False)
    byte_range: ByteRange
    contents: bytes = Field(
        ...,
        repr=False,
        description="Raw /Contents value (CMS DER plus zero padding)",
    )
    field_name: Optional[str] = Field(
        None,
        description="Name of the signature field the ByteRange belongs to",
    )
    doc_hash: bytes = Field(
        ...,
        description="SHA-256 over the concatenated ByteRange segments",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Signature material
# ---------------------------------------------------------------------------

class EcdsaSignature(BaseModel):
    kind: Literal["ecdsa-p256"] = "ecdsa-p256"
    r: bytes
    s: bytes

    model_config = ConfigDict(frozen=True, extra="forbid")

    def to_bytes(self) -> bytes:
        return self.r + self.s


class RsaSignature(BaseModel):
    kind: Literal["rsa-2048"] = "rsa-2048"
    value: bytes

    model_config = ConfigDict(frozen=True, extra="forbid")

    def to_bytes(self) -> bytes:
        return self.value


SignatureMaterial = Annotated[
    Union[EcdsaSignature, RsaSignature],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Public key material
# ---------------------------------------------------------------------------

class EcdsaKey(BaseModel):
    kind: Literal["ecdsa-p256"] = "ecdsa-p256"
    x: bytes
    y: bytes

    model_config = ConfigDict(frozen=True, extra="forbid")


class RsaKey(BaseModel):
    kind: Literal["rsa-2048"] = "rsa-2048"
    modulus: bytes = Field(..., description="256-byte big-endian modulus")
    exponent: int

    model_config = ConfigDict(frozen=True, extra="forbid")


PublicKeyMaterial = Annotated[
    Union[EcdsaKey, RsaKey],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Selected signer
# ---------------------------------------------------------------------------

class SignatureContainer(BaseModel):
    signed_attrs: bytes = Field(
        ...,
        repr=False,
        description="Signed attributes re-tagged as a DER SET (0x31)",
    )
    signed_attrs_hash: bytes
    message_digest: bytes = Field(
        ...,
        description="messageDigest attribute carried in the signed attributes",
    )
    signature: SignatureMaterial
    public_key: PublicKeyMaterial
    certificate: bytes = Field(..., repr=False, description="Signer certificate (DER)")

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def algorithm(self) -> str:
        return self.signature.kind


# ---------------------------------------------------------------------------
# Accumulator objects
# ---------------------------------------------------------------------------

class Fingerprint(BaseModel):
    """
    A signer fingerprint in both of its forms.

    digest is the 32-byte SHA-256 of the canonical key encoding.
    field is digest reduced into the accumulator field. The reduction is
    lossy, so the two forms are never compared against each other.
    """

    digest: bytes
    field: int

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def hex(self) -> str:
        return self.digest.hex()


class MerkleProof(BaseModel):
    leaf: int
    leaf_index: int
    siblings: Tuple[int, ...]
    root: int

    model_config = ConfigDict(frozen=True, extra="forbid")


__all__ = [
    "ByteRange",
    "SignedDocument",
    "EcdsaSignature",
    "RsaSignature",
    "SignatureMaterial",
    "EcdsaKey",
    "RsaKey",
    "PublicKeyMaterial",
    "SignatureContainer",
    "Fingerprint",
    "MerkleProof",
]
