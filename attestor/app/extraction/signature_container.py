"""
CMS signature container parsing.

Decodes the /Contents blob of a content signature, selects the SignerInfo
of the primary content signature, and extracts the material the external
circuit consumes.

SignerInfo selection rule:
    A SignerInfo is a candidate only if it carries signed attributes with
    a content-type attribute of id-data AND a messageDigest attribute.
    Exactly one candidate must exist.

    Timestamp tokens never qualify: a signature timestamp lives inside the
    unsigned attributes of the content signer, and a document timestamp
    has an encapsulated content type of id-ct-TSTInfo and is rejected
    outright. Selection never depends on byte position or ordering.

Signed attributes:
    SignedAttributes are transported with the implicit tag [0] (0xA0) but
    were hashed as a DER SET OF (0x31). The canonical form is produced by
    re-tagging the original bytes. The attributes are never re-encoded or
    re-ordered.

Cross-checks (IntegrityError on failure):
    1. messageDigest equals SHA-256 over the document ByteRange.
    2. The signature verifies over the canonical signed attributes under
       the embedded signer certificate's public key.

    No chain or revocation validation is performed.

Error handling policy:
    asn1crypto parses lazily and reports malformed input as ValueError.
    Those are wrapped in StructuralError at the point of access.
    cryptography's InvalidSignature is wrapped in IntegrityError.
    Anything else is a logic error and propagates.
"""

from __future__ import annotations

import logging
from typing import List

from asn1crypto import algos, cms, core, x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding
from cryptography.hazmat.primitives.serialization import load_der_public_key

from attestor.app.codec.bignum import RSA_BYTES, check_exponent
from attestor.app.errors import (
    IntegrityError,
    SizeConstraintError,
    StructuralError,
    UnsupportedAlgorithmError,
)
from attestor.app.schemas.material import (
    EcdsaKey,
    EcdsaSignature,
    PublicKeyMaterial,
    RsaKey,
    RsaSignature,
    SignatureContainer,
    SignatureMaterial,
    SignedDocument,
)
from attestor.app.utils.hashing import sha256_digest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Algorithm identifiers
# ---------------------------------------------------------------------------

OID_SHA256 = "2.16.840.1.101.3.4.2.1"

OID_RSA_ENCRYPTION = "1.2.840.113549.1.1.1"
OID_SHA256_WITH_RSA = "1.2.840.113549.1.1.11"
OID_ECDSA_WITH_SHA256 = "1.2.840.10045.4.3.2"

OID_EC_PUBLIC_KEY = "1.2.840.10045.2.1"
OID_SECP256R1 = "1.2.840.10045.3.1.7"

RSA_SIGNATURE_OIDS = {OID_RSA_ENCRYPTION, OID_SHA256_WITH_RSA}
ECDSA_SIGNATURE_OIDS = {OID_ECDSA_WITH_SHA256}

EC_COORDINATE_BYTES = 32
SET_OF_TAG = b"\x31"
IMPLICIT_ZERO_TAG = b"\xa0"


# ---------------------------------------------------------------------------
# Container decoding
# ---------------------------------------------------------------------------

def _load_signed_data(contents: bytes) -> cms.SignedData:
    # Non-strict load: /Contents is zero-padded past the DER value.
    try:
        content_info = cms.ContentInfo.load(contents)
        content_type = content_info["content_type"].native
        if content_type != "signed_data":
            raise StructuralError(
                f"Expected CMS signed_data, found {content_type!r}"
            )

        signed_data = content_info["content"]
        encap_type = signed_data["encap_content_info"]["content_type"].native
    except ValueError as exc:
        raise StructuralError(
            f"Signature /Contents is not a CMS ContentInfo: {exc}"
        ) from exc

    if encap_type == "tst_info":
        raise StructuralError(
            "Signature container is a timestamp token, "
            "not a content signature"
        )

    return signed_data


def _unique_attribute(attrs: cms.CMSAttributes, name: str):
    """Return the single value of a named attribute, or None if absent."""
    for attr in attrs:
        if attr["type"].native == name:
            values = attr["values"]
            if len(values) != 1:
                raise StructuralError(
                    f"Attribute {name!r} must have exactly one value, "
                    f"has {len(values)}"
                )
            return values[0]
    return None


def _select_signer_info(signed_data: cms.SignedData) -> cms.SignerInfo:
    signer_infos = list(signed_data["signer_infos"])
    if not signer_infos:
        raise StructuralError("SignedData contains no SignerInfo")

    candidates: List[cms.SignerInfo] = []
    without_attrs = 0

    for signer_info in signer_infos:
        attrs = signer_info["signed_attrs"]
        if isinstance(attrs, core.Void) or len(attrs) == 0:
            without_attrs += 1
            continue

        content_type = _unique_attribute(attrs, "content_type")
        message_digest = _unique_attribute(attrs, "message_digest")
        if content_type is None or message_digest is None:
            continue
        if content_type.native != "data":
            continue

        candidates.append(signer_info)

    if not candidates:
        if without_attrs == len(signer_infos):
            raise StructuralError(
                "SignerInfo has no signed attributes; signatures without "
                "authenticated attributes are not supported"
            )
        raise StructuralError(
            "No SignerInfo carries an id-data content type and a "
            "messageDigest attribute"
        )

    if len(candidates) > 1:
        raise StructuralError(
            f"{len(candidates)} SignerInfos qualify as the content "
            "signature; expected exactly one"
        )

    return candidates[0]


def _find_signer_certificate(
    signed_data: cms.SignedData,
    signer_info: cms.SignerInfo,
) -> x509.Certificate:
    cert_set = signed_data["certificates"]
    certs = (
        []
        if isinstance(cert_set, core.Void)
        else [c.chosen for c in cert_set if c.name == "certificate"]
    )

    sid = signer_info["sid"]
    if sid.name == "issuer_and_serial_number":
        issuer = sid.chosen["issuer"]
        serial = sid.chosen["serial_number"].native

        def predicate(cert: x509.Certificate) -> bool:
            return cert.serial_number == serial and cert.issuer == issuer
    elif sid.name == "subject_key_identifier":
        ski = sid.chosen.native

        def predicate(cert: x509.Certificate) -> bool:
            return cert.key_identifier == ski
    else:
        raise StructuralError(f"Unsupported signer identifier {sid.name!r}")

    for cert in certs:
        if predicate(cert):
            return cert

    raise StructuralError("Signer certificate not included in signature")


# ---------------------------------------------------------------------------
# Material extraction
# ---------------------------------------------------------------------------

def canonical_signed_attrs(signed_attrs: cms.CMSAttributes) -> bytes:
    """Re-tag the transported [0] IMPLICIT attributes as a DER SET."""
    raw = signed_attrs.dump()
    if raw[:1] != IMPLICIT_ZERO_TAG:
        raise StructuralError(
            f"Signed attributes carry unexpected tag 0x{raw[0]:02x}"
        )
    return SET_OF_TAG + raw[1:]


def extract_public_key(cert: x509.Certificate) -> PublicKeyMaterial:
    """Extract the signer key in its fixed-width form."""
    key_info = cert.public_key
    algorithm_oid = key_info["algorithm"]["algorithm"].dotted

    if algorithm_oid == OID_EC_PUBLIC_KEY:
        params = key_info["algorithm"]["parameters"]
        if params.name != "named":
            raise UnsupportedAlgorithmError(
                algorithm_oid,
                role="curve",
                message=(
                    "EC curve parameters are not a named curve "
                    f"({params.name}); only secp256r1 is supported"
                ),
            )

        curve_oid = params.chosen.dotted
        if curve_oid != OID_SECP256R1:
            raise UnsupportedAlgorithmError(curve_oid, role="curve")

        point = key_info["public_key"].native
        if len(point) != 1 + 2 * EC_COORDINATE_BYTES or point[0] != 0x04:
            raise SizeConstraintError(
                "ec public key",
                "65-byte uncompressed point",
                f"{len(point)} bytes (prefix 0x{point[:1].hex()})",
            )
        return EcdsaKey(
            x=point[1:1 + EC_COORDINATE_BYTES],
            y=point[1 + EC_COORDINATE_BYTES:],
        )

    if algorithm_oid == OID_RSA_ENCRYPTION:
        rsa_key = key_info["public_key"].parsed
        modulus = rsa_key["modulus"].native
        exponent = rsa_key["public_exponent"].native

        # Minimal big-endian form, without the DER sign byte.
        modulus_bytes = modulus.to_bytes((modulus.bit_length() + 7) // 8, "big")
        if len(modulus_bytes) != RSA_BYTES:
            raise SizeConstraintError(
                "modulus", f"{RSA_BYTES} bytes", f"{len(modulus_bytes)} bytes"
            )
        return RsaKey(modulus=modulus_bytes, exponent=check_exponent(exponent))

    raise UnsupportedAlgorithmError(algorithm_oid, role="public key algorithm")


def decode_ecdsa_signature(der_signature: bytes) -> EcdsaSignature:
    """Split a DER ECDSA-Sig-Value into 32-byte r and s."""
    try:
        parsed = algos.DSASignature.load(der_signature)
        r = parsed["r"].native
        s = parsed["s"].native
    except ValueError as exc:
        raise StructuralError(f"Malformed ECDSA signature: {exc}") from exc

    components = {}
    for name, value in (("r", r), ("s", s)):
        if value <= 0 or value.bit_length() > 8 * EC_COORDINATE_BYTES:
            raise SizeConstraintError(
                f"ecdsa {name}",
                f"1..{EC_COORDINATE_BYTES} bytes",
                f"{(value.bit_length() + 7) // 8} bytes",
            )
        components[name] = value.to_bytes(EC_COORDINATE_BYTES, "big")

    return EcdsaSignature(r=components["r"], s=components["s"])


def _extract_signature(
    signer_info: cms.SignerInfo,
    public_key: PublicKeyMaterial,
) -> SignatureMaterial:
    signature_oid = signer_info["signature_algorithm"]["algorithm"].dotted
    raw_signature = signer_info["signature"].native

    if signature_oid in RSA_SIGNATURE_OIDS:
        if not isinstance(public_key, RsaKey):
            raise StructuralError(
                "RSA signature algorithm with a non-RSA signer key"
            )
        if len(raw_signature) != RSA_BYTES:
            raise SizeConstraintError(
                "signature",
                f"{RSA_BYTES} bytes",
                f"{len(raw_signature)} bytes",
            )
        return RsaSignature(value=raw_signature)

    if signature_oid in ECDSA_SIGNATURE_OIDS:
        if not isinstance(public_key, EcdsaKey):
            raise StructuralError(
                "ECDSA signature algorithm with a non-EC signer key"
            )
        return decode_ecdsa_signature(raw_signature)

    raise UnsupportedAlgorithmError(signature_oid, role="signature algorithm")


def _verify_signature(
    cert: x509.Certificate,
    signer_info: cms.SignerInfo,
    signature: SignatureMaterial,
    signed_attrs: bytes,
) -> None:
    verifier = load_der_public_key(cert.public_key.dump())
    try:
        if isinstance(signature, RsaSignature):
            verifier.verify(
                signature.value,
                signed_attrs,
                padding.PKCS1v15(),
                hashes.SHA256(),
            )
        else:
            verifier.verify(
                signer_info["signature"].native,
                signed_attrs,
                ec.ECDSA(hashes.SHA256()),
            )
    except InvalidSignature as exc:
        raise IntegrityError(
            "Signature does not verify over the signed attributes"
        ) from exc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse(
    document: SignedDocument,
    *,
    verify_signature: bool = True,
) -> SignatureContainer:
    """
    Decode the document's CMS container and return the selected signer.

    Raises:
        StructuralError: malformed CMS, no qualifying SignerInfo, missing
            signed attributes or signer certificate.
        UnsupportedAlgorithmError: digest, signature, key or curve OID
            outside the supported set.
        SizeConstraintError: key or signature outside its fixed width.
        IntegrityError: messageDigest or signature cross-check failed.
    """
    signed_data = _load_signed_data(document.contents)

    try:
        signer_info = _select_signer_info(signed_data)

        digest_oid = signer_info["digest_algorithm"]["algorithm"].dotted
        if digest_oid != OID_SHA256:
            raise UnsupportedAlgorithmError(digest_oid, role="digest algorithm")

        cert = _find_signer_certificate(signed_data, signer_info)
        public_key = extract_public_key(cert)
        signature = _extract_signature(signer_info, public_key)

        attrs = signer_info["signed_attrs"]
        signed_attrs = canonical_signed_attrs(attrs)
        message_digest = _unique_attribute(attrs, "message_digest").native
        certificate = cert.dump()
    except ValueError as exc:
        raise StructuralError(f"Malformed CMS structure: {exc}") from exc

    if message_digest != document.doc_hash:
        raise IntegrityError(
            "messageDigest attribute does not match the ByteRange digest "
            f"({message_digest.hex()} != {document.doc_hash.hex()})"
        )

    if verify_signature:
        _verify_signature(cert, signer_info, signature, signed_attrs)
    else:
        logger.warning(
            "Signature verification over signed attributes is disabled"
        )

    signed_attrs_hash = sha256_digest(signed_attrs)

    logger.info(
        "Parsed %s signature for field %s (signed_attrs_hash=%s)",
        signature.kind,
        document.field_name,
        signed_attrs_hash.hex(),
    )

    return SignatureContainer(
        signed_attrs=signed_attrs,
        signed_attrs_hash=signed_attrs_hash,
        message_digest=message_digest,
        signature=signature,
        public_key=public_key,
        certificate=certificate,
    )
