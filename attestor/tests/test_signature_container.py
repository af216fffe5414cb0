"""
Signature container parsing tests.

Coverage matrix:

  RSA-2048 PAdES signature         → RsaSignature(256 B), RsaKey(256 B, e)
  ECDSA P-256 PAdES signature      → EcdsaSignature(r, s), EcdsaKey(x, y)
  Signed attributes                → re-tagged SET, hash, verifies under key
  Tampered signed content          → IntegrityError (messageDigest)
  Corrupted signature value        → IntegrityError (signature)
  Verification disabled            → corrupted signature passes parse
  SHA-512 digest algorithm         → UnsupportedAlgorithmError naming OID
  P-384 signer key                 → UnsupportedAlgorithmError naming curve
  RSA-3072 signer key              → SizeConstraintError (modulus)
  Garbage /Contents                → StructuralError
  No signed attributes             → StructuralError
  Two content SignerInfos          → StructuralError
  Timestamp token container        → StructuralError
  Oversized ECDSA component        → SizeConstraintError
  Empty EC point                   → SizeConstraintError
  Unnamed EC curve parameters      → UnsupportedAlgorithmError
"""

import hashlib
from types import SimpleNamespace

import pytest
from asn1crypto import algos, core, keys
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding

from attestor.app.errors import (
    IntegrityError,
    SizeConstraintError,
    StructuralError,
    UnsupportedAlgorithmError,
)
from attestor.app.extraction.byte_range import extract_signed_document
from attestor.app.extraction.signature_container import (
    OID_SECP256R1,
    decode_ecdsa_signature,
    extract_public_key,
    parse,
)
from attestor.app.schemas.material import (
    ByteRange,
    EcdsaKey,
    EcdsaSignature,
    RsaKey,
    RsaSignature,
    SignedDocument,
)
from attestor.tests.fixtures.pdf_factory import (
    content_signed_attrs,
    corrupt_signature_value,
    signed_data_content_info,
    signed_pdf,
    signer_info,
    swap_digest_algorithm_to_sha512,
    tamper_signed_content,
)
from attestor.tests.fixtures.signer_factory import (
    ecdsa_signer,
    p384_signer,
    rsa3072_signer,
    rsa_signer,
)


def _document_for(contents: bytes, doc_hash: bytes = b"\x00" * 32) -> SignedDocument:
    return SignedDocument(
        pdf_bytes=b"",
        byte_range=ByteRange(offset1=0, length1=0, offset2=0, length2=0),
        contents=contents,
        field_name="Signature1",
        doc_hash=doc_hash,
    )


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------

def test_parses_rsa_signature_and_key():
    signer = rsa_signer()
    document = extract_signed_document(signed_pdf(signer))

    container = parse(document)

    numbers = signer.public_key.public_numbers()
    assert isinstance(container.signature, RsaSignature)
    assert len(container.signature.value) == 256
    assert isinstance(container.public_key, RsaKey)
    assert container.public_key.modulus == numbers.n.to_bytes(256, "big")
    assert container.public_key.exponent == 65537
    assert container.message_digest == document.doc_hash
    assert container.certificate == signer.certificate.dump()
    assert container.algorithm == "rsa-2048"


def test_parses_ecdsa_signature_and_key():
    signer = ecdsa_signer()
    document = extract_signed_document(signed_pdf(signer))

    container = parse(document)

    numbers = signer.public_key.public_numbers()
    assert isinstance(container.signature, EcdsaSignature)
    assert len(container.signature.r) == 32
    assert len(container.signature.s) == 32
    assert isinstance(container.public_key, EcdsaKey)
    assert container.public_key.x == numbers.x.to_bytes(32, "big")
    assert container.public_key.y == numbers.y.to_bytes(32, "big")
    assert container.algorithm == "ecdsa-p256"


def test_signed_attributes_are_retagged_as_set():
    signer = rsa_signer()
    container = parse(extract_signed_document(signed_pdf(signer)))

    assert container.signed_attrs[0] == 0x31
    assert container.signed_attrs_hash == hashlib.sha256(
        container.signed_attrs
    ).digest()

    # Independent check: the canonical bytes are exactly what was signed.
    signer.public_key.verify(
        container.signature.value,
        container.signed_attrs,
        padding.PKCS1v15(),
        hashes.SHA256(),
    )


def test_ecdsa_signed_attributes_verify_independently():
    signer = ecdsa_signer()
    container = parse(extract_signed_document(signed_pdf(signer)))

    der_signature = algos.DSASignature({
        "r": int.from_bytes(container.signature.r, "big"),
        "s": int.from_bytes(container.signature.s, "big"),
    }).dump()
    signer.public_key.verify(
        der_signature,
        container.signed_attrs,
        ec.ECDSA(hashes.SHA256()),
    )


# ---------------------------------------------------------------------------
# Integrity cross-checks
# ---------------------------------------------------------------------------

def test_tampered_content_fails_message_digest_check():
    pdf_bytes = tamper_signed_content(signed_pdf(rsa_signer()))
    document = extract_signed_document(pdf_bytes)

    with pytest.raises(IntegrityError, match="messageDigest"):
        parse(document)


def test_corrupted_signature_fails_verification():
    pdf_bytes = corrupt_signature_value(signed_pdf(rsa_signer()))
    document = extract_signed_document(pdf_bytes)

    with pytest.raises(IntegrityError, match="does not verify"):
        parse(document)


def test_verification_can_be_disabled():
    pdf_bytes = corrupt_signature_value(signed_pdf(rsa_signer()))
    document = extract_signed_document(pdf_bytes)

    container = parse(document, verify_signature=False)
    assert isinstance(container.signature, RsaSignature)


# ---------------------------------------------------------------------------
# Algorithm and size constraints
# ---------------------------------------------------------------------------

def test_unsupported_digest_algorithm_names_oid():
    pdf_bytes = swap_digest_algorithm_to_sha512(signed_pdf(rsa_signer()))
    document = extract_signed_document(pdf_bytes)

    with pytest.raises(UnsupportedAlgorithmError) as exc_info:
        parse(document)

    assert exc_info.value.oid == "2.16.840.1.101.3.4.2.3"
    assert "2.16.840.1.101.3.4.2.3" in str(exc_info.value)


def test_unsupported_curve_names_oid():
    with pytest.raises(UnsupportedAlgorithmError) as exc_info:
        extract_public_key(p384_signer().certificate)

    assert exc_info.value.oid == "1.3.132.0.34"
    assert exc_info.value.oid != OID_SECP256R1


def test_rsa_modulus_must_be_256_bytes():
    with pytest.raises(SizeConstraintError) as exc_info:
        extract_public_key(rsa3072_signer().certificate)

    assert exc_info.value.expected == "256 bytes"
    assert exc_info.value.actual == "384 bytes"


def _ec_key_holder(parameters, point: bytes) -> SimpleNamespace:
    return SimpleNamespace(public_key=keys.PublicKeyInfo({
        "algorithm": {"algorithm": "ec", "parameters": parameters},
        "public_key": point,
    }))


def test_empty_ec_point_is_size_error():
    holder = _ec_key_holder(("named", "secp256r1"), b"")

    with pytest.raises(SizeConstraintError) as exc_info:
        extract_public_key(holder)

    assert exc_info.value.field == "ec public key"
    assert exc_info.value.actual.startswith("0 bytes")


def test_unnamed_curve_parameters_are_unsupported():
    holder = _ec_key_holder(("implicit_ca", core.Null()), b"\x04" + b"\x01" * 64)

    with pytest.raises(UnsupportedAlgorithmError) as exc_info:
        extract_public_key(holder)

    assert "not a named curve" in str(exc_info.value)
    assert exc_info.value.oid == "1.2.840.10045.2.1"
    assert exc_info.value.role == "curve"


def test_ecdsa_components_are_left_padded():
    der = algos.DSASignature({"r": 1, "s": 2 ** 255}).dump()

    signature = decode_ecdsa_signature(der)

    assert signature.r == b"\x00" * 31 + b"\x01"
    assert signature.s == (2 ** 255).to_bytes(32, "big")


def test_oversized_ecdsa_component_is_rejected():
    der = algos.DSASignature({"r": 2 ** 256, "s": 1}).dump()

    with pytest.raises(SizeConstraintError, match="ecdsa r"):
        decode_ecdsa_signature(der)


# ---------------------------------------------------------------------------
# Structural negatives
# ---------------------------------------------------------------------------

def test_garbage_contents_is_structural_error():
    with pytest.raises(StructuralError):
        parse(_document_for(b"\x00" * 64))


def test_missing_signed_attributes_is_structural_error():
    cert = rsa_signer().certificate
    contents = signed_data_content_info(cert, [signer_info(cert)])

    with pytest.raises(StructuralError, match="no signed attributes"):
        parse(_document_for(contents + b"\x00" * 16))


def test_multiple_content_signer_infos_are_ambiguous():
    cert = rsa_signer().certificate
    attrs = content_signed_attrs(b"\x11" * 32)
    contents = signed_data_content_info(
        cert,
        [
            signer_info(cert, signed_attrs=attrs),
            signer_info(cert, signed_attrs=attrs),
        ],
    )

    with pytest.raises(StructuralError, match="expected exactly one"):
        parse(_document_for(contents))


def test_timestamp_token_is_not_a_content_signature():
    cert = rsa_signer().certificate
    contents = signed_data_content_info(
        cert,
        [signer_info(cert, signed_attrs=content_signed_attrs(b"\x11" * 32))],
        encap_content_type="tst_info",
    )

    with pytest.raises(StructuralError, match="timestamp token"):
        parse(_document_for(contents))


def test_message_digest_mismatch_on_hand_built_container():
    cert = rsa_signer().certificate
    contents = signed_data_content_info(
        cert,
        [signer_info(cert, signed_attrs=content_signed_attrs(b"\x11" * 32))],
    )

    with pytest.raises(IntegrityError, match="messageDigest"):
        parse(_document_for(contents, doc_hash=b"\x22" * 32))
