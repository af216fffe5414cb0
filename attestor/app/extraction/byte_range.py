"""
ByteRange extraction and document hashing.

This module locates the content signature of a PAdES/CAdES-signed PDF and
re-derives the exact bytes that were signed.

PAdES signatures embed a /ByteRange array of the form:
    [offset1, length1, offset2, length2]

The two segments cover the whole file except the /Contents hex string,
which holds the CMS container itself. The document digest is SHA-256
over segment1 || segment2, in that order.

Signature field selection:
    Only /Sig fields whose value dictionary is a content signature are
    candidates. Document timestamps (/Type /DocTimeStamp or
    /SubFilter /ETSI.RFC3161) are skipped and logged.

    - An explicit field name selects exactly that field.
    - Without a name, exactly one candidate must exist. Multiple
      candidates are an error that lists the field names; the caller must
      choose. No positional or byte-scanning heuristic is applied.

ByteRange validation:
    - four non-negative integers
    - offset1 == 0
    - segments ordered, non-overlapping, within the buffer
    - the gap between the segments is exactly the hex-encoded /Contents

Error handling policy:
    pikepdf.PdfError is the only library exception caught. It is wrapped
    in StructuralError. Any other exception indicates a logic error and
    propagates unchanged.
"""

from __future__ import annotations

import logging
from io import BytesIO
from typing import List, Optional, Tuple

import pikepdf

from attestor.app.errors import SizeConstraintError, StructuralError
from attestor.app.schemas.material import ByteRange, SignedDocument
from attestor.app.utils.hashing import sha256_digest

logger = logging.getLogger(__name__)


TIMESTAMP_TYPES = {"/DocTimeStamp"}
TIMESTAMP_SUBFILTERS = {"/ETSI.RFC3161"}


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _iter_signature_fields(fields, inherited_ft: Optional[str] = None):
    """
    Yield (name, value_dict) for every terminal /Sig field, descending
    into /Kids. /FT is inheritable per the PDF field hierarchy.
    """
    for field_ref in fields:
        ft = field_ref.get("/FT")
        ft_name = str(ft) if ft is not None else inherited_ft

        kids = field_ref.get("/Kids")
        if kids is not None:
            yield from _iter_signature_fields(kids, ft_name)

        if ft_name != "/Sig":
            continue

        sig_value = field_ref.get("/V")
        if sig_value is None:
            continue

        name = field_ref.get("/T")
        yield (str(name) if name is not None else None), sig_value


def _is_timestamp(sig_value) -> bool:
    sig_type = sig_value.get("/Type")
    if sig_type is not None and str(sig_type) in TIMESTAMP_TYPES:
        return True
    subfilter = sig_value.get("/SubFilter")
    return subfilter is not None and str(subfilter) in TIMESTAMP_SUBFILTERS


def _read_signature_slots(
    pdf_bytes: bytes,
) -> List[Tuple[Optional[str], List[int], bytes]]:
    """
    Return (field_name, byte_range, contents) for every content signature.

    Raises StructuralError if pikepdf cannot parse the document.
    """
    slots: List[Tuple[Optional[str], List[int], bytes]] = []

    try:
        with pikepdf.open(BytesIO(pdf_bytes)) as pdf:
            acroform = pdf.Root.get("/AcroForm")
            if acroform is None:
                return slots

            fields = acroform.get("/Fields")
            if not fields:
                return slots

            for name, sig_value in _iter_signature_fields(fields):
                if _is_timestamp(sig_value):
                    logger.info(
                        "Skipping document timestamp field %s", name
                    )
                    continue

                byte_range = sig_value.get("/ByteRange")
                contents = sig_value.get("/Contents")
                if byte_range is None or contents is None:
                    raise StructuralError(
                        f"Signature field {name!r} has no /ByteRange "
                        "or /Contents"
                    )

                try:
                    ranges = [int(v) for v in byte_range]
                except (TypeError, ValueError) as exc:
                    raise StructuralError(
                        f"Signature field {name!r} has a non-integer "
                        "/ByteRange"
                    ) from exc

                slots.append((name, ranges, bytes(contents)))

    except pikepdf.PdfError as exc:
        raise StructuralError(f"Unable to parse PDF: {exc}") from exc

    return slots


def _validate_byte_range(
    pdf_bytes: bytes,
    ranges: List[int],
    contents: bytes,
) -> ByteRange:
    if len(ranges) != 4:
        raise StructuralError(
            f"/ByteRange must have 4 entries, found {len(ranges)}"
        )
    if any(v < 0 for v in ranges):
        raise StructuralError(f"/ByteRange has negative entries: {ranges}")

    offset1, length1, offset2, length2 = ranges

    if offset1 != 0:
        raise StructuralError(
            f"/ByteRange must start at offset 0, starts at {offset1}"
        )
    if offset2 < offset1 + length1:
        raise StructuralError(
            f"/ByteRange segments overlap or are out of order: {ranges}"
        )
    if offset2 + length2 > len(pdf_bytes):
        raise StructuralError(
            f"/ByteRange {ranges} exceeds document length {len(pdf_bytes)}"
        )

    # The excluded gap must be exactly the /Contents hex string.
    gap = pdf_bytes[offset1 + length1:offset2]
    if len(gap) < 2 or gap[:1] != b"<" or gap[-1:] != b">":
        raise StructuralError(
            "/ByteRange gap does not delimit a hex string"
        )
    try:
        gap_contents = bytes.fromhex(gap[1:-1].decode("ascii"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise StructuralError(
            "/ByteRange gap is not valid hex"
        ) from exc

    if gap_contents != contents:
        raise StructuralError(
            "/ByteRange gap does not match the signature /Contents"
        )

    return ByteRange(
        offset1=offset1,
        length1=length1,
        offset2=offset2,
        length2=length2,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def compute_document_hash(pdf_bytes: bytes, byte_range: ByteRange) -> bytes:
    """SHA-256 over the two ByteRange segments, concatenated in order."""
    if not isinstance(pdf_bytes, (bytes, bytearray)):
        raise TypeError(
            "compute_document_hash expects bytes, "
            f"got {type(pdf_bytes).__name__}"
        )

    signed = bytearray()
    for offset, length in byte_range.segments:
        signed += pdf_bytes[offset:offset + length]
    return sha256_digest(signed)


def extract_signed_document(
    pdf_bytes: bytes,
    *,
    field_name: Optional[str] = None,
    max_size_bytes: Optional[int] = None,
) -> SignedDocument:
    """
    Locate the content signature and return the SignedDocument.

    Raises:
        SizeConstraintError: the document exceeds max_size_bytes.
        StructuralError: unparsable PDF, no signature slot, ambiguous
            selection, or an invalid /ByteRange.
    """
    if max_size_bytes is not None and len(pdf_bytes) > max_size_bytes:
        raise SizeConstraintError(
            "pdf_bytes",
            f"<= {max_size_bytes} bytes",
            f"{len(pdf_bytes)} bytes",
        )

    slots = _read_signature_slots(pdf_bytes)
    if not slots:
        raise StructuralError("Document has no content signature field")

    if field_name is not None:
        selected = [s for s in slots if s[0] == field_name]
        if not selected:
            raise StructuralError(
                f"Signature field {field_name!r} not found; "
                f"available: {[s[0] for s in slots]}"
            )
    else:
        selected = slots

    if len(selected) != 1:
        raise StructuralError(
            "Multiple content signatures present; select one of "
            f"{[s[0] for s in selected]} explicitly"
        )

    name, ranges, contents = selected[0]
    byte_range = _validate_byte_range(pdf_bytes, ranges, contents)
    doc_hash = compute_document_hash(pdf_bytes, byte_range)

    logger.debug(
        "Signature field %s: ByteRange=%s doc_hash=%s",
        name,
        ranges,
        doc_hash.hex(),
    )

    return SignedDocument(
        pdf_bytes=bytes(pdf_bytes),
        byte_range=byte_range,
        contents=contents,
        field_name=name,
        doc_hash=doc_hash,
    )
