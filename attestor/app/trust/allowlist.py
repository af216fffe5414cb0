"""
Allow-list of authorized signer fingerprints.

The allow-list is the ordered, duplicate-free sequence of fingerprints
the accumulator is built from. Order matters: position in the list is
the leaf index in the Merkle tree.

Sources:
    - JSON: a bare array of hex digests, or {"cert_fingerprints": [...]}
    - certificates (PEM or DER), fingerprinted from their public key

Duplicates are a build-time error, never silently collapsed. A missing
signer raises MembershipError so callers can report "signer not
authorized" separately from malformed input.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Sequence, Union

from asn1crypto import x509
from pyhanko.keys import load_cert_from_pemder

from attestor.app.errors import AccumulatorError, MembershipError
from attestor.app.extraction.signature_container import extract_public_key
from attestor.app.schemas.material import Fingerprint
from attestor.app.trust.fingerprint import fingerprint, fingerprint_from_digest

logger = logging.getLogger(__name__)


ALLOWLIST_KEY = "cert_fingerprints"
_HEX_DIGEST = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


class AllowList:
    """Ordered, duplicate-free, immutable sequence of fingerprints."""

    def __init__(self, fingerprints: Sequence[Fingerprint]) -> None:
        seen: Dict[bytes, int] = {}
        for i, fp in enumerate(fingerprints):
            if fp.digest in seen:
                raise AccumulatorError(
                    f"Duplicate fingerprint {fp.hex} at positions "
                    f"{seen[fp.digest]} and {i}"
                )
            seen[fp.digest] = i

        self._fingerprints = tuple(fingerprints)
        self._positions = seen

    def __len__(self) -> int:
        return len(self._fingerprints)

    def __iter__(self) -> Iterator[Fingerprint]:
        return iter(self._fingerprints)

    @property
    def fingerprints(self) -> tuple:
        return self._fingerprints

    def field_elements(self) -> List[int]:
        return [fp.field for fp in self._fingerprints]

    def index_of(self, fp: Fingerprint) -> int:
        try:
            return self._positions[fp.digest]
        except KeyError:
            raise MembershipError(fp.hex) from None

    def to_json_dict(self) -> Dict[str, List[str]]:
        return {ALLOWLIST_KEY: [fp.hex for fp in self._fingerprints]}


# ---------------------------------------------------------------------------
# JSON input / output
# ---------------------------------------------------------------------------

def parse_allowlist(data: Union[List[Any], Dict[str, Any]]) -> AllowList:
    if isinstance(data, dict):
        if ALLOWLIST_KEY not in data:
            raise AccumulatorError(
                f"Allow-list object has no {ALLOWLIST_KEY!r} entry"
            )
        data = data[ALLOWLIST_KEY]

    if not isinstance(data, list):
        raise AccumulatorError("Allow-list must be a JSON array of hex digests")

    fingerprints = []
    for i, entry in enumerate(data):
        if not isinstance(entry, str) or not _HEX_DIGEST.match(entry):
            raise AccumulatorError(
                f"Allow-list entry {i} is not a 32-byte hex digest: {entry!r}"
            )
        hex_digest = entry[2:] if entry.startswith("0x") else entry
        fingerprints.append(fingerprint_from_digest(bytes.fromhex(hex_digest)))

    return AllowList(fingerprints)


def load_allowlist(path: Path) -> AllowList:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise AccumulatorError(f"Unable to read allow-list {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise AccumulatorError(f"Allow-list {path} is not valid JSON: {exc}") from exc

    allowlist = parse_allowlist(raw)
    logger.info("Loaded %d allow-list entries from %s", len(allowlist), path)
    return allowlist


def write_allowlist(path: Path, allowlist: AllowList) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(allowlist.to_json_dict(), indent=2) + "\n",
        encoding="utf-8",
    )
    logger.info("Wrote %d allow-list entries to %s", len(allowlist), path)


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------

def read_certificate(path: Path) -> x509.Certificate:
    """Load a PEM- or DER-encoded certificate."""
    try:
        return load_cert_from_pemder(str(path))
    except (ValueError, IOError) as exc:
        logger.error("Failed to load certificate %s: %s", path, exc)
        raise AccumulatorError(
            f"Unable to load certificate {path}: {exc}"
        ) from exc


def fingerprint_certificate(cert: x509.Certificate) -> Fingerprint:
    return fingerprint(extract_public_key(cert))


def build_allowlist_from_certificates(
    paths: Sequence[Path],
    *,
    sort: bool = False,
) -> AllowList:
    """
    Fingerprint each certificate's public key, in the given order.

    With sort=True the result is ordered by hex digest, which makes the
    tree independent of the order certificates were listed in.
    """
    sources: Dict[bytes, Path] = {}
    fingerprints: List[Fingerprint] = []

    for path in paths:
        fp = fingerprint_certificate(read_certificate(path))
        if fp.digest in sources:
            raise AccumulatorError(
                f"Duplicate fingerprint {fp.hex}: {sources[fp.digest]} "
                f"and {path} carry the same public key"
            )
        sources[fp.digest] = path
        fingerprints.append(fp)

    if sort:
        fingerprints.sort(key=lambda fp: fp.hex)

    return AllowList(fingerprints)
