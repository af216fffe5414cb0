"""
Error taxonomy for witness construction.

Every failure reflects a deterministic property of the input document,
the allow-list, or the configured compression parameters. None of them
are retried, and the pipeline never returns a partially valid bundle.

Callers are expected to distinguish MembershipError ("signer not
authorized") from the structural and integrity failures, which indicate
a malformed or tampered artifact.
"""

from __future__ import annotations

from typing import Optional


class AttestorError(RuntimeError):
    """Base class for all witness construction failures."""


class StructuralError(AttestorError):
    """
    Raised when the PDF or its embedded CMS container is malformed,
    the signature slot is missing, or the signer cannot be selected
    unambiguously.
    """


class UnsupportedAlgorithmError(AttestorError):
    """Raised when an algorithm or curve OID is not supported."""

    def __init__(
        self,
        oid: str,
        role: str = "algorithm",
        message: Optional[str] = None,
    ) -> None:
        self.oid = oid
        self.role = role
        super().__init__(message or f"Unsupported {role} OID: {oid}")


class IntegrityError(AttestorError):
    """
    Raised when a recomputed value disagrees with the value carried by
    the artifact (messageDigest, signature, Merkle root).
    """


class SizeConstraintError(AttestorError):
    """Raised when a value falls outside its fixed width or bounds."""

    def __init__(self, field: str, expected: str, actual: str) -> None:
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{field}: expected {expected}, got {actual}"
        )


class MembershipError(AttestorError):
    """Raised when a signer fingerprint is absent from the allow-list."""

    def __init__(self, fingerprint: str, message: Optional[str] = None) -> None:
        self.fingerprint = fingerprint
        super().__init__(
            message
            or f"Signer fingerprint {fingerprint} is not in the allow-list"
        )


class AccumulatorError(AttestorError):
    """
    Raised when the accumulator cannot be built: duplicate fingerprints,
    capacity exceeded, invalid compression parameters, or a failed
    build-time self-check.
    """
