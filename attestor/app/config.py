"""
Runtime configuration for the witness builder.

This module centralizes environment-driven settings: which field
compression backend is used for the accumulator, where its parameters
live, and the resource limits applied to incoming documents.

Configuration is read-only at runtime. Nothing configured here may change
the bytes or field elements of a witness bundle except the choice of
compression backend, which must match the external circuit.
"""

from __future__ import annotations

import os
from pathlib import Path
from pydantic import BaseModel, Field, field_validator, ValidationInfo


SUPPORTED_COMPRESSION_BACKENDS = {"poseidon2", "sha256"}

# Path length of the external circuit. Not tunable.
CIRCUIT_MERKLE_DEPTH = 8


class AttestorConfig(BaseModel):
    """
    Runtime configuration for the witness builder.

    Parsed once at startup and immutable afterwards.
    """

    model_config = {"frozen": True}

    # ------------------------------------------------------------------
    # Accumulator
    # ------------------------------------------------------------------

    COMPRESSION_BACKEND: str = Field(
        "poseidon2",
        description=(
            "Field compression function used for Merkle nodes. Must be "
            "identical to the compression used by the external circuit."
        ),
    )

    POSEIDON2_PARAMS_PATH: Path | None = Field(
        None,
        validate_default=True,
        description=(
            "JSON file with the Poseidon2 round constants and internal "
            "diagonal exported from the circuit toolchain. Required when "
            "COMPRESSION_BACKEND is 'poseidon2'."
        ),
    )

    MERKLE_DEPTH: int = Field(
        CIRCUIT_MERKLE_DEPTH,
        description="Accumulator depth (fixed by the circuit path length)",
    )

    # ------------------------------------------------------------------
    # Inputs and outputs
    # ------------------------------------------------------------------

    ALLOWLIST_PATH: Path | None = Field(
        None,
        description="Allow-list JSON used when the pipeline is built from config",
    )

    PROOF_ARTIFACTS_DIR: Path | None = Field(
        None,
        description="Directory for root and per-signer proof dumps (disabled if unset)",
    )

    # ------------------------------------------------------------------
    # Verification and safety limits
    # ------------------------------------------------------------------

    VERIFY_SIGNATURE: bool = Field(
        True,
        description=(
            "Verify the CMS signature over the signed attributes before "
            "building a witness"
        ),
    )

    MAX_PDF_SIZE_MB: int = Field(
        25,
        description="Maximum allowed PDF size in megabytes",
    )

    # ------------------------------------------------------------------
    # Validators (Pydantic v2)
    # ------------------------------------------------------------------

    @field_validator("COMPRESSION_BACKEND")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if v not in SUPPORTED_COMPRESSION_BACKENDS:
            raise ValueError(
                f"Unsupported COMPRESSION_BACKEND '{v}'. "
                f"Allowed values: {sorted(SUPPORTED_COMPRESSION_BACKENDS)}"
            )
        return v

    @field_validator("POSEIDON2_PARAMS_PATH")
    @classmethod
    def params_required_for_poseidon2(
        cls, v: Path | None, info: ValidationInfo
    ) -> Path | None:
        if info.data.get("COMPRESSION_BACKEND") == "poseidon2":
            if v is None:
                raise ValueError(
                    "COMPRESSION_BACKEND is 'poseidon2' but "
                    "POSEIDON2_PARAMS_PATH is not configured."
                )
            if not v.is_file():
                raise ValueError(
                    f"Configured POSEIDON2_PARAMS_PATH is not a file: {v}"
                )
        return v

    @field_validator("MERKLE_DEPTH")
    @classmethod
    def depth_matches_circuit(cls, v: int) -> int:
        if v != CIRCUIT_MERKLE_DEPTH:
            raise ValueError(
                f"MERKLE_DEPTH must be {CIRCUIT_MERKLE_DEPTH} "
                f"(circuit path length), got {v}"
            )
        return v

    @field_validator("MAX_PDF_SIZE_MB")
    @classmethod
    def positive_size_limit(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("MAX_PDF_SIZE_MB must be positive")
        return v

    @property
    def max_pdf_size_bytes(self) -> int:
        return self.MAX_PDF_SIZE_MB * 1024 * 1024

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> "AttestorConfig":
        """
        Load configuration from environment variables.

        All values are parsed once at startup and must remain immutable.
        """

        def env_bool(name: str, default: bool) -> bool:
            raw = os.getenv(name)
            if raw is None:
                return default
            return raw.lower() in {"1", "true", "yes", "on"}

        def env_path(name: str) -> Path | None:
            raw = os.getenv(name)
            return Path(raw) if raw else None

        return cls(
            COMPRESSION_BACKEND=os.getenv(
                "ATTESTOR_COMPRESSION_BACKEND", "poseidon2"
            ),
            POSEIDON2_PARAMS_PATH=env_path("ATTESTOR_POSEIDON2_PARAMS_PATH"),
            MERKLE_DEPTH=int(
                os.getenv("ATTESTOR_MERKLE_DEPTH", str(CIRCUIT_MERKLE_DEPTH))
            ),
            ALLOWLIST_PATH=env_path("ATTESTOR_ALLOWLIST_PATH"),
            PROOF_ARTIFACTS_DIR=env_path("ATTESTOR_PROOF_ARTIFACTS_DIR"),
            VERIFY_SIGNATURE=env_bool("ATTESTOR_VERIFY_SIGNATURE", True),
            MAX_PDF_SIZE_MB=int(
                os.getenv("ATTESTOR_MAX_PDF_SIZE_MB", "25")
            ),
        )
