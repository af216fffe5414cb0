"""
Field compression backends for Merkle node hashing.

A backend is an explicitly constructed dependency injected into the
accumulator. It has a single asynchronous boundary: initialize() is
awaited once (e.g. to load parameters), after which compress() is a
pure synchronous function of two field elements.

Backends:
    - poseidon2: Poseidon2 over BN254 with externally loaded parameters.
      This is the compression the circuit uses.
    - sha256: SHA-256(left_be32 || right_be32) mod r. Not circuit
      compatible; for environments without the circuit parameters.
"""

from __future__ import annotations

import logging
from typing import Protocol

from attestor.app.accumulator.poseidon2 import Poseidon2Compression
from attestor.app.config import AttestorConfig
from attestor.app.errors import AccumulatorError
from attestor.app.utils.hashing import (
    BN254_SCALAR_FIELD,
    bytes_to_field,
    int_to_fixed_bytes,
    sha256_digest,
)

logger = logging.getLogger(__name__)


class CompressionBackend(Protocol):
    """
    Two-to-one compression over the accumulator field.

    Implementations must be:
    - deterministic
    - byte-identical to the circuit's compression (for production use)
    - safe to call concurrently once initialized
    """

    name: str

    async def initialize(self) -> None:
        ...

    def compress(self, left: int, right: int) -> int:
        ...


class Sha256Compression:
    """SHA-256 of the two 32-byte big-endian words, reduced into the field."""

    name = "sha256"

    async def initialize(self) -> None:
        return

    def compress(self, left: int, right: int) -> int:
        digest = sha256_digest(
            int_to_fixed_bytes(left, 32) + int_to_fixed_bytes(right, 32)
        )
        return bytes_to_field(digest, BN254_SCALAR_FIELD)


async def create_compression_backend(
    config: AttestorConfig,
) -> CompressionBackend:
    """Construct and initialize the configured backend."""
    if config.COMPRESSION_BACKEND == "poseidon2":
        backend: CompressionBackend = Poseidon2Compression(
            params_path=config.POSEIDON2_PARAMS_PATH
        )
    elif config.COMPRESSION_BACKEND == "sha256":
        logger.warning(
            "Using sha256 Merkle compression; roots will not match a "
            "Poseidon2 circuit"
        )
        backend = Sha256Compression()
    else:
        raise AccumulatorError(
            f"Unknown compression backend {config.COMPRESSION_BACKEND!r}"
        )

    await backend.initialize()
    logger.info("Initialized %s compression backend", backend.name)
    return backend
