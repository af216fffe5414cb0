"""
Witness pipeline coordinator.

IMPORTANT:
The coordinator is a DUMB AUTHORITY.

It MUST NOT:
- inspect or reinterpret signature material
- recover from component errors
- emit a bundle when any step failed

Its sole responsibilities are:
- building the accumulator once from the allow-list
- enforcing execution order per document
- resolving the signer's leaf index (membership)
- handing every intermediate result to the Witness Assembler

Execution order per document:
    1. ByteRange extraction and document digest
    2. CMS container parsing and cross-checks
    3. Signer fingerprint and allow-list membership
    4. Merkle proof for the signer's leaf
    5. Witness assembly

The AllowList / MerkleTree pair is read-only after construction, so one
pipeline instance may serve many documents, including concurrently.
"""

from __future__ import annotations

import logging
from typing import Optional

from attestor.app.accumulator.artifacts import write_proof_artifacts
from attestor.app.accumulator.compression import (
    CompressionBackend,
    create_compression_backend,
)
from attestor.app.accumulator.merkle import MerkleTree
from attestor.app.config import AttestorConfig
from attestor.app.coordinator.witness_assembler import assemble
from attestor.app.errors import AccumulatorError
from attestor.app.extraction.byte_range import extract_signed_document
from attestor.app.extraction.signature_container import parse
from attestor.app.schemas.witness import WitnessBundle
from attestor.app.trust.allowlist import AllowList, load_allowlist
from attestor.app.trust.fingerprint import fingerprint

logger = logging.getLogger(__name__)


class WitnessPipeline:
    """
    Document-to-witness pipeline over a fixed allow-list.

    The compression backend must already be initialized.
    """

    def __init__(
        self,
        config: AttestorConfig,
        compression: CompressionBackend,
        allowlist: AllowList,
    ) -> None:
        self._config = config
        self._compression = compression
        self._allowlist = allowlist
        self._tree = MerkleTree.build(
            allowlist.field_elements(),
            compression,
            depth=config.MERKLE_DEPTH,
        )

        if config.PROOF_ARTIFACTS_DIR is not None:
            write_proof_artifacts(
                config.PROOF_ARTIFACTS_DIR,
                self._tree,
                allowlist,
                compression.name,
            )

    # ------------------------------------------------------------------
    # Integration constructor (composition root)
    # ------------------------------------------------------------------

    @classmethod
    async def from_config(
        cls,
        config: AttestorConfig,
        allowlist: Optional[AllowList] = None,
    ) -> "WitnessPipeline":
        """
        Construct a fully wired pipeline from runtime configuration.

        The compression backend is created and initialized here; this is
        the only await in the pipeline's lifetime.
        """
        if allowlist is None:
            if config.ALLOWLIST_PATH is None:
                raise AccumulatorError(
                    "No allow-list supplied and ALLOWLIST_PATH is not configured"
                )
            allowlist = load_allowlist(config.ALLOWLIST_PATH)

        compression = await create_compression_backend(config)
        return cls(config=config, compression=compression, allowlist=allowlist)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def tree(self) -> MerkleTree:
        return self._tree

    @property
    def allowlist(self) -> AllowList:
        return self._allowlist

    @property
    def trust_root(self) -> int:
        return self._tree.root

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        pdf_bytes: bytes,
        *,
        field_name: Optional[str] = None,
    ) -> WitnessBundle:
        """
        Produce the witness bundle for one signed document.

        Raises any AttestorError subclass unchanged. MembershipError means
        the document is well-formed but its signer is not authorized.
        """
        document = extract_signed_document(
            pdf_bytes,
            field_name=field_name,
            max_size_bytes=self._config.max_pdf_size_bytes,
        )

        container = parse(
            document,
            verify_signature=self._config.VERIFY_SIGNATURE,
        )

        signer = fingerprint(container.public_key)
        index = self._allowlist.index_of(signer)
        proof = self._tree.proof_for(index)

        logger.info(
            "Signer %s found at allow-list index %d", signer.hex, index
        )

        return assemble(
            document,
            container,
            proof,
            self._compression,
            depth=self._config.MERKLE_DEPTH,
        )
