"""
Proof artifact export.

Writes the accumulator root and one proof file per allow-listed signer so
that proofs can be inspected or handed to tooling without rebuilding the
tree. Layout, relative to the output directory:

    tl_root_<backend>.txt                 root as 0x-hex, then decimal
    tree-<backend>/<fingerprint_hex>.json one proof record per signer

Artifacts are outputs only. Nothing reads them back into the pipeline.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

from attestor.app.accumulator.merkle import MerkleTree
from attestor.app.schemas.material import MerkleProof
from attestor.app.trust.allowlist import AllowList

logger = logging.getLogger(__name__)


def _hex(value: int) -> str:
    return "0x" + value.to_bytes(32, "big").hex()


def proof_record(proof: MerkleProof) -> Dict[str, Any]:
    return {
        "leaf_index": proof.leaf_index,
        "leaf_hex": _hex(proof.leaf),
        "leaf_decimal": str(proof.leaf),
        "merkle_path_hex": [_hex(s) for s in proof.siblings],
        "merkle_path_decimal": [str(s) for s in proof.siblings],
        "root_hex": _hex(proof.root),
        "root_decimal": str(proof.root),
    }


def write_proof_artifacts(
    directory: Path,
    tree: MerkleTree,
    allowlist: AllowList,
    backend_name: str,
) -> Path:
    """Write root and per-signer proofs; returns the proof directory."""
    directory = Path(directory)
    proof_dir = directory / f"tree-{backend_name}"
    proof_dir.mkdir(parents=True, exist_ok=True)

    (directory / f"tl_root_{backend_name}.txt").write_text(
        f"{_hex(tree.root)}\n{tree.root}\n",
        encoding="utf-8",
    )

    for index, fp in enumerate(allowlist):
        record = proof_record(tree.proof_for(index))
        record["fingerprint_hex"] = fp.hex
        (proof_dir / f"{fp.hex}.json").write_text(
            json.dumps(record, indent=2) + "\n",
            encoding="utf-8",
        )

    logger.info(
        "Wrote %d proof artifacts to %s", len(allowlist), proof_dir
    )
    return proof_dir
