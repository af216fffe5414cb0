"""
Proof artifact export tests.

Coverage matrix:

  tl_root_<backend>.txt          → 0x-hex line, decimal line
  tree-<backend>/<fp>.json       → one record per allow-listed signer
  proof record                   → leaf, path and root in hex and decimal
"""

import json

from attestor.app.accumulator.artifacts import proof_record, write_proof_artifacts
from attestor.app.accumulator.merkle import MerkleTree
from attestor.app.trust.allowlist import AllowList
from attestor.app.trust.fingerprint import fingerprint_from_digest
from attestor.tests.fixtures.backends import LinearTestCompression


def _allowlist():
    return AllowList([fingerprint_from_digest(bytes([i]) * 32) for i in (7, 8, 9)])


def test_proof_record_fields():
    tree = MerkleTree.build([3, 4], LinearTestCompression())

    record = proof_record(tree.proof_for(1))

    assert record["leaf_index"] == 1
    assert record["leaf_decimal"] == "4"
    assert record["leaf_hex"] == "0x" + "00" * 31 + "04"
    assert len(record["merkle_path_hex"]) == 8
    assert record["merkle_path_decimal"][0] == "3"
    assert int(record["root_hex"], 16) == int(record["root_decimal"]) == tree.root


def test_writes_root_and_one_proof_per_signer(tmp_path):
    allowlist = _allowlist()
    tree = MerkleTree.build(allowlist.field_elements(), LinearTestCompression())

    proof_dir = write_proof_artifacts(
        tmp_path / "out", tree, allowlist, "linear-test"
    )

    assert proof_dir == tmp_path / "out" / "tree-linear-test"
    root_lines = (tmp_path / "out" / "tl_root_linear-test.txt").read_text().splitlines()
    assert int(root_lines[0], 16) == tree.root
    assert root_lines[1] == str(tree.root)

    files = sorted(p.name for p in proof_dir.iterdir())
    assert files == sorted(f"{fp.hex}.json" for fp in allowlist)

    for index, fp in enumerate(allowlist):
        record = json.loads((proof_dir / f"{fp.hex}.json").read_text())
        assert record["leaf_index"] == index
        assert record["fingerprint_hex"] == fp.hex
        assert record["leaf_decimal"] == str(fp.field)
