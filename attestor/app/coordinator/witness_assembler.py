"""
Witness assembly.

Composes the document digest, the selected signer's material and the
accumulator proof into the WitnessBundle consumed by the external
proving service.

This is the last cheap check before expensive proof generation. Nothing
handed in is trusted; the assembler re-verifies:

    - messageDigest still equals the document digest
    - signature and key belong to the same algorithm family
    - signature width matches the algorithm (64 B ECDSA / 256 B RSA)
    - the RSA signature is a residue of the modulus
    - leaf index is in range and the path has exactly D entries after
      zero padding
    - the signer's recomputed fingerprint is the proof leaf
    - the path folds back to the proof root

Any failure raises. A partial bundle is never returned.
"""

from __future__ import annotations

import logging

from attestor.app.accumulator.compression import CompressionBackend
from attestor.app.accumulator.merkle import (
    MERKLE_DEPTH,
    compute_root,
    pad_merkle_path,
)
from attestor.app.codec.bignum import (
    encode_rsa_key,
    limbs_to_int,
    signature_limbs,
)
from attestor.app.errors import (
    IntegrityError,
    MembershipError,
    SizeConstraintError,
    StructuralError,
)
from attestor.app.schemas.material import (
    EcdsaKey,
    EcdsaSignature,
    MerkleProof,
    RsaKey,
    RsaSignature,
    SignatureContainer,
    SignedDocument,
)
from attestor.app.schemas.witness import (
    EcdsaKeyWitness,
    EcdsaSignatureWitness,
    RsaKeyWitness,
    RsaSignatureWitness,
    WitnessBundle,
)
from attestor.app.trust.fingerprint import fingerprint

logger = logging.getLogger(__name__)


SIGNATURE_BYTES = {
    "ecdsa-p256": 64,
    "rsa-2048": 256,
}


def _signature_witness(signature):
    if isinstance(signature, EcdsaSignature):
        return EcdsaSignatureWitness(r=signature.r.hex(), s=signature.s.hex())
    return RsaSignatureWitness(signature_bytes=signature.value.hex())


def _public_key_witness(public_key):
    if isinstance(public_key, EcdsaKey):
        return EcdsaKeyWitness(x=public_key.x.hex(), y=public_key.y.hex())

    limbs = encode_rsa_key(public_key)
    return RsaKeyWitness(
        modulus_limbs=[str(v) for v in limbs.modulus_limbs],
        redc_limbs=[str(v) for v in limbs.redc_limbs],
        exponent=limbs.exponent,
    )


def assemble(
    document: SignedDocument,
    container: SignatureContainer,
    proof: MerkleProof,
    compression: CompressionBackend,
    *,
    depth: int = MERKLE_DEPTH,
) -> WitnessBundle:
    signature = container.signature
    public_key = container.public_key
    algorithm = signature.kind

    # ----------------------------------------------------------
    # Signed content
    # ----------------------------------------------------------
    if container.message_digest != document.doc_hash:
        raise IntegrityError(
            "messageDigest does not match the document digest"
        )

    # ----------------------------------------------------------
    # Signature and key shape
    # ----------------------------------------------------------
    if public_key.kind != algorithm:
        raise StructuralError(
            f"Signature algorithm {algorithm} does not match "
            f"public key type {public_key.kind}"
        )

    signature_len = len(signature.to_bytes())
    if signature_len != SIGNATURE_BYTES[algorithm]:
        raise SizeConstraintError(
            "signature",
            f"{SIGNATURE_BYTES[algorithm]} bytes",
            f"{signature_len} bytes",
        )

    if isinstance(signature, RsaSignature) and isinstance(public_key, RsaKey):
        modulus = int.from_bytes(public_key.modulus, "big")
        if limbs_to_int(signature_limbs(signature)) >= modulus:
            raise SizeConstraintError(
                "signature", "value < modulus", "value >= modulus"
            )

    # ----------------------------------------------------------
    # Accumulator proof
    # ----------------------------------------------------------
    if not 0 <= proof.leaf_index < (1 << depth):
        raise SizeConstraintError(
            "leaf_index", f"0..{(1 << depth) - 1}", str(proof.leaf_index)
        )
    if len(proof.siblings) > depth:
        raise SizeConstraintError(
            "merkle_path", f"{depth} entries", f"{len(proof.siblings)} entries"
        )
    path = pad_merkle_path(proof.siblings, depth)

    signer = fingerprint(public_key)
    if signer.field != proof.leaf:
        raise MembershipError(
            signer.hex,
            f"Signer fingerprint {signer.hex} is not the leaf at index "
            f"{proof.leaf_index}",
        )

    if compute_root(proof.leaf, proof.leaf_index, path, compression) != proof.root:
        raise IntegrityError(
            f"Merkle path for index {proof.leaf_index} does not reproduce "
            "the trust root"
        )

    bundle = WitnessBundle(
        doc_hash=document.doc_hash.hex(),
        signed_attrs_hash=container.signed_attrs_hash.hex(),
        algorithm=algorithm,
        signature=_signature_witness(signature),
        public_key=_public_key_witness(public_key),
        signer_fingerprint=str(signer.field),
        trust_root=str(proof.root),
        merkle_path=[str(s) for s in path],
        leaf_index=str(proof.leaf_index),
    )

    logger.info(
        "Assembled %s witness for leaf %d", algorithm, proof.leaf_index
    )
    return bundle
