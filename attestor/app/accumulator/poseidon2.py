"""
Poseidon2 permutation over the BN254 scalar field.

Parameters are external. The round constants and internal diagonal are
loaded from a JSON file exported from the circuit toolchain, so the
accumulator hashes with exactly the parameter set the circuit was
compiled with. No parameter set ships with the package; point
POSEIDON2_PARAMS_PATH at the Barretenberg BN254 t=4 set the circuit uses.

Loaded parameters are checked against the published known answer
permutation([0, 1, 2, 3]) (REFERENCE_OUTPUT). A mismatch is logged as a
warning: roots built with such a set will not verify in the circuit.

JSON schema
-----------
{
  "t": 4,
  "rounds_f": 8,
  "rounds_p": 56,
  "alpha": 5,
  "internal_diagonal": [... t values ...],
  "round_constants":  [[... t values ...], ... rounds_f + rounds_p rows ...]
}

Values are JSON integers, decimal strings, or 0x-prefixed hex strings,
all reduced mod the field. Partial rounds use column 0 of their row only.

Round schedule
--------------
  - external linear layer on the input state
  - rounds_f / 2 full rounds:   add rc, S-box on every word, external layer
  - rounds_p partial rounds:    add rc[0], S-box on word 0, internal layer
  - rounds_f / 2 full rounds

External layer (t = 4) is the fixed circulant-style matrix

    [[5, 7, 1, 3],
     [4, 6, 1, 1],
     [1, 3, 5, 7],
     [1, 1, 4, 6]]

Internal layer: y_i = x_i * diag_i + sum(x).

Two-to-one compression is permutation([left, right, 0, 0])[0].
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Sequence, Union

import anyio
from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    field_validator,
    model_validator,
)

from attestor.app.errors import AccumulatorError
from attestor.app.utils.hashing import BN254_SCALAR_FIELD

logger = logging.getLogger(__name__)


STATE_WIDTH = 4

EXTERNAL_MATRIX_4 = (
    (5, 7, 1, 3),
    (4, 6, 1, 1),
    (1, 3, 5, 7),
    (1, 1, 4, 6),
)

# Barretenberg poseidon2 BN254 t=4 known answer.
REFERENCE_INPUT = (0, 1, 2, 3)
REFERENCE_OUTPUT = (
    0x01BD538C2EE014ED5141B29E9AE240BF8DB3FE5B9A38629A9647CF8D76C01737,
    0x239B62E7DB98AA3A2A8F6A0D2FA1709E7A35959AA6C7034814D9DAA90CBAC662,
    0x04CBB44C61D928ED06808456BF758CBF0C18D1E15A7B6DBC8245FA7515D5E3CB,
    0x2E11C5CFF2A22C64D01304B778D78F6998EFF1AB73163A35603F54794C30847A,
)


def _to_field(value: Union[int, str]) -> int:
    if isinstance(value, bool):
        raise ValueError("booleans are not field elements")
    if isinstance(value, int):
        return value % BN254_SCALAR_FIELD
    text = str(value).strip().lower()
    if text.startswith("0x"):
        return int(text, 16) % BN254_SCALAR_FIELD
    return int(text) % BN254_SCALAR_FIELD


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------

class Poseidon2Params(BaseModel):
    t: int = STATE_WIDTH
    rounds_f: int
    rounds_p: int
    alpha: int = 5
    internal_diagonal: List[int]
    round_constants: List[List[int]]

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("internal_diagonal", mode="before")
    @classmethod
    def coerce_diagonal(cls, v):
        if not isinstance(v, list):
            raise ValueError("internal_diagonal must be a list")
        return [_to_field(x) for x in v]

    @field_validator("round_constants", mode="before")
    @classmethod
    def coerce_round_constants(cls, v):
        if not isinstance(v, list) or not all(isinstance(row, list) for row in v):
            raise ValueError("round_constants must be a list of lists")
        return [[_to_field(x) for x in row] for row in v]

    @model_validator(mode="after")
    def check_shape(self) -> "Poseidon2Params":
        if self.t != STATE_WIDTH:
            raise ValueError(f"t must be {STATE_WIDTH}, got {self.t}")
        if self.rounds_f <= 0 or self.rounds_f % 2 != 0:
            raise ValueError("rounds_f must be a positive even number")
        if self.rounds_p <= 0:
            raise ValueError("rounds_p must be positive")
        if self.alpha < 3 or self.alpha % 2 == 0:
            raise ValueError("alpha must be an odd integer >= 3")
        if len(self.internal_diagonal) != self.t:
            raise ValueError(f"internal_diagonal must have {self.t} entries")

        expected_rounds = self.rounds_f + self.rounds_p
        if len(self.round_constants) != expected_rounds or any(
            len(row) != self.t for row in self.round_constants
        ):
            raise ValueError(
                "round_constants must be (rounds_f + rounds_p) x t = "
                f"{expected_rounds} x {self.t}"
            )
        return self


def parse_params(raw: dict) -> Poseidon2Params:
    try:
        return Poseidon2Params.model_validate(raw)
    except ValidationError as exc:
        raise AccumulatorError(f"Invalid Poseidon2 parameters: {exc}") from exc


async def load_params(path: Path) -> Poseidon2Params:
    """Read and validate a parameter file."""
    try:
        text = await anyio.Path(path).read_text(encoding="utf-8")
        raw = json.loads(text)
    except OSError as exc:
        raise AccumulatorError(
            f"Unable to read Poseidon2 parameters from {path}: {exc}"
        ) from exc
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise AccumulatorError(
            f"Poseidon2 parameter file {path} is not valid JSON: {exc}"
        ) from exc

    if not isinstance(raw, dict):
        raise AccumulatorError(
            f"Poseidon2 parameter file {path} must contain a JSON object"
        )

    params = parse_params(raw)
    logger.info(
        "Loaded Poseidon2 parameters from %s (R_F=%d, R_P=%d)",
        path,
        params.rounds_f,
        params.rounds_p,
    )
    if not matches_reference(params):
        logger.warning(
            "Poseidon2 parameters from %s do not reproduce the BN254 t=4 "
            "known answer; Merkle roots will not match the circuit",
            path,
        )
    return params


# ---------------------------------------------------------------------------
# Permutation
# ---------------------------------------------------------------------------

def _external_layer(state: List[int]) -> List[int]:
    p = BN254_SCALAR_FIELD
    return [
        sum(m * x for m, x in zip(row, state)) % p
        for row in EXTERNAL_MATRIX_4
    ]


def _internal_layer(state: List[int], diagonal: Sequence[int]) -> List[int]:
    p = BN254_SCALAR_FIELD
    total = sum(state) % p
    return [(x * d + total) % p for x, d in zip(state, diagonal)]


def permute(state: Sequence[int], params: Poseidon2Params) -> List[int]:
    if len(state) != params.t:
        raise ValueError(f"state length {len(state)} != t={params.t}")

    p = BN254_SCALAR_FIELD
    alpha = params.alpha
    rc = params.round_constants
    half = params.rounds_f // 2

    x = _external_layer([int(v) % p for v in state])
    r = 0

    for _ in range(half):
        x = [pow((v + c) % p, alpha, p) for v, c in zip(x, rc[r])]
        x = _external_layer(x)
        r += 1

    for _ in range(params.rounds_p):
        x[0] = pow((x[0] + rc[r][0]) % p, alpha, p)
        x = _internal_layer(x, params.internal_diagonal)
        r += 1

    for _ in range(half):
        x = [pow((v + c) % p, alpha, p) for v, c in zip(x, rc[r])]
        x = _external_layer(x)
        r += 1

    return x


def matches_reference(params: Poseidon2Params) -> bool:
    return tuple(permute(REFERENCE_INPUT, params)) == REFERENCE_OUTPUT


# ---------------------------------------------------------------------------
# Compression backend
# ---------------------------------------------------------------------------

class Poseidon2Compression:
    """
    Merkle node compression with Poseidon2.

    initialize() must be awaited once before compress() is used.
    """

    name = "poseidon2"

    def __init__(self, params_path: Path) -> None:
        self._params_path = params_path
        self._params: Poseidon2Params | None = None

    @classmethod
    def from_params(cls, params: Poseidon2Params) -> "Poseidon2Compression":
        backend = cls(params_path=Path("<in-memory>"))
        backend._params = params
        return backend

    async def initialize(self) -> None:
        if self._params is None:
            self._params = await load_params(self._params_path)

    def compress(self, left: int, right: int) -> int:
        if self._params is None:
            raise AccumulatorError(
                "Poseidon2 backend used before initialize() was awaited"
            )
        return permute([left, right, 0, 0], self._params)[0]
