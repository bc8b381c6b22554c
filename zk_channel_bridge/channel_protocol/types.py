"""
⚠️ DRAFT — requires crypto review before production use

Common types for the channel protocol.

This module provides:
1. ChannelState - lifecycle enum
2. GroupPublicKey / ThresholdSignature - threshold signer material
3. Groth16Proof - initialization proof with CBOR serialization
4. RegisteredFunction / FunctionProof / ProofData - settlement inputs
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Tuple

try:
    import cbor2
except ImportError:
    raise ImportError(
        "cbor2 is required for proof serialization. "
        "Install with: pip install cbor2"
    )

from eth_utils import is_address, to_checksum_address

from .config import PROOF_VERSION
from .exceptions import ConfigurationError

G1Affine = Tuple[int, int]
G2Affine = Tuple[Tuple[int, int], Tuple[int, int]]


def normalize_address(value: str) -> str:
    """
    Normalize an identity (participant, leader or token) to checksum form.

    Raises:
        ValueError: If the value is not a 20-byte hex address
    """
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"Invalid address: {value!r}")
    return to_checksum_address(value)


# ============================================================================
# CHANNEL STATE
# ============================================================================


class ChannelState(Enum):
    """
    Channel lifecycle.

    NONE and CLOSED are owned by external collaborators. The core moves
    INITIALIZED -> OPEN and OPEN/ACTIVE -> CLOSING.
    """

    NONE = 0
    INITIALIZED = 1
    OPEN = 2
    ACTIVE = 3
    CLOSING = 4
    CLOSED = 5


SETTLEMENT_STATES = frozenset({ChannelState.OPEN, ChannelState.ACTIVE})


# ============================================================================
# THRESHOLD SIGNER
# ============================================================================


@dataclass(frozen=True)
class GroupPublicKey:
    """Affine secp256k1 point of the distributed signer group."""

    x: int
    y: int


@dataclass(frozen=True)
class ThresholdSignature:
    """
    Aggregated Schnorr signature over a 32-byte settlement message.

    Attributes:
        message: Signed message (the canonical settlement commitment)
        rx, ry: Affine coordinates of the aggregated nonce point R
        z: Aggregated response scalar
    """

    message: bytes
    rx: int
    ry: int
    z: int


# ============================================================================
# GROTH16 PROOF
# ============================================================================


@dataclass(frozen=True)
class Groth16Proof:
    """
    Groth16 proof (A in G1, B in G2, C in G1) as affine integer coordinates.

    G2 coordinates are (c0, c1) pairs, the order snarkjs emits.
    """

    a: G1Affine
    b: G2Affine
    c: G1Affine

    @classmethod
    def from_snarkjs(cls, obj: Mapping[str, Any]) -> "Groth16Proof":
        """
        Build from a snarkjs ``proof.json`` mapping (pi_a, pi_b, pi_c).

        Raises:
            ValueError: If required fields are missing or malformed
        """
        try:
            pi_a = obj["pi_a"]
            pi_b = obj["pi_b"]
            pi_c = obj["pi_c"]
            return cls(
                a=(int(pi_a[0]), int(pi_a[1])),
                b=(
                    (int(pi_b[0][0]), int(pi_b[0][1])),
                    (int(pi_b[1][0]), int(pi_b[1][1])),
                ),
                c=(int(pi_c[0]), int(pi_c[1])),
            )
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid snarkjs proof: {exc}") from exc

    def serialize(self) -> bytes:
        """Serialize proof to CBOR bytes with a version field."""
        try:
            data = {
                "v": PROOF_VERSION,
                "a": list(self.a),
                "b": [list(self.b[0]), list(self.b[1])],
                "c": list(self.c),
            }
            return cbor2.dumps(data)
        except Exception as e:
            raise ConfigurationError(f"Failed to serialize proof: {e}") from e

    @classmethod
    def deserialize(cls, data: bytes) -> "Groth16Proof":
        """
        Deserialize proof from CBOR bytes.

        Raises:
            ValueError: If version is unsupported or data is invalid
        """
        try:
            obj = cbor2.loads(data)
        except Exception as e:
            raise ValueError(f"Failed to deserialize proof: {e}") from e

        if not isinstance(obj, dict):
            raise ValueError("Invalid proof format: missing required fields")

        version = obj.get("v", 1)
        if version != PROOF_VERSION:
            raise ValueError(
                f"Unsupported proof version: {version} "
                f"(expected {PROOF_VERSION})"
            )

        if "a" not in obj or "b" not in obj or "c" not in obj:
            raise ValueError("Invalid proof format: missing required fields")

        a, b, c = obj["a"], obj["b"], obj["c"]
        return cls(
            a=(int(a[0]), int(a[1])),
            b=((int(b[0][0]), int(b[0][1])), (int(b[1][0]), int(b[1][1]))),
            c=(int(c[0]), int(c[1])),
        )


# ============================================================================
# SETTLEMENT INPUTS
# ============================================================================


@dataclass(frozen=True)
class RegisteredFunction:
    """
    Function signature plus the two halves of its preprocessed verifying key.

    ``instances_hash`` pins the function instance data of accepted proofs
    when set.
    """

    function_signature: bytes
    vk_part1: Tuple[int, ...]
    vk_part2: Tuple[int, ...]
    instances_hash: Optional[bytes] = None


@dataclass(frozen=True)
class FunctionProof:
    """One execution proof bundle paired to a registered function."""

    function_signature: bytes
    proof_part1: Tuple[int, ...]
    proof_part2: Tuple[int, ...]
    public_inputs: Tuple[int, ...]
    smax: int


@dataclass(frozen=True)
class ProofData:
    """
    Transient settlement payload.

    ``final_balances`` is indexed ``[participant][token]`` in the channel's
    participant and token order.
    """

    function_proofs: Tuple[FunctionProof, ...]
    final_balances: Tuple[Tuple[int, ...], ...]

    @classmethod
    def build(
        cls,
        function_proofs: Sequence[FunctionProof],
        final_balances: Sequence[Sequence[int]],
    ) -> "ProofData":
        return cls(
            function_proofs=tuple(function_proofs),
            final_balances=tuple(tuple(row) for row in final_balances),
        )
