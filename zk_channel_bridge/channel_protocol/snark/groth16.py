"""
⚠️ DRAFT — requires crypto review before production use

Groth16 verification over BLS12-381 (snarkjs JSON formats).

Pairing arithmetic is delegated to py_ecc. This module only decodes points,
checks curve and subgroup membership, and evaluates

    e(A, B) == e(alpha, beta) * e(vk_x, gamma) * e(C, delta)

with ``vk_x = IC[0] + sum(s_i * IC[i + 1])``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Sequence, Tuple

from py_ecc.optimized_bls12_381 import (
    FQ,
    FQ2,
    FQ12,
    Z1,
    add,
    b,
    b2,
    curve_order,
    field_modulus,
    final_exponentiate,
    is_inf,
    is_on_curve,
    multiply,
    neg,
    pairing,
)

from ..config import BLS12_381_FIELD_MODULUS, R_MOD
from ..types import G1Affine, G2Affine


def _validate_field_constants():
    """
    Check py_ecc's BLS12-381 constants against the configured moduli.

    Raises:
        ValueError: If either modulus differs
    """
    if curve_order != R_MOD:
        raise ValueError(
            f"R_MOD mismatch: expected {hex(curve_order)}, got {hex(R_MOD)}"
        )
    if field_modulus != BLS12_381_FIELD_MODULUS:
        raise ValueError("BLS12-381 base field modulus mismatch")


_validate_field_constants()


class InvalidPointError(ValueError):
    """Point is malformed, off-curve or outside the prime-order subgroup."""


# ============================================================================
# POINT DECODING
# ============================================================================


def _fq(value: int) -> FQ:
    if not 0 <= value < field_modulus:
        raise InvalidPointError("coordinate out of field range")
    return FQ(value)


def decode_g1(point: G1Affine):
    """Affine (x, y) to a py_ecc G1 point. (0, 0) encodes infinity."""
    x, y = int(point[0]), int(point[1])
    if x == 0 and y == 0:
        return Z1
    decoded = (_fq(x), _fq(y), FQ.one())
    if not is_on_curve(decoded, b):
        raise InvalidPointError("G1 point not on curve")
    if not is_inf(multiply(decoded, curve_order)):
        raise InvalidPointError("G1 point not in prime-order subgroup")
    return decoded


def decode_g2(point: G2Affine):
    """Affine ((x_c0, x_c1), (y_c0, y_c1)) to a py_ecc G2 point."""
    (x0, x1), (y0, y1) = point
    coords = [int(x0), int(x1), int(y0), int(y1)]
    if all(c == 0 for c in coords):
        return (FQ2.one(), FQ2.one(), FQ2.zero())
    for c in coords:
        _fq(c)
    decoded = (FQ2(coords[0:2]), FQ2(coords[2:4]), FQ2.one())
    if not is_on_curve(decoded, b2):
        raise InvalidPointError("G2 point not on curve")
    if not is_inf(multiply(decoded, curve_order)):
        raise InvalidPointError("G2 point not in prime-order subgroup")
    return decoded


def _g1_from_snarkjs(value: Sequence[Any]) -> G1Affine:
    if len(value) > 2 and int(value[2]) == 0:
        return (0, 0)
    return (int(value[0]), int(value[1]))


def _g2_from_snarkjs(value: Sequence[Any]) -> G2Affine:
    if len(value) > 2 and all(int(c) == 0 for c in value[2]):
        return ((0, 0), (0, 0))
    return (
        (int(value[0][0]), int(value[0][1])),
        (int(value[1][0]), int(value[1][1])),
    )


# ============================================================================
# VERIFYING KEY
# ============================================================================


@dataclass(frozen=True)
class VerifyingKey:
    """
    Groth16 verifying key.

    Attributes:
        alpha_1: alpha in G1
        beta_2, gamma_2, delta_2: G2 elements
        ic: Input commitment bases, ``n_public + 1`` G1 points
    """

    alpha_1: G1Affine
    beta_2: G2Affine
    gamma_2: G2Affine
    delta_2: G2Affine
    ic: Tuple[G1Affine, ...]

    @property
    def n_public(self) -> int:
        return len(self.ic) - 1

    @classmethod
    def from_snarkjs(cls, obj: Mapping[str, Any]) -> "VerifyingKey":
        """
        Build from a snarkjs ``verification_key.json`` mapping.

        Raises:
            ValueError: If the protocol/curve is wrong or fields are missing
        """
        protocol = obj.get("protocol", "groth16")
        if protocol != "groth16":
            raise ValueError(f"Unsupported protocol: {protocol!r}")
        curve = str(obj.get("curve", "bls12381")).lower().replace("-", "")
        if curve not in ("bls12381", "bls12_381"):
            raise ValueError(f"Unsupported curve: {obj.get('curve')!r}")

        try:
            vk = cls(
                alpha_1=_g1_from_snarkjs(obj["vk_alpha_1"]),
                beta_2=_g2_from_snarkjs(obj["vk_beta_2"]),
                gamma_2=_g2_from_snarkjs(obj["vk_gamma_2"]),
                delta_2=_g2_from_snarkjs(obj["vk_delta_2"]),
                ic=tuple(_g1_from_snarkjs(p) for p in obj["IC"]),
            )
        except (KeyError, IndexError, TypeError) as exc:
            raise ValueError(f"Invalid verifying key: {exc}") from exc

        n_public = obj.get("nPublic")
        if n_public is not None and int(n_public) != vk.n_public:
            raise ValueError(
                f"nPublic {n_public} does not match IC length {len(vk.ic)}"
            )
        return vk


# ============================================================================
# VERIFIER VARIANTS
# ============================================================================


class VerifierVariant(Enum):
    """
    How the input commitment ``vk_x`` is accumulated.

    The value is the number of IC chunks summed separately. All variants
    accept exactly the same proofs.
    """

    STANDARD = 1
    IC = 2
    IC1 = 3
    IC2 = 4

    @property
    def ic_chunks(self) -> int:
        return self.value


class Groth16Verifier:
    """Verify Groth16 proofs against one verifying key."""

    def __init__(
        self,
        vk: VerifyingKey,
        variant: VerifierVariant = VerifierVariant.STANDARD,
    ) -> None:
        self.vk = vk
        self.variant = variant
        self._alpha = decode_g1(vk.alpha_1)
        self._beta = decode_g2(vk.beta_2)
        self._gamma = decode_g2(vk.gamma_2)
        self._delta = decode_g2(vk.delta_2)
        self._ic = [decode_g1(p) for p in vk.ic]

    @property
    def n_public(self) -> int:
        return self.vk.n_public

    def __call__(
        self,
        pA: G1Affine,
        pB: G2Affine,
        pC: G1Affine,
        public_signals: Sequence[int],
    ) -> bool:
        return self.verify(pA, pB, pC, public_signals)

    def verify(
        self,
        pA: G1Affine,
        pB: G2Affine,
        pC: G1Affine,
        public_signals: Sequence[int],
    ) -> bool:
        """
        Returns:
            True if the proof verifies, False on any failure
        """
        try:
            if len(public_signals) != self.n_public:
                return False
            signals = [int(s) for s in public_signals]
            if any(s < 0 or s >= R_MOD for s in signals):
                return False

            a = decode_g1(pA)
            b_point = decode_g2(pB)
            c = decode_g1(pC)
            vk_x = self._accumulate_inputs(signals)

            product = (
                pairing(b_point, neg(a), final_exponentiate=False)
                * pairing(self._beta, self._alpha, final_exponentiate=False)
                * pairing(self._gamma, vk_x, final_exponentiate=False)
                * pairing(self._delta, c, final_exponentiate=False)
            )
            return final_exponentiate(product) == FQ12.one()
        except Exception:
            return False

    def _accumulate_inputs(self, signals: Sequence[int]):
        terms = list(zip(self._ic[1:], signals))
        vk_x = self._ic[0]
        if not terms:
            return vk_x

        chunks = min(self.variant.ic_chunks, len(terms))
        size = -(-len(terms) // chunks)
        for start in range(0, len(terms), size):
            partial = Z1
            for base, scalar in terms[start:start + size]:
                if scalar:
                    partial = add(partial, multiply(base, scalar))
            vk_x = add(vk_x, partial)
        return vk_x
