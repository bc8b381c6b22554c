"""Shared fixtures: a simulated Groth16 setup with a known trapdoor.

Knowing alpha, beta, gamma, delta and the input polynomials' evaluations lets
the tests build proofs that satisfy the pairing equation for any chosen
public-signal vector, without a circuit or a prover.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, List, Sequence

import pytest


@dataclass
class SimulatedGroth16:
    """Verifying key plus the trapdoor needed to forge proofs for it."""

    n_public: int
    alpha: int
    beta: int
    gamma: int
    delta: int
    u: List[int]
    seed: int

    @property
    def verifying_key(self):
        from zk_channel_bridge.channel_protocol.snark.groth16 import VerifyingKey

        return VerifyingKey(
            alpha_1=_g1(self.alpha),
            beta_2=_g2(self.beta),
            gamma_2=_g2(self.gamma),
            delta_2=_g2(self.delta),
            ic=tuple(_g1(self._ic_scalar(i)) for i in range(self.n_public + 1)),
        )

    def prove(self, public_signals: Sequence[int]):
        """Proof (A, B, C) accepted for exactly ``public_signals``."""
        from py_ecc.optimized_bls12_381 import curve_order

        from zk_channel_bridge.channel_protocol.types import Groth16Proof

        rng = random.Random(self.seed + sum(public_signals) % 1000003)
        a = rng.randrange(1, curve_order)
        b = rng.randrange(1, curve_order)
        inputs = [1] + [int(s) for s in public_signals]
        committed = sum(s * u for s, u in zip(inputs, self.u)) % curve_order
        c = (a * b - self.alpha * self.beta - committed) * pow(self.delta, -1, curve_order)
        return Groth16Proof(a=_g1(a), b=_g2(b), c=_g1(c % curve_order))

    def _ic_scalar(self, i: int) -> int:
        from py_ecc.optimized_bls12_381 import curve_order

        return self.u[i] * pow(self.gamma, -1, curve_order) % curve_order

    def verifying_key_json(self) -> Dict:
        vk = self.verifying_key
        return {
            "protocol": "groth16",
            "curve": "bls12381",
            "nPublic": self.n_public,
            "vk_alpha_1": _g1_json(vk.alpha_1),
            "vk_beta_2": _g2_json(vk.beta_2),
            "vk_gamma_2": _g2_json(vk.gamma_2),
            "vk_delta_2": _g2_json(vk.delta_2),
            "IC": [_g1_json(p) for p in vk.ic],
        }

    @staticmethod
    def proof_json(proof) -> Dict:
        return {
            "pi_a": _g1_json(proof.a),
            "pi_b": _g2_json(proof.b),
            "pi_c": _g1_json(proof.c),
            "protocol": "groth16",
            "curve": "bls12381",
        }


def _g1(scalar: int):
    from py_ecc.optimized_bls12_381 import G1, multiply, normalize

    x, y = normalize(multiply(G1, scalar))
    return (int(x), int(y))


def _g2(scalar: int):
    from py_ecc.optimized_bls12_381 import G2, multiply, normalize

    x, y = normalize(multiply(G2, scalar))
    return (
        (int(x.coeffs[0]), int(x.coeffs[1])),
        (int(y.coeffs[0]), int(y.coeffs[1])),
    )


def _g1_json(point):
    return [str(point[0]), str(point[1]), "1"]


def _g2_json(point):
    return [
        [str(point[0][0]), str(point[0][1])],
        [str(point[1][0]), str(point[1][1])],
        ["1", "0"],
    ]


def make_simulated_groth16(n_public: int, seed: int = 7) -> SimulatedGroth16:
    from py_ecc.optimized_bls12_381 import curve_order

    rng = random.Random(seed)
    draw = lambda: rng.randrange(1, curve_order)  # noqa: E731
    return SimulatedGroth16(
        n_public=n_public,
        alpha=draw(),
        beta=draw(),
        gamma=draw(),
        delta=draw(),
        u=[draw() for _ in range(n_public + 1)],
        seed=seed,
    )


@pytest.fixture(scope="session")
def groth16_tree16():
    """Simulated setup sized for a 16-leaf channel (33 public signals)."""
    pytest.importorskip("py_ecc")
    return make_simulated_groth16(2 * 16 + 1)


@pytest.fixture(scope="session")
def groth16_small():
    """Simulated setup with three public inputs, for fast verifier tests."""
    pytest.importorskip("py_ecc")
    return make_simulated_groth16(3, seed=11)
