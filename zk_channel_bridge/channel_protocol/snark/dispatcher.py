"""Capacity-sized Groth16 verifier dispatch."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

from ..commitment import public_signal_length
from ..config import SUPPORTED_TREE_SIZES
from ..exceptions import ConfigurationError
from ..types import G1Affine, G2Affine
from .groth16 import Groth16Verifier, VerifierVariant, VerifyingKey

logger = logging.getLogger(__name__)

Groth16Capability = Callable[[G1Affine, G2Affine, G1Affine, Sequence[int]], bool]


class TreeCapacity(Enum):
    """Supported tree capacities and the verifier variants deployed for each."""

    LEAVES_16 = 16
    LEAVES_32 = 32
    LEAVES_64 = 64
    LEAVES_128 = 128

    @property
    def variants(self) -> Tuple[VerifierVariant, ...]:
        return _CAPACITY_VARIANTS[self]

    @property
    def canonical_variant(self) -> VerifierVariant:
        return VerifierVariant.STANDARD

    @classmethod
    def from_tree_size(cls, tree_size: int) -> "TreeCapacity":
        try:
            return cls(tree_size)
        except ValueError as exc:
            raise ConfigurationError(
                f"Unsupported tree size: {tree_size}. Valid options: "
                f"{', '.join(str(s) for s in SUPPORTED_TREE_SIZES)}"
            ) from exc


_CAPACITY_VARIANTS: Mapping[TreeCapacity, Tuple[VerifierVariant, ...]] = {
    TreeCapacity.LEAVES_16: (VerifierVariant.STANDARD,),
    TreeCapacity.LEAVES_32: (VerifierVariant.STANDARD,),
    TreeCapacity.LEAVES_64: (VerifierVariant.STANDARD, VerifierVariant.IC),
    TreeCapacity.LEAVES_128: (
        VerifierVariant.STANDARD,
        VerifierVariant.IC1,
        VerifierVariant.IC2,
    ),
}


class VerifierDispatcher:
    """
    Route a proof to the verifier registered for the channel's capacity.

    Dispatch is on ``tree_size``; the signal vector must already have length
    ``2 * tree_size + 1``.
    """

    def __init__(self, verifiers: Mapping[int, Groth16Capability]) -> None:
        self._verifiers: Dict[TreeCapacity, Groth16Capability] = {}
        for tree_size, verifier in verifiers.items():
            self._verifiers[TreeCapacity.from_tree_size(tree_size)] = verifier

    @classmethod
    def from_verifying_keys(
        cls, keys: Mapping[int, VerifyingKey]
    ) -> "VerifierDispatcher":
        """
        Build canonical-variant verifiers from verifying keys.

        Raises:
            ConfigurationError: If a key's input count does not match its capacity
        """
        verifiers: Dict[int, Groth16Capability] = {}
        for tree_size, vk in keys.items():
            capacity = TreeCapacity.from_tree_size(tree_size)
            expected = public_signal_length(tree_size)
            if vk.n_public != expected:
                raise ConfigurationError(
                    f"verifying key for tree size {tree_size} has "
                    f"{vk.n_public} public inputs, expected {expected}"
                )
            verifiers[tree_size] = Groth16Verifier(vk, capacity.canonical_variant)
        return cls(verifiers)

    @classmethod
    def from_params_dir(
        cls, base_dir: Optional[str | Path] = None
    ) -> "VerifierDispatcher":
        """Load every capacity whose verifying key can be resolved."""
        from .assets import load_verifying_key, resolve_groth16_vk

        keys: Dict[int, VerifyingKey] = {}
        for tree_size in SUPPORTED_TREE_SIZES:
            try:
                path = resolve_groth16_vk(tree_size, base_dir=base_dir)
            except FileNotFoundError:
                logger.debug("no verifying key for tree size %d", tree_size)
                continue
            keys[tree_size] = load_verifying_key(path)
        return cls.from_verifying_keys(keys)

    @property
    def capacities(self) -> Tuple[int, ...]:
        return tuple(sorted(c.value for c in self._verifiers))

    def verify(
        self,
        tree_size: int,
        pA: G1Affine,
        pB: G2Affine,
        pC: G1Affine,
        public_signals: Sequence[int],
    ) -> bool:
        """
        Returns:
            Verification result. Any failure inside the verifier is False.

        Raises:
            ConfigurationError: Unsupported tree size, signal length mismatch,
                or no verifier registered for the capacity
        """
        capacity = TreeCapacity.from_tree_size(tree_size)
        expected = public_signal_length(tree_size)
        if len(public_signals) != expected:
            raise ConfigurationError(
                f"public signal length {len(public_signals)} does not match "
                f"tree size {tree_size} (expected {expected})"
            )

        verifier = self._verifiers.get(capacity)
        if verifier is None:
            raise ConfigurationError(
                f"no verifier registered for tree size {tree_size}"
            )

        logger.debug("dispatching groth16 verification to %s", capacity.name)
        try:
            return bool(verifier(pA, pB, pC, public_signals))
        except Exception:
            return False
