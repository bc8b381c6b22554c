"""Groth16 verification for channel initialization proofs."""

from .dispatcher import Groth16Capability, TreeCapacity, VerifierDispatcher
from .groth16 import Groth16Verifier, VerifierVariant, VerifyingKey

__all__ = [
    "Groth16Capability",
    "Groth16Verifier",
    "TreeCapacity",
    "VerifierDispatcher",
    "VerifierVariant",
    "VerifyingKey",
]
