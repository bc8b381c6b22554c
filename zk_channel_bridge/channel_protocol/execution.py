"""
Execution proofs: the registered-function registry and per-proof checks.

The execution proof system itself is an external capability, consumed as
``verify(proof_part1, proof_part2, vk_part1, vk_part2, public_inputs, smax)``.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, Optional, Protocol, Sequence

from .config import FUNCTION_INSTANCE_OFFSET, WORD_BYTES
from .exceptions import ConfigurationError, UnregisteredFunctionError
from .security import constant_time_compare, keccak256, uint256_bytes
from .types import FunctionProof, RegisteredFunction

logger = logging.getLogger(__name__)


class ExecutionProofVerifier(Protocol):
    def __call__(
        self,
        proof_part1: Sequence[int],
        proof_part2: Sequence[int],
        vk_part1: Sequence[int],
        vk_part2: Sequence[int],
        public_inputs: Sequence[int],
        smax: int,
    ) -> bool:
        ...


def compute_function_instance_hash(public_inputs: Sequence[int]) -> bytes:
    """
    Keccak-256 of the function instance data of an execution proof.

    Function instance data starts at index 66 (user data 0-41, block data
    42-65); each entry is encoded as a 32-byte word.

    Raises:
        ConfigurationError: If public_inputs has no function instance data
    """
    if len(public_inputs) <= FUNCTION_INSTANCE_OFFSET:
        raise ConfigurationError(
            "Public inputs too short for function instance data: "
            f"{len(public_inputs)} <= {FUNCTION_INSTANCE_OFFSET}"
        )
    words = [uint256_bytes(int(v)) for v in public_inputs[FUNCTION_INSTANCE_OFFSET:]]
    return keccak256(*words)


class FunctionRegistry:
    """Mapping function signature -> RegisteredFunction."""

    def __init__(self) -> None:
        self._functions: Dict[bytes, RegisteredFunction] = {}

    def register(self, function: RegisteredFunction) -> None:
        """
        Raises:
            ConfigurationError: If the signature is empty, longer than one
                word, or already registered
        """
        signature = bytes(function.function_signature)
        if not signature:
            raise ConfigurationError("function signature cannot be empty")
        if len(signature) > WORD_BYTES:
            raise ConfigurationError(
                f"function signature is {len(signature)} bytes, "
                f"at most {WORD_BYTES} allowed"
            )
        if signature in self._functions:
            raise ConfigurationError(
                f"function {signature.hex()} is already registered"
            )
        self._functions[signature] = function

    def get(self, function_signature: bytes) -> Optional[RegisteredFunction]:
        return self._functions.get(bytes(function_signature))

    def require(self, function_signature: bytes) -> RegisteredFunction:
        function = self.get(function_signature)
        if function is None:
            raise UnregisteredFunctionError(
                f"function {bytes(function_signature).hex()} is not registered"
            )
        return function

    def __contains__(self, function_signature: bytes) -> bool:
        return bytes(function_signature) in self._functions

    def __iter__(self) -> Iterator[RegisteredFunction]:
        return iter(self._functions.values())

    def __len__(self) -> int:
        return len(self._functions)


def verify_function_proof(
    function: RegisteredFunction,
    proof: FunctionProof,
    verifier: ExecutionProofVerifier,
) -> bool:
    """
    Check one execution proof against its registered function.

    Returns:
        True only if the instance hash (when pinned) matches and the
        capability accepts the proof. Never raises.
    """
    try:
        if function.instances_hash is not None:
            instance_hash = compute_function_instance_hash(proof.public_inputs)
            if not constant_time_compare(instance_hash, function.instances_hash):
                return False
        return bool(
            verifier(
                proof.proof_part1,
                proof.proof_part2,
                function.vk_part1,
                function.vk_part2,
                proof.public_inputs,
                proof.smax,
            )
        )
    except Exception:
        logger.debug("execution proof verification raised", exc_info=True)
        return False
