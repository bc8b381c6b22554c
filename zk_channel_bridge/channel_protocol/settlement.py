"""
Settlement checks: balance conservation and the canonical signed message.
"""

from __future__ import annotations

from typing import List, Mapping, Sequence

from .config import DOMAIN_SEPARATORS, MAX_FUNCTION_PROOFS, MIN_FUNCTION_PROOFS, WORD_BYTES
from .exceptions import ConservationError, PreconditionError
from .security import keccak256, left_pad_word, uint256_bytes
from .types import FunctionProof

UINT256_LIMIT = 2**256


def _is_uint256(value) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value < UINT256_LIMIT
    )


def check_function_proofs(function_proofs: Sequence[FunctionProof]) -> None:
    """
    Shape checks on the execution proof bundles of a settlement.

    Every value that enters the settlement message must encode as one
    32-byte word.

    Raises:
        PreconditionError: Proof count outside 1..5, a repeated function,
            a signature longer than 32 bytes, or a word outside uint256
    """
    if not MIN_FUNCTION_PROOFS <= len(function_proofs) <= MAX_FUNCTION_PROOFS:
        raise PreconditionError(
            f"{len(function_proofs)} function proofs supplied, expected "
            f"{MIN_FUNCTION_PROOFS} to {MAX_FUNCTION_PROOFS}"
        )
    signatures = [bytes(p.function_signature) for p in function_proofs]
    if len(set(signatures)) != len(signatures):
        raise PreconditionError("function proofs must reference distinct functions")

    for proof, signature in zip(function_proofs, signatures):
        if len(signature) > WORD_BYTES:
            raise PreconditionError(
                f"function signature {signature.hex()} is longer than {WORD_BYTES} bytes"
            )
        fields = (
            ("proof_part1", proof.proof_part1),
            ("proof_part2", proof.proof_part2),
            ("public_inputs", proof.public_inputs),
            ("smax", (proof.smax,)),
        )
        for name, words in fields:
            for word in words:
                if not _is_uint256(word):
                    raise PreconditionError(
                        f"{name} of function {signature.hex()} holds {word!r}, "
                        "not a uint256"
                    )


def check_dimensions(
    final_balances: Sequence[Sequence[int]],
    n_participants: int,
    n_tokens: int,
) -> None:
    """
    Raises:
        PreconditionError: If the matrix is not n_participants x n_tokens or
            holds an amount that is not a uint256
    """
    if len(final_balances) != n_participants:
        raise PreconditionError(
            f"final balances have {len(final_balances)} rows, "
            f"expected {n_participants} participants"
        )
    for i, row in enumerate(final_balances):
        if len(row) != n_tokens:
            raise PreconditionError(
                f"final balances row {i} has {len(row)} entries, "
                f"expected {n_tokens} tokens"
            )
        for amount in row:
            if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
                raise PreconditionError(
                    f"final balance {amount!r} is not a non-negative integer"
                )
            if amount >= UINT256_LIMIT:
                raise PreconditionError(f"final balance {amount} exceeds uint256")


def token_totals(final_balances: Sequence[Sequence[int]], n_tokens: int) -> List[int]:
    """Column sums of the final-balances matrix."""
    totals = [0] * n_tokens
    for row in final_balances:
        for j, amount in enumerate(row):
            totals[j] += amount
    return totals


def check_conservation(
    final_balances: Sequence[Sequence[int]],
    allowed_tokens: Sequence[str],
    total_deposits: Mapping[str, int],
) -> None:
    """
    Every token's final balances must sum to exactly its deposited total.

    Raises:
        ConservationError: On the first token that does not conserve
    """
    totals = token_totals(final_balances, len(allowed_tokens))
    for token, settled in zip(allowed_tokens, totals):
        deposited = total_deposits.get(token, 0)
        if settled != deposited:
            raise ConservationError(token, deposited, settled)


# ============================================================================
# SETTLEMENT MESSAGE
# ============================================================================


def _pack_words(values: Sequence[int]) -> bytes:
    return uint256_bytes(len(values)) + b"".join(uint256_bytes(int(v)) for v in values)


def function_proof_digest(proof: FunctionProof) -> bytes:
    """Keccak-256 of a length-prefixed packing of one execution proof."""
    return keccak256(
        _pack_words(proof.proof_part1),
        _pack_words(proof.proof_part2),
        _pack_words(proof.public_inputs),
        uint256_bytes(proof.smax),
    )


def settlement_message(
    channel_id: int,
    final_balances: Sequence[Sequence[int]],
    function_proofs: Sequence[FunctionProof],
) -> bytes:
    """
    Canonical 32-byte message the signer group signs for a settlement.

    ``keccak256(domain || channel_id || n_participants || n_tokens ||
    balances (participant-major) || (signature || proof digest)...)``
    """
    n_tokens = len(final_balances[0]) if final_balances else 0
    parts = [
        DOMAIN_SEPARATORS["settlement_message"],
        uint256_bytes(channel_id),
        uint256_bytes(len(final_balances)),
        uint256_bytes(n_tokens),
    ]
    for row in final_balances:
        parts.extend(uint256_bytes(amount) for amount in row)
    for proof in function_proofs:
        parts.append(left_pad_word(proof.function_signature))
        parts.append(function_proof_digest(proof))
    return keccak256(*parts)
