"""
Public-signal builder for the channel initialization circuit.

Layout (length ``2 * tree_size + 1``)::

    [0]                          claimed root
    [1 .. tree_size]             L2 keys, token-major, participant-minor
    [tree_size+1 .. 2*tree_size] balances, same order

Slots past ``len(participants) * len(allowed_tokens)`` are zero. Keys and
balances are reduced modulo R_MOD; the root is passed through unchanged.
"""

from __future__ import annotations

from typing import Mapping, Sequence, Tuple

from .config import R_MOD, SUPPORTED_TREE_SIZES
from .exceptions import CapacityError, ConfigurationError

EntryKey = Tuple[str, str]


def reduce_to_field(value: int) -> int:
    """Reduce a native unsigned integer into the circuit scalar field."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"value must be int, got {type(value)}")
    if value < 0:
        raise ValueError("value must be non-negative")
    return value % R_MOD


def public_signal_length(tree_size: int) -> int:
    return 2 * tree_size + 1


def slot_index(participant_index: int, token_index: int, n_participants: int) -> int:
    """Leaf slot of (participant i, token j): ``j * n_participants + i``."""
    return token_index * n_participants + participant_index


def check_capacity(
    tree_size: int,
    participants: Sequence[str],
    allowed_tokens: Sequence[str],
) -> None:
    """
    Raises:
        ConfigurationError: If tree_size is not a supported capacity
        CapacityError: If participants x tokens does not fit tree_size
    """
    if tree_size not in SUPPORTED_TREE_SIZES:
        raise ConfigurationError(
            f"Unsupported tree size: {tree_size}. "
            f"Valid options: {', '.join(str(s) for s in SUPPORTED_TREE_SIZES)}"
        )
    entries = len(participants) * len(allowed_tokens)
    if entries > tree_size:
        raise CapacityError(
            f"{len(participants)} participants x {len(allowed_tokens)} tokens "
            f"= {entries} entries exceeds tree size {tree_size}"
        )


def build_public_signals(
    tree_size: int,
    participants: Sequence[str],
    allowed_tokens: Sequence[str],
    claimed_root: int,
    l2_keys: Mapping[EntryKey, int],
    deposits: Mapping[EntryKey, int],
) -> Tuple[int, ...]:
    """
    Build the initialization circuit's public-signal vector from ledger data.

    Args:
        tree_size: Channel capacity (one of SUPPORTED_TREE_SIZES)
        participants: Ordered participant identities
        allowed_tokens: Ordered token identifiers
        claimed_root: Root submitted by the leader
        l2_keys: (participant, token) -> L2 key; missing entries are zero
        deposits: (participant, token) -> amount; missing entries are zero

    Returns:
        Tuple of ``2 * tree_size + 1`` integers

    Raises:
        ConfigurationError: Unsupported tree size, a nonzero balance with
            a zero L2 key, or a key or balance that is not a non-negative int
        CapacityError: Too many entries for tree_size
    """
    check_capacity(tree_size, participants, allowed_tokens)
    if not isinstance(claimed_root, int) or claimed_root < 0:
        raise ConfigurationError("claimed root must be a non-negative integer")

    signals = [0] * public_signal_length(tree_size)
    signals[0] = claimed_root

    n_participants = len(participants)
    for j, token in enumerate(allowed_tokens):
        for i, participant in enumerate(participants):
            key = l2_keys.get((participant, token), 0)
            balance = deposits.get((participant, token), 0)
            if balance != 0 and key == 0:
                raise ConfigurationError(
                    f"participant {participant} holds a balance of token "
                    f"{token} but has no L2 key"
                )
            slot = slot_index(i, j, n_participants)
            try:
                signals[1 + slot] = reduce_to_field(key)
                signals[1 + tree_size + slot] = reduce_to_field(balance)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(
                    f"entry of participant {participant} for token {token} "
                    f"cannot be committed: {exc}"
                ) from exc

    return tuple(signals)
