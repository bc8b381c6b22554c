"""
Balance Merkle tree for off-chain auditable balance claims.

Keccak-256 leaves over (participant, token, amount) and sorted-pair node
hashing. An odd node at any level is promoted unchanged to the next level.
"""

from typing import Iterable, List, Sequence, Tuple

from eth_utils import to_canonical_address

from .config import BALANCE_TREE_EMPTY_ROOT
from .security import constant_time_compare, keccak256, uint256_bytes


def compute_leaf_hash(participant: str, token: str, amount: int) -> bytes:
    """
    Hash a balance leaf.

    Encoding is ``participant (20 bytes) || token (20 bytes) || amount (32 bytes)``.

    Returns:
        32-byte Keccak-256 hash

    Example:
        leaf = compute_leaf_hash(alice, token, 10**18)
    """
    return keccak256(
        to_canonical_address(participant),
        to_canonical_address(token),
        uint256_bytes(amount),
    )


def compute_node_hash(a: bytes, b: bytes) -> bytes:
    """
    Hash two child hashes, smaller first.

    Order independent: ``compute_node_hash(a, b) == compute_node_hash(b, a)``.
    """
    if a <= b:
        return keccak256(a, b)
    return keccak256(b, a)


def balance_leaves(entries: Iterable[Tuple[str, str, int]]) -> List[bytes]:
    """Hash ``(participant, token, amount)`` entries in order."""
    return [
        compute_leaf_hash(participant, token, amount)
        for participant, token, amount in entries
    ]


def build_balance_tree(leaves: Sequence[bytes]) -> List[List[bytes]]:
    """
    Build every level of the tree, leaves first and root last.

    Returns:
        List of levels. Empty input gives an empty list.
    """
    if not leaves:
        return []

    levels: List[List[bytes]] = [list(leaves)]
    while len(levels[-1]) > 1:
        current = levels[-1]
        next_level: List[bytes] = []
        for i in range(0, len(current), 2):
            if i + 1 < len(current):
                next_level.append(compute_node_hash(current[i], current[i + 1]))
            else:
                # Odd node, promoted as-is
                next_level.append(current[i])
        levels.append(next_level)
    return levels


def compute_merkle_root(leaves: Sequence[bytes]) -> bytes:
    """
    Compute the root of a leaf-hash sequence.

    Returns:
        32-byte root, or BALANCE_TREE_EMPTY_ROOT for zero leaves
    """
    levels = build_balance_tree(leaves)
    if not levels:
        return BALANCE_TREE_EMPTY_ROOT
    return levels[-1][0]


def generate_balance_proof(leaves: Sequence[bytes], index: int) -> List[bytes]:
    """
    Sibling path for the leaf at ``index``.

    Levels where the node was promoted contribute no sibling.

    Raises:
        IndexError: If index is out of range
    """
    if index < 0 or index >= len(leaves):
        raise IndexError(f"leaf index {index} out of range")

    proof: List[bytes] = []
    position = index
    for level in build_balance_tree(leaves)[:-1]:
        sibling = position ^ 1
        if sibling < len(level):
            proof.append(level[sibling])
        position //= 2
    return proof


def verify_proof(leaf_hash: bytes, proof: Sequence[bytes], root: bytes) -> bool:
    """Replay a sibling path from ``leaf_hash`` and compare with ``root``."""
    current = leaf_hash
    for sibling in proof:
        current = compute_node_hash(current, sibling)
    return constant_time_compare(current, root)


def verify_balance(
    root: bytes,
    participant: str,
    token: str,
    amount: int,
    proof: Sequence[bytes],
) -> bool:
    """
    Verify a balance claim against a root.

    Returns:
        True if the claim is included, False otherwise (never raises on
        malformed claims)
    """
    try:
        leaf_hash = compute_leaf_hash(participant, token, amount)
        return verify_proof(leaf_hash, proof, root)
    except (TypeError, ValueError):
        return False
