"""
⚠️ DRAFT — requires crypto review before production use

Hashing and encoding utilities shared by the protocol modules.
"""

import hmac
import os
import secrets
from typing import Optional

from eth_utils import keccak, to_checksum_address

from .config import WORD_BYTES


# ============================================================================
# RANDOMNESS SOURCE (Fork-Safe)
# ============================================================================


class RandomnessSource:
    """
    Cryptographically secure randomness with fork detection.

    Prevents nonce reuse across forked processes.
    """

    def __init__(self):
        self._pid = os.getpid()
        self._rng = secrets.SystemRandom()

    def get_random_scalar(self, max_value: int) -> int:
        """Random scalar in [1, max_value)."""
        if os.getpid() != self._pid:
            self.__init__()
        return self._rng.randrange(1, max_value)


# ============================================================================
# ENCODING
# ============================================================================


def uint256_bytes(value: int) -> bytes:
    """
    Encode a non-negative integer as a 32-byte big-endian word.

    Raises:
        TypeError: If value is not an int
        ValueError: If value does not fit in 256 bits
    """
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"value must be int, got {type(value)}")
    if value < 0 or value >= 2**256:
        raise ValueError(f"value out of uint256 range: {value}")
    return value.to_bytes(WORD_BYTES, "big")


def left_pad_word(data: bytes) -> bytes:
    """Left-pad up to 32 bytes. Longer inputs are rejected."""
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(f"data must be bytes, got {type(data)}")
    if len(data) > WORD_BYTES:
        raise ValueError(f"data must be at most {WORD_BYTES} bytes")
    return bytes(data).rjust(WORD_BYTES, b"\x00")


# ============================================================================
# HASH FUNCTIONS
# ============================================================================


def keccak256(*parts: bytes) -> bytes:
    """Keccak-256 over the concatenation of ``parts``."""
    return keccak(b"".join(parts))


def hash_to_scalar(
    data: bytes, max_value: int, domain_sep: Optional[bytes] = None
) -> int:
    """
    Hash data to scalar in [0, max_value) with domain separation.

    Raises:
        TypeError: If inputs are wrong type
        ValueError: If max_value is not > 1
    """
    if not isinstance(data, bytes):
        raise TypeError(f"data must be bytes, got {type(data)}")
    if max_value <= 1:
        raise ValueError(f"max_value must be > 1, got {max_value}")

    prefix = domain_sep or b""
    digest = keccak256(prefix, data)
    return int.from_bytes(digest, "big") % max_value


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """
    Constant-time comparison to prevent timing attacks.

    Uses hmac.compare_digest, which takes constant time regardless of where
    the inputs differ.
    """
    return hmac.compare_digest(a, b)


def derive_signer_address(pkx: int, pky: int) -> str:
    """Checksummed address bound to a group public key: keccak256(pkx || pky)[12:]."""
    digest = keccak256(uint256_bytes(pkx), uint256_bytes(pky))
    return to_checksum_address(digest[12:])
