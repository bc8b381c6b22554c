"""
⚠️ DRAFT — requires crypto review before production use

Threshold Schnorr signatures over secp256k1 (petlib).

Verification (the settlement adapter):
    c = Keccak(domain || R || PK || message) mod n
    accept iff z*G == R + c*PK

``recover_signer`` returns the signer address bound to PK on success and the
zero address otherwise. The address is ``keccak256(pkx || pky)[12:]``.

Signing side (collaborator tooling): a group secret is Shamir-shared over
Z_n; any ``threshold`` holders produce partial responses
``z_i = k_i + c * lambda_i * s_i`` which sum to a signature for PK.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple
import logging
import threading

try:
    from petlib.ec import EcGroup, EcPt
    from petlib.bn import Bn
except ImportError:
    raise ImportError(
        "petlib is required for threshold signatures. "
        "Install with: pip install petlib"
    )

from .config import (
    DOMAIN_SEPARATORS,
    SIGNATURE_COORDINATE_BYTES,
    SIGNATURE_CURVE_NID,
    SIGNATURE_GROUP_ORDER,
    ZERO_ADDRESS,
)
from .exceptions import ConfigurationError
from .security import (
    RandomnessSource,
    derive_signer_address,
    hash_to_scalar,
    uint256_bytes,
)
from .types import GroupPublicKey, ThresholdSignature

logger = logging.getLogger(__name__)


# ============================================================================
# CURVE SETUP
# ============================================================================


@dataclass
class SignatureCurve:
    """secp256k1 group, generator and order."""

    group: Any  # EcGroup
    G: Any  # EcPt
    order: int


def setup_signature_curve() -> SignatureCurve:
    """
    Raises:
        ConfigurationError: If the group order does not match configuration
    """
    group = EcGroup(SIGNATURE_CURVE_NID)
    order = int(group.order())
    if order != SIGNATURE_GROUP_ORDER:
        raise ConfigurationError(
            f"Group order mismatch: expected {SIGNATURE_GROUP_ORDER}, got {order}"
        )
    return SignatureCurve(group=group, G=group.generator(), order=order)


_CACHED_CURVE: Optional[SignatureCurve] = None
_CACHE_LOCK = threading.Lock()


def get_cached_signature_curve() -> SignatureCurve:
    global _CACHED_CURVE
    if _CACHED_CURVE is None:
        with _CACHE_LOCK:
            if _CACHED_CURVE is None:
                _CACHED_CURVE = setup_signature_curve()
    return _CACHED_CURVE


def _bn(value: int) -> Bn:
    return Bn.from_decimal(str(value))


def point_from_coordinates(x: int, y: int, curve: Optional[SignatureCurve] = None):
    """
    Decode affine coordinates into a curve point.

    Raises:
        ValueError: If the coordinates are not a point of the group
    """
    curve = curve or get_cached_signature_curve()
    encoded = (
        b"\x04"
        + x.to_bytes(SIGNATURE_COORDINATE_BYTES, "big")
        + y.to_bytes(SIGNATURE_COORDINATE_BYTES, "big")
    )
    try:
        point = EcPt.from_binary(encoded, curve.group)
    except Exception as exc:
        raise ValueError("coordinates are not a secp256k1 point") from exc
    if not curve.group.check_point(point):
        raise ValueError("coordinates are not a secp256k1 point")
    return point


def point_coordinates(point) -> Tuple[int, int]:
    x, y = point.get_affine()
    return int(x), int(y)


# ============================================================================
# VERIFICATION
# ============================================================================


def compute_challenge(
    message: bytes, pkx: int, pky: int, rx: int, ry: int, order: int
) -> int:
    data = (
        uint256_bytes(rx)
        + uint256_bytes(ry)
        + uint256_bytes(pkx)
        + uint256_bytes(pky)
        + bytes(message)
    )
    return hash_to_scalar(data, order, DOMAIN_SEPARATORS["signature_challenge"])


def recover_signer(
    message: bytes, pkx: int, pky: int, rx: int, ry: int, z: int
) -> str:
    """
    Recover the identity that produced a signature.

    Returns:
        Signer address if ``z*G == R + c*PK``, else the zero address
    """
    try:
        curve = get_cached_signature_curve()
        if not 0 < z < curve.order:
            return ZERO_ADDRESS
        public_key = point_from_coordinates(pkx, pky, curve)
        nonce_point = point_from_coordinates(rx, ry, curve)
        c = compute_challenge(message, pkx, pky, rx, ry, curve.order)

        lhs = _bn(z) * curve.G
        rhs = nonce_point + _bn(c) * public_key
        if lhs == rhs:
            return derive_signer_address(pkx, pky)
    except Exception:
        logger.debug("signature recovery raised", exc_info=True)
    return ZERO_ADDRESS


class ThresholdSignatureVerifier:
    """Settlement adapter: recover the signer and compare to the channel's."""

    def __init__(self, recover=recover_signer) -> None:
        self._recover = recover

    def verify(
        self,
        signature: ThresholdSignature,
        group_public_key: GroupPublicKey,
        signer_address: str,
    ) -> bool:
        recovered = self._recover(
            signature.message,
            group_public_key.x,
            group_public_key.y,
            signature.rx,
            signature.ry,
            signature.z,
        )
        if recovered == ZERO_ADDRESS:
            return False
        return recovered.lower() == signer_address.lower()


# ============================================================================
# SIGNING (collaborator tooling)
# ============================================================================


def derive_group_public_key(
    secret: int, curve: Optional[SignatureCurve] = None
) -> GroupPublicKey:
    curve = curve or get_cached_signature_curve()
    if not 0 < secret < curve.order:
        raise ValueError("secret must be in [1, n)")
    x, y = point_coordinates(_bn(secret) * curve.G)
    return GroupPublicKey(x=x, y=y)


def split_secret(
    secret: int,
    threshold: int,
    n_shares: int,
    randomness_source: Optional[RandomnessSource] = None,
) -> Dict[int, int]:
    """
    Shamir-share ``secret`` over Z_n.

    Returns:
        Mapping share index (1..n_shares) -> share
    """
    if not 1 <= threshold <= n_shares:
        raise ValueError("threshold must be in [1, n_shares]")
    order = SIGNATURE_GROUP_ORDER
    if not 0 < secret < order:
        raise ValueError("secret must be in [1, n)")

    randomness_source = randomness_source or RandomnessSource()
    coefficients = [secret] + [
        randomness_source.get_random_scalar(order) for _ in range(threshold - 1)
    ]
    shares = {}
    for index in range(1, n_shares + 1):
        value = 0
        for coefficient in reversed(coefficients):
            value = (value * index + coefficient) % order
        shares[index] = value
    return shares


def lagrange_coefficient(index: int, indices: Sequence[int]) -> int:
    """Lagrange coefficient at zero for ``index`` over ``indices`` in Z_n."""
    order = SIGNATURE_GROUP_ORDER
    numerator, denominator = 1, 1
    for other in indices:
        if other == index:
            continue
        numerator = (numerator * other) % order
        denominator = (denominator * (other - index)) % order
    return (numerator * pow(denominator, -1, order)) % order


def sign_with_shares(
    shares: Mapping[int, int],
    message: bytes,
    group_public_key: GroupPublicKey,
    randomness_source: Optional[RandomnessSource] = None,
) -> ThresholdSignature:
    """
    Produce an aggregated signature from a signing subset's shares.

    Each holder commits a nonce point, the commitments are summed into R, and
    the partial responses are summed into z.
    """
    if not shares:
        raise ValueError("at least one share is required")
    curve = get_cached_signature_curve()
    randomness_source = randomness_source or RandomnessSource()

    nonces = {i: randomness_source.get_random_scalar(curve.order) for i in shares}
    nonce_point = None
    for k in nonces.values():
        commitment = _bn(k) * curve.G
        nonce_point = commitment if nonce_point is None else nonce_point + commitment
    rx, ry = point_coordinates(nonce_point)

    c = compute_challenge(
        message, group_public_key.x, group_public_key.y, rx, ry, curve.order
    )
    indices = list(shares)
    z = 0
    for i, share in shares.items():
        partial = nonces[i] + c * lagrange_coefficient(i, indices) * share
        z = (z + partial) % curve.order

    return ThresholdSignature(message=bytes(message), rx=rx, ry=ry, z=z)


def sign_message(
    secret: int,
    message: bytes,
    randomness_source: Optional[RandomnessSource] = None,
) -> ThresholdSignature:
    """Single-holder signature (a 1-of-1 group)."""
    return sign_with_shares(
        {1: secret}, message, derive_group_public_key(secret), randomness_source
    )
