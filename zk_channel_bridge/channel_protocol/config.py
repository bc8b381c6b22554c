"""
⚠️ DRAFT — requires crypto review before production use

Protocol configuration for the channel proof-gated state machine.

All constants consumed by the commitment builder, the verifier dispatcher,
the settlement validator and the threshold signature adapter live here.
"""

# ============================================================================
# CIRCUIT FIELD
# ============================================================================

# BLS12-381 scalar field prime. Every public signal handed to the Groth16
# verifier is reduced modulo this value. Must match the circuit exactly.
R_MOD = 0x73EDA753299D7D483339D80809A1D80553BDA402FFFE5BFEFFFFFFFF00000001
R_MOD_BITS = 255

# BLS12-381 base field prime (curve point coordinates).
BLS12_381_FIELD_MODULUS = int(
    "1a0111ea397fe69a4b1ba7b6434bacd764774b84f38512bf"
    "6730d2a0f6b0f6241eabfffeb153ffffb9feffffffffaaab",
    16,
)

# ============================================================================
# TREE CAPACITIES
# ============================================================================

# Leaf capacities with a deployed initialization circuit.
SUPPORTED_TREE_SIZES = (16, 32, 64, 128)

# ============================================================================
# SETTLEMENT
# ============================================================================

MIN_FUNCTION_PROOFS = 1
MAX_FUNCTION_PROOFS = 5

# Execution proof public inputs: user data 0-41, block data 42-65,
# function instance data 66+.
FUNCTION_INSTANCE_OFFSET = 66

# ============================================================================
# THRESHOLD SIGNATURE CURVE
# ============================================================================

SIGNATURE_CURVE_NAME = "secp256k1"
SIGNATURE_CURVE_LIBRARY = "petlib"
SIGNATURE_CURVE_NID = 714  # OpenSSL NID for secp256k1
SIGNATURE_GROUP_ORDER = (
    0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
)
SIGNATURE_COORDINATE_BYTES = 32

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# ============================================================================
# HASHING / DOMAIN SEPARATION
# ============================================================================

HASH_FUNCTION = "KECCAK-256"
WORD_BYTES = 32

DOMAIN_SEPARATOR_PREFIX = b"ZK_CHANNEL_BRIDGE_V1_"

DOMAIN_SEPARATORS = {
    "signature_challenge": DOMAIN_SEPARATOR_PREFIX + b"FROST_CHALLENGE",
    "settlement_message": DOMAIN_SEPARATOR_PREFIX + b"SETTLEMENT",
}

# computeMerkleRoot of an empty leaf set.
BALANCE_TREE_EMPTY_ROOT = b"\x00" * 32

# ============================================================================
# SERIALIZATION
# ============================================================================

SERIALIZATION_FORMAT = "CBOR"
PROOF_VERSION = 1

# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> bool:
    """
    Validate configuration parameters.

    Returns:
        True if configuration is valid

    Raises:
        AssertionError: If configuration is invalid
    """
    assert R_MOD.bit_length() == R_MOD_BITS, "R_MOD has unexpected width"
    assert R_MOD < BLS12_381_FIELD_MODULUS, "scalar field must be below base field"
    assert tuple(sorted(SUPPORTED_TREE_SIZES)) == SUPPORTED_TREE_SIZES
    assert all(size > 0 for size in SUPPORTED_TREE_SIZES), "Invalid tree size"
    assert 1 <= MIN_FUNCTION_PROOFS <= MAX_FUNCTION_PROOFS
    assert SIGNATURE_CURVE_LIBRARY == "petlib", "secp256k1 requires petlib library"
    assert SIGNATURE_CURVE_NID == 714, "secp256k1 NID must be 714"
    assert len(BALANCE_TREE_EMPTY_ROOT) == WORD_BYTES
    return True


# Auto-validate on import
validate_config()
