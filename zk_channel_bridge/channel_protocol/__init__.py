"""Public API for the channel proof-gated state machine.

Modules that pull in petlib (signatures) or py_ecc (Groth16 pairing) are
exported lazily so the accounting parts import without them.
"""
from __future__ import annotations

from importlib import import_module

from .commitment import build_public_signals, check_capacity, reduce_to_field
from .exceptions import (
    CapacityError,
    ChannelProtocolError,
    ConfigurationError,
    ConservationError,
    CryptographicRejection,
    InvalidChannelStateError,
    InvalidProofError,
    InvalidSignatureError,
    LedgerInvariantError,
    PreconditionError,
    ReentrantCallError,
    UnauthorizedCallerError,
    UnknownChannelError,
    UnregisteredFunctionError,
)
from .execution import FunctionRegistry, compute_function_instance_hash
from .ledger import ChannelLedger, ChannelRecord, ChannelUpdate
from .merkle import compute_leaf_hash, compute_merkle_root, verify_balance
from .settlement import check_conservation, settlement_message
from .types import (
    ChannelState,
    FunctionProof,
    Groth16Proof,
    GroupPublicKey,
    ProofData,
    RegisteredFunction,
    ThresholdSignature,
)

__all__ = [
    "build_public_signals",
    "check_capacity",
    "reduce_to_field",
    "CapacityError",
    "ChannelProtocolError",
    "ConfigurationError",
    "ConservationError",
    "CryptographicRejection",
    "InvalidChannelStateError",
    "InvalidProofError",
    "InvalidSignatureError",
    "LedgerInvariantError",
    "PreconditionError",
    "ReentrantCallError",
    "UnauthorizedCallerError",
    "UnknownChannelError",
    "UnregisteredFunctionError",
    "FunctionRegistry",
    "compute_function_instance_hash",
    "ChannelLedger",
    "ChannelRecord",
    "ChannelUpdate",
    "compute_leaf_hash",
    "compute_merkle_root",
    "verify_balance",
    "check_conservation",
    "settlement_message",
    "ChannelState",
    "FunctionProof",
    "Groth16Proof",
    "GroupPublicKey",
    "ProofData",
    "RegisteredFunction",
    "ThresholdSignature",
    "ChannelStateMachine",
    "VerifierDispatcher",
    "Groth16Verifier",
    "VerifyingKey",
    "ThresholdSignatureVerifier",
    "recover_signer",
]

_LAZY_EXPORTS = {
    "ChannelStateMachine": "channel",
    "VerifierDispatcher": "snark.dispatcher",
    "Groth16Verifier": "snark.groth16",
    "VerifyingKey": "snark.groth16",
    "ThresholdSignatureVerifier": "signature",
    "recover_signer": "signature",
}


def __getattr__(name: str):
    if name in _LAZY_EXPORTS:
        module = import_module(f"{__name__}.{_LAZY_EXPORTS[name]}")
        value = getattr(module, name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
