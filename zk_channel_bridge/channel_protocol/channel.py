"""
⚠️ DRAFT — requires crypto review before production use

Channel proof-gated state machine.

Owns the two transitions of the channel lifecycle that require proofs:

    initialize_channel_state   INITIALIZED   -> OPEN
    submit_settlement          OPEN | ACTIVE -> CLOSING

Each transition validates against a snapshot of the channel record and then
commits every field change in a single ``ChannelLedger.apply`` call. A
rejection at any step leaves the ledger untouched.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Protocol

from .commitment import build_public_signals
from .exceptions import (
    ChannelProtocolError,
    InvalidChannelStateError,
    InvalidProofError,
    InvalidSignatureError,
    PreconditionError,
    ReentrantCallError,
    UnauthorizedCallerError,
)
from .execution import ExecutionProofVerifier, FunctionRegistry, verify_function_proof
from .ledger import ChannelLedger, ChannelRecord, ChannelUpdate
from .security import constant_time_compare
from .settlement import (
    check_conservation,
    check_dimensions,
    check_function_proofs,
    settlement_message,
)
from .snark.dispatcher import VerifierDispatcher
from .types import (
    SETTLEMENT_STATES,
    ChannelState,
    GroupPublicKey,
    Groth16Proof,
    ProofData,
    ThresholdSignature,
    normalize_address,
)

logger = logging.getLogger(__name__)

_FINISHED_STATES = frozenset({ChannelState.CLOSING, ChannelState.CLOSED})


class SignatureVerifier(Protocol):
    def verify(
        self,
        signature: ThresholdSignature,
        group_public_key: GroupPublicKey,
        signer_address: str,
    ) -> bool:
        ...


class ChannelStateMachine:
    """
    Sequence commitment building, proof dispatch, conservation and signer
    checks for one ledger.

    Args:
        ledger: Channel records
        dispatcher: Capacity-sized Groth16 verifier dispatch
        execution_verifier: Execution proof capability
        functions: Registered functions (verifying key halves)
        signature_verifier: Threshold signature adapter. Defaults to the
            petlib Schnorr verifier.
    """

    def __init__(
        self,
        ledger: ChannelLedger,
        dispatcher: VerifierDispatcher,
        execution_verifier: ExecutionProofVerifier,
        functions: Optional[FunctionRegistry] = None,
        signature_verifier: Optional[SignatureVerifier] = None,
    ) -> None:
        if signature_verifier is None:
            from .signature import ThresholdSignatureVerifier

            signature_verifier = ThresholdSignatureVerifier()

        self.ledger = ledger
        self.dispatcher = dispatcher
        self.execution_verifier = execution_verifier
        self.functions = functions if functions is not None else FunctionRegistry()
        self.signature_verifier = signature_verifier

        self._locks: Dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._local = threading.local()

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    def initialize_channel_state(
        self,
        channel_id: int,
        caller: str,
        claimed_root: int,
        proof: Groth16Proof,
    ) -> None:
        """
        Verify the initialization proof and move INITIALIZED -> OPEN.

        The public-signal vector is rebuilt from the ledger; nothing but the
        claimed root is taken from the caller.

        Raises:
            PreconditionError: Unknown channel, caller is not the leader,
                channel not INITIALIZED
            ConfigurationError: Capacity overflow, zero key with nonzero
                balance, signal length mismatch, no verifier for the capacity
            InvalidProofError: The proof was rejected
        """
        with self._transition(channel_id, "initialize"):
            record = self.ledger.snapshot(channel_id)
            self._require_leader(record, caller)
            if record.state != ChannelState.INITIALIZED:
                raise InvalidChannelStateError(
                    f"channel {channel_id} is {record.state.name}, "
                    "initialization requires INITIALIZED"
                )

            signals = build_public_signals(
                record.tree_size,
                record.participants,
                record.allowed_tokens,
                claimed_root,
                record.l2_keys,
                record.deposits,
            )
            if not self.dispatcher.verify(
                record.tree_size, proof.a, proof.b, proof.c, signals
            ):
                raise InvalidProofError()

            self.ledger.apply(
                channel_id,
                ChannelUpdate(
                    state=ChannelState.OPEN,
                    initial_state_root=claimed_root,
                ),
            )

        logger.info("channel %d initialized, state root committed", channel_id)

    def submit_settlement(
        self,
        channel_id: int,
        caller: str,
        proof_data: ProofData,
        signature: ThresholdSignature,
    ) -> None:
        """
        Validate a settlement and move OPEN/ACTIVE -> CLOSING.

        Checks run in order: registered functions, execution proofs,
        conservation, signature. Withdraw amounts, the signature flag and the
        new state are written together only if all of them pass.

        Raises:
            PreconditionError: Unknown channel, wrong caller or state, proof
                count outside 1..5, repeated function, matrix dimensions,
                unregistered function, no registered signer
            InvalidProofError: An execution proof was rejected
            ConservationError: A token's balances do not sum to its deposits
            InvalidSignatureError: Wrong message or signer
        """
        with self._transition(channel_id, "settlement"):
            record = self.ledger.snapshot(channel_id)
            self._require_leader(record, caller)
            if record.state not in SETTLEMENT_STATES:
                raise InvalidChannelStateError(
                    f"channel {channel_id} is {record.state.name}, "
                    "settlement requires OPEN or ACTIVE"
                )

            proofs = proof_data.function_proofs
            check_function_proofs(proofs)
            signatures = [bytes(p.function_signature) for p in proofs]

            balances = proof_data.final_balances
            check_dimensions(
                balances, len(record.participants), len(record.allowed_tokens)
            )
            if record.group_public_key is None or record.signer_address is None:
                raise PreconditionError(
                    f"channel {channel_id} has no registered signer group"
                )

            functions = [self.functions.require(s) for s in signatures]

            for function, proof in zip(functions, proofs):
                if not verify_function_proof(function, proof, self.execution_verifier):
                    raise InvalidProofError()

            check_conservation(balances, record.allowed_tokens, record.total_deposits)

            expected_message = settlement_message(channel_id, balances, proofs)
            if not self._signature_accepted(record, signature, expected_message):
                raise InvalidSignatureError()

            withdraw_amounts = {
                (participant, token): balances[i][j]
                for i, participant in enumerate(record.participants)
                for j, token in enumerate(record.allowed_tokens)
            }
            self.ledger.apply(
                channel_id,
                ChannelUpdate(
                    state=ChannelState.CLOSING,
                    withdraw_amounts=withdraw_amounts,
                    signature_verified=True,
                ),
            )

        logger.info(
            "channel %d settled with %d function proofs, now CLOSING",
            channel_id,
            len(proofs),
        )

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _signature_accepted(
        self,
        record: ChannelRecord,
        signature: ThresholdSignature,
        expected_message: bytes,
    ) -> bool:
        try:
            if not constant_time_compare(bytes(signature.message), expected_message):
                return False
            return bool(
                self.signature_verifier.verify(
                    signature, record.group_public_key, record.signer_address
                )
            )
        except Exception:
            logger.debug("signature verification raised", exc_info=True)
            return False

    @staticmethod
    def _require_leader(record: ChannelRecord, caller: str) -> None:
        try:
            caller = normalize_address(caller)
        except ValueError as exc:
            raise UnauthorizedCallerError(f"caller {caller!r} is not an address") from exc
        if caller != record.leader:
            raise UnauthorizedCallerError(
                f"caller {caller} is not the leader of channel {record.channel_id}"
            )

    def _channel_lock(self, channel_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(channel_id)
            if lock is None:
                lock = self._locks[channel_id] = threading.Lock()
            return lock

    def _evict_lock_if_finished(self, channel_id: int) -> None:
        """Drop the lock of a channel that no transition can move any more."""
        if not self.ledger.exists(channel_id):
            return
        if self.ledger.get_channel_state(channel_id) in _FINISHED_STATES:
            with self._locks_guard:
                self._locks.pop(channel_id, None)

    @contextmanager
    def _transition(self, channel_id: int, name: str) -> Iterator[None]:
        """
        Serialize transitions on one channel and reject any nested transition
        started from inside a verification capability, on any channel.
        """
        active = getattr(self._local, "transition", None)
        if active is not None:
            raise ReentrantCallError(
                f"{name} on channel {channel_id} called while {active[0]} on "
                f"channel {active[1]} is in progress"
            )
        self._local.transition = (name, channel_id)
        try:
            # Unknown ids fail here, before a lock is allocated for them.
            self.ledger.get_channel_state(channel_id)
            with self._channel_lock(channel_id):
                yield
        except ChannelProtocolError as exc:
            logger.warning(
                "%s rejected for channel %d: %s",
                name,
                channel_id,
                type(exc).__name__,
            )
            raise
        finally:
            self._local.transition = None
            self._evict_lock_if_finished(channel_id)
