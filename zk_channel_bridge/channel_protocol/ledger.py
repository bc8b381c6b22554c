"""
In-memory channel ledger.

Holds channel records and exposes the read accessors and core-owned write
path the state machine relies on. Creation, deposits and signer setup stand
in for the external collaborators that own those steps.
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence, Tuple

from .commitment import check_capacity
from .exceptions import (
    ConfigurationError,
    InvalidChannelStateError,
    LedgerInvariantError,
    UnknownChannelError,
)
from .security import derive_signer_address
from .types import ChannelState, GroupPublicKey, normalize_address

logger = logging.getLogger(__name__)

EntryKey = Tuple[str, str]


@dataclass
class ChannelRecord:
    """Persistent state of one channel."""

    channel_id: int
    leader: str
    participants: Tuple[str, ...]
    allowed_tokens: Tuple[str, ...]
    tree_size: int
    state: ChannelState = ChannelState.INITIALIZED
    group_public_key: Optional[GroupPublicKey] = None
    signer_address: Optional[str] = None
    deposits: Dict[EntryKey, int] = field(default_factory=dict)
    l2_keys: Dict[EntryKey, int] = field(default_factory=dict)
    total_deposits: Dict[str, int] = field(default_factory=dict)
    initial_state_root: Optional[int] = None
    withdraw_amounts: Dict[EntryKey, int] = field(default_factory=dict)
    signature_verified: bool = False


@dataclass(frozen=True)
class ChannelUpdate:
    """
    Core-owned field changes applied together by ``ChannelLedger.apply``.

    ``None`` leaves a field unchanged.
    """

    state: Optional[ChannelState] = None
    initial_state_root: Optional[int] = None
    withdraw_amounts: Optional[Mapping[EntryKey, int]] = None
    signature_verified: Optional[bool] = None


class ChannelLedger:
    """Key-value store of channel records."""

    def __init__(self) -> None:
        self._channels: Dict[int, ChannelRecord] = {}
        self._lock = threading.Lock()
        self._next_id = 1

    # ========================================================================
    # COLLABORATOR STAND-INS
    # ========================================================================

    def create_channel(
        self,
        leader: str,
        participants: Sequence[str],
        allowed_tokens: Sequence[str],
        tree_size: int,
        channel_id: Optional[int] = None,
    ) -> int:
        """
        Create a channel in state INITIALIZED.

        Raises:
            ValueError: Malformed identities
            ConfigurationError: Duplicate/empty participants or tokens,
                unsupported tree size, id already taken
            CapacityError: participants x tokens exceeds tree_size
        """
        leader = normalize_address(leader)
        participants = tuple(normalize_address(p) for p in participants)
        allowed_tokens = tuple(normalize_address(t) for t in allowed_tokens)
        if not participants or not allowed_tokens:
            raise ConfigurationError("channel needs participants and tokens")
        if len(set(participants)) != len(participants):
            raise ConfigurationError("duplicate participant")
        if len(set(allowed_tokens)) != len(allowed_tokens):
            raise ConfigurationError("duplicate token")
        check_capacity(tree_size, participants, allowed_tokens)

        with self._lock:
            if channel_id is None:
                channel_id = self._next_id
            if channel_id in self._channels:
                raise ConfigurationError(f"channel {channel_id} already exists")
            self._next_id = max(self._next_id, channel_id + 1)
            self._channels[channel_id] = ChannelRecord(
                channel_id=channel_id,
                leader=leader,
                participants=participants,
                allowed_tokens=allowed_tokens,
                tree_size=tree_size,
            )
        logger.info(
            "created channel %d: %d participants, %d tokens, tree size %d",
            channel_id,
            len(participants),
            len(allowed_tokens),
            tree_size,
        )
        return channel_id

    def record_deposit(
        self,
        channel_id: int,
        participant: str,
        token: str,
        amount: int,
        l2_key: Optional[int] = None,
    ) -> None:
        """
        Raises:
            InvalidChannelStateError: Channel no longer INITIALIZED
            ConfigurationError: Unknown participant/token, bad amount or L2 key
        """
        with self._lock:
            record = self._require(channel_id)
            if record.state != ChannelState.INITIALIZED:
                raise InvalidChannelStateError(
                    f"channel {channel_id} is {record.state.name}, deposits "
                    "require INITIALIZED"
                )
            key = self._entry_key(record, participant, token)
            if not isinstance(amount, int) or amount <= 0:
                raise ConfigurationError("deposit amount must be a positive integer")
            if l2_key is not None:
                self._check_l2_key(l2_key)
            record.deposits[key] = record.deposits.get(key, 0) + amount
            record.total_deposits[key[1]] = record.total_deposits.get(key[1], 0) + amount
            if l2_key is not None:
                record.l2_keys[key] = l2_key

    def set_l2_key(self, channel_id: int, participant: str, token: str, l2_key: int) -> None:
        with self._lock:
            record = self._require(channel_id)
            if record.state != ChannelState.INITIALIZED:
                raise InvalidChannelStateError(
                    f"channel {channel_id} is {record.state.name}, L2 keys "
                    "require INITIALIZED"
                )
            key = self._entry_key(record, participant, token)
            self._check_l2_key(l2_key)
            record.l2_keys[key] = l2_key

    def set_group_public_key(self, channel_id: int, public_key: GroupPublicKey) -> str:
        """
        Bind the signer group key and derive its signer address (once).

        Raises:
            LedgerInvariantError: If a key is already set
        """
        with self._lock:
            record = self._require(channel_id)
            if record.group_public_key is not None:
                raise LedgerInvariantError(
                    f"channel {channel_id} already has a group public key"
                )
            record.group_public_key = public_key
            record.signer_address = derive_signer_address(public_key.x, public_key.y)
            return record.signer_address

    def mark_active(self, channel_id: int) -> None:
        """External OPEN -> ACTIVE move."""
        with self._lock:
            record = self._require(channel_id)
            if record.state != ChannelState.OPEN:
                raise InvalidChannelStateError(
                    f"channel {channel_id} is {record.state.name}, expected OPEN"
                )
            record.state = ChannelState.ACTIVE

    # ========================================================================
    # READ ACCESSORS
    # ========================================================================

    def exists(self, channel_id: int) -> bool:
        with self._lock:
            return channel_id in self._channels

    def snapshot(self, channel_id: int) -> ChannelRecord:
        """Deep copy of a channel record; mutating it does not touch the ledger."""
        with self._lock:
            return copy.deepcopy(self._require(channel_id))

    def get_channel_state(self, channel_id: int) -> ChannelState:
        with self._lock:
            return self._require(channel_id).state

    def get_leader(self, channel_id: int) -> str:
        with self._lock:
            return self._require(channel_id).leader

    def get_participants(self, channel_id: int) -> Tuple[str, ...]:
        with self._lock:
            return self._require(channel_id).participants

    def get_allowed_tokens(self, channel_id: int) -> Tuple[str, ...]:
        with self._lock:
            return self._require(channel_id).allowed_tokens

    def get_tree_size(self, channel_id: int) -> int:
        with self._lock:
            return self._require(channel_id).tree_size

    def get_deposit(self, channel_id: int, participant: str, token: str) -> int:
        with self._lock:
            record = self._require(channel_id)
            return record.deposits.get(self._entry_key(record, participant, token), 0)

    def get_l2_key(self, channel_id: int, participant: str, token: str) -> int:
        with self._lock:
            record = self._require(channel_id)
            return record.l2_keys.get(self._entry_key(record, participant, token), 0)

    def get_total_deposits(self, channel_id: int, token: str) -> int:
        with self._lock:
            return self._require(channel_id).total_deposits.get(normalize_address(token), 0)

    def get_group_public_key(self, channel_id: int) -> Optional[GroupPublicKey]:
        with self._lock:
            return self._require(channel_id).group_public_key

    def get_signer_address(self, channel_id: int) -> Optional[str]:
        with self._lock:
            return self._require(channel_id).signer_address

    def get_initial_state_root(self, channel_id: int) -> Optional[int]:
        with self._lock:
            return self._require(channel_id).initial_state_root

    def get_withdraw_amount(self, channel_id: int, participant: str, token: str) -> int:
        with self._lock:
            record = self._require(channel_id)
            return record.withdraw_amounts.get(
                self._entry_key(record, participant, token), 0
            )

    def is_signature_verified(self, channel_id: int) -> bool:
        with self._lock:
            return self._require(channel_id).signature_verified

    # ========================================================================
    # CORE-OWNED WRITES
    # ========================================================================

    def apply(self, channel_id: int, update: ChannelUpdate) -> None:
        """
        Apply every field of ``update`` or none of them.

        Raises:
            LedgerInvariantError: initial_state_root or withdraw_amounts
                already written
        """
        with self._lock:
            record = self._require(channel_id)
            if update.initial_state_root is not None and record.initial_state_root is not None:
                raise LedgerInvariantError(
                    f"channel {channel_id} initial state root is immutable"
                )
            if update.withdraw_amounts is not None and record.withdraw_amounts:
                raise LedgerInvariantError(
                    f"channel {channel_id} withdraw amounts already settled"
                )

            if update.initial_state_root is not None:
                record.initial_state_root = update.initial_state_root
            if update.withdraw_amounts is not None:
                record.withdraw_amounts = dict(update.withdraw_amounts)
            if update.signature_verified is not None:
                record.signature_verified = update.signature_verified
            if update.state is not None:
                record.state = update.state

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _require(self, channel_id: int) -> ChannelRecord:
        record = self._channels.get(channel_id)
        if record is None:
            raise UnknownChannelError(f"channel {channel_id} does not exist")
        return record

    @staticmethod
    def _entry_key(record: ChannelRecord, participant: str, token: str) -> EntryKey:
        participant = normalize_address(participant)
        token = normalize_address(token)
        if participant not in record.participants:
            raise ConfigurationError(
                f"{participant} is not a participant of channel {record.channel_id}"
            )
        if token not in record.allowed_tokens:
            raise ConfigurationError(
                f"{token} is not an allowed token of channel {record.channel_id}"
            )
        return participant, token

    @staticmethod
    def _check_l2_key(l2_key: int) -> None:
        if not isinstance(l2_key, int) or isinstance(l2_key, bool) or l2_key < 0:
            raise ConfigurationError(
                f"L2 key {l2_key!r} is not a non-negative integer"
            )
