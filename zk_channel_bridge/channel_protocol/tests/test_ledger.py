"""Tests for the in-memory channel ledger."""

import pytest
from eth_utils import to_checksum_address

from zk_channel_bridge.channel_protocol.exceptions import (
    CapacityError,
    ConfigurationError,
    InvalidChannelStateError,
    LedgerInvariantError,
    UnknownChannelError,
)
from zk_channel_bridge.channel_protocol.ledger import ChannelLedger, ChannelUpdate
from zk_channel_bridge.channel_protocol.security import derive_signer_address
from zk_channel_bridge.channel_protocol.types import ChannelState, GroupPublicKey

LEADER = "0x" + "1e" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
TOKEN = "0x" + "70" * 20
OTHER_TOKEN = "0x" + "71" * 20


@pytest.fixture
def ledger():
    return ChannelLedger()


@pytest.fixture
def channel_id(ledger):
    return ledger.create_channel(LEADER, [ALICE, BOB], [TOKEN, OTHER_TOKEN], 16)


class TestCreateChannel:
    def test_initial_state(self, ledger, channel_id):
        assert channel_id == 1
        assert ledger.get_channel_state(channel_id) is ChannelState.INITIALIZED
        assert ledger.get_tree_size(channel_id) == 16
        assert ledger.get_initial_state_root(channel_id) is None
        assert ledger.is_signature_verified(channel_id) is False

    def test_identities_are_normalized(self, ledger, channel_id):
        assert ledger.get_leader(channel_id) == to_checksum_address(LEADER)
        assert ledger.get_participants(channel_id)[0].lower() == ALICE
        assert ledger.get_allowed_tokens(channel_id)[1].lower() == OTHER_TOKEN

    def test_sequential_ids(self, ledger, channel_id):
        assert ledger.create_channel(LEADER, [ALICE], [TOKEN], 16) == 2

    def test_explicit_id_collision(self, ledger, channel_id):
        with pytest.raises(ConfigurationError, match="already exists"):
            ledger.create_channel(LEADER, [ALICE], [TOKEN], 16, channel_id=channel_id)

    def test_duplicate_participant(self, ledger):
        with pytest.raises(ConfigurationError, match="duplicate participant"):
            ledger.create_channel(LEADER, [ALICE, ALICE.upper().replace("0X", "0x")], [TOKEN], 16)

    def test_capacity(self, ledger):
        participants = ["0x" + f"{i:040x}" for i in range(1, 10)]
        with pytest.raises(CapacityError):
            ledger.create_channel(LEADER, participants, [TOKEN, OTHER_TOKEN], 16)

    def test_unsupported_tree_size(self, ledger):
        with pytest.raises(ConfigurationError, match="Unsupported tree size"):
            ledger.create_channel(LEADER, [ALICE], [TOKEN], 8)

    def test_unknown_channel(self, ledger):
        with pytest.raises(UnknownChannelError):
            ledger.get_channel_state(42)
        assert ledger.exists(42) is False


class TestDeposits:
    def test_accumulates_and_totals(self, ledger, channel_id):
        ledger.record_deposit(channel_id, ALICE, TOKEN, 5, l2_key=77)
        ledger.record_deposit(channel_id, ALICE, TOKEN, 3)
        ledger.record_deposit(channel_id, BOB, TOKEN, 10)
        assert ledger.get_deposit(channel_id, ALICE, TOKEN) == 8
        assert ledger.get_l2_key(channel_id, ALICE, TOKEN) == 77
        assert ledger.get_l2_key(channel_id, BOB, TOKEN) == 0
        assert ledger.get_total_deposits(channel_id, TOKEN) == 18
        assert ledger.get_total_deposits(channel_id, OTHER_TOKEN) == 0

    def test_unknown_participant(self, ledger, channel_id):
        with pytest.raises(ConfigurationError, match="not a participant"):
            ledger.record_deposit(channel_id, "0x" + "cc" * 20, TOKEN, 1)

    def test_unknown_token(self, ledger, channel_id):
        with pytest.raises(ConfigurationError, match="not an allowed token"):
            ledger.record_deposit(channel_id, ALICE, "0x" + "cc" * 20, 1)

    @pytest.mark.parametrize("amount", [0, -1, 1.0])
    def test_bad_amount(self, ledger, channel_id, amount):
        with pytest.raises(ConfigurationError):
            ledger.record_deposit(channel_id, ALICE, TOKEN, amount)

    @pytest.mark.parametrize("l2_key", [-5, 1.5, "7", True])
    def test_bad_l2_key_with_deposit(self, ledger, channel_id, l2_key):
        with pytest.raises(ConfigurationError, match="L2 key"):
            ledger.record_deposit(channel_id, ALICE, TOKEN, 5, l2_key=l2_key)
        assert ledger.get_deposit(channel_id, ALICE, TOKEN) == 0
        assert ledger.get_total_deposits(channel_id, TOKEN) == 0
        assert ledger.get_l2_key(channel_id, ALICE, TOKEN) == 0

    @pytest.mark.parametrize("l2_key", [-5, None, 2.0])
    def test_bad_l2_key_set_directly(self, ledger, channel_id, l2_key):
        with pytest.raises(ConfigurationError, match="L2 key"):
            ledger.set_l2_key(channel_id, ALICE, TOKEN, l2_key)
        assert ledger.get_l2_key(channel_id, ALICE, TOKEN) == 0

    def test_closed_after_initialization(self, ledger, channel_id):
        ledger.apply(channel_id, ChannelUpdate(state=ChannelState.OPEN))
        with pytest.raises(InvalidChannelStateError):
            ledger.record_deposit(channel_id, ALICE, TOKEN, 1)
        with pytest.raises(InvalidChannelStateError):
            ledger.set_l2_key(channel_id, ALICE, TOKEN, 5)


class TestSigner:
    def test_signer_address_derived_once(self, ledger, channel_id):
        key = GroupPublicKey(x=3, y=4)
        address = ledger.set_group_public_key(channel_id, key)
        assert address == derive_signer_address(3, 4)
        assert ledger.get_signer_address(channel_id) == address
        assert ledger.get_group_public_key(channel_id) == key
        with pytest.raises(LedgerInvariantError):
            ledger.set_group_public_key(channel_id, GroupPublicKey(x=5, y=6))


class TestApply:
    def test_mark_active_requires_open(self, ledger, channel_id):
        with pytest.raises(InvalidChannelStateError):
            ledger.mark_active(channel_id)
        ledger.apply(channel_id, ChannelUpdate(state=ChannelState.OPEN))
        ledger.mark_active(channel_id)
        assert ledger.get_channel_state(channel_id) is ChannelState.ACTIVE

    def test_root_is_write_once(self, ledger, channel_id):
        ledger.apply(channel_id, ChannelUpdate(state=ChannelState.OPEN, initial_state_root=9))
        with pytest.raises(LedgerInvariantError, match="immutable"):
            ledger.apply(
                channel_id,
                ChannelUpdate(state=ChannelState.CLOSING, initial_state_root=10),
            )
        # Nothing from the rejected update was applied.
        assert ledger.get_initial_state_root(channel_id) == 9
        assert ledger.get_channel_state(channel_id) is ChannelState.OPEN

    def test_withdraw_amounts_write_once(self, ledger, channel_id):
        participants = ledger.get_participants(channel_id)
        tokens = ledger.get_allowed_tokens(channel_id)
        amounts = {(participants[0], tokens[0]): 4}
        ledger.apply(
            channel_id,
            ChannelUpdate(withdraw_amounts=amounts, signature_verified=True),
        )
        assert ledger.get_withdraw_amount(channel_id, ALICE, TOKEN) == 4
        assert ledger.get_withdraw_amount(channel_id, BOB, TOKEN) == 0
        assert ledger.is_signature_verified(channel_id) is True
        with pytest.raises(LedgerInvariantError, match="already settled"):
            ledger.apply(channel_id, ChannelUpdate(withdraw_amounts=amounts))

    def test_snapshot_is_detached(self, ledger, channel_id):
        record = ledger.snapshot(channel_id)
        record.state = ChannelState.CLOSED
        record.deposits[("x", "y")] = 1
        assert ledger.get_channel_state(channel_id) is ChannelState.INITIALIZED
        assert ("x", "y") not in ledger.snapshot(channel_id).deposits
