"""
End-to-end channel lifecycle.

Three participants, one token, a 16-leaf tree and deposits of 1, 2 and 3
ether. Initialization runs through the real BLS12-381 verifier (with a
simulated trusted setup) and settlement through real threshold Schnorr
signatures. Only the execution proof system is stubbed.
"""
import pytest

pytest.importorskip("py_ecc")

from zk_channel_bridge.channel_protocol.channel import ChannelStateMachine  # noqa: E402
from zk_channel_bridge.channel_protocol.commitment import build_public_signals  # noqa: E402
from zk_channel_bridge.channel_protocol.exceptions import (  # noqa: E402
    ConservationError,
    InvalidProofError,
    InvalidSignatureError,
)
from zk_channel_bridge.channel_protocol.execution import (  # noqa: E402
    FunctionRegistry,
    compute_function_instance_hash,
)
from zk_channel_bridge.channel_protocol.ledger import ChannelLedger  # noqa: E402
from zk_channel_bridge.channel_protocol.settlement import settlement_message  # noqa: E402
from zk_channel_bridge.channel_protocol.snark.dispatcher import VerifierDispatcher  # noqa: E402
from zk_channel_bridge.channel_protocol.types import (  # noqa: E402
    ChannelState,
    FunctionProof,
    ProofData,
    RegisteredFunction,
)

LEADER = "0x" + "1e" * 20
PARTICIPANTS = ["0x" + "a1" * 20, "0x" + "b2" * 20, "0x" + "c3" * 20]
TOKEN = "0x" + "70" * 20
E18 = 10**18
DEPOSITS = [1 * E18, 2 * E18, 3 * E18]
L2_KEYS = [0x5EED01, 0x5EED02, 0x5EED03]
ROOT = 0x2A5B0C4F6E8D1A3C
GROUP_SECRET = 0x3C6EF372FE94F82BA54FF53A5F1D36F1510E527FADE682D19B05688C2B3E6C1F
TRANSFER = bytes.fromhex("a9059cbb")
PUBLIC_INPUTS = tuple(range(1, 71))


def accept_execution_proof(proof_part1, proof_part2, vk_part1, vk_part2, public_inputs, smax):
    return proof_part1 == vk_part1


def _build_channel(ledger, deposits=DEPOSITS):
    channel_id = ledger.create_channel(LEADER, PARTICIPANTS, [TOKEN], 16)
    for participant, amount, key in zip(PARTICIPANTS, deposits, L2_KEYS):
        ledger.record_deposit(channel_id, participant, TOKEN, amount, l2_key=key)
    return channel_id


def _expected_signals(ledger, channel_id):
    record = ledger.snapshot(channel_id)
    return build_public_signals(
        record.tree_size,
        record.participants,
        record.allowed_tokens,
        ROOT,
        record.l2_keys,
        record.deposits,
    )


@pytest.fixture
def ledger():
    return ChannelLedger()


@pytest.fixture
def machine(ledger, groth16_tree16):
    functions = FunctionRegistry()
    functions.register(
        RegisteredFunction(
            function_signature=TRANSFER,
            vk_part1=(7, 7),
            vk_part2=(8, 8),
            instances_hash=compute_function_instance_hash(PUBLIC_INPUTS),
        )
    )
    dispatcher = VerifierDispatcher.from_verifying_keys(
        {16: groth16_tree16.verifying_key}
    )
    return ChannelStateMachine(
        ledger,
        dispatcher,
        accept_execution_proof,
        functions=functions,
        signature_verifier=_signature_verifier(),
    )


class _NoSigner:
    """Stand-in when petlib is missing; only initialization tests run then."""

    def verify(self, signature, group_public_key, signer_address):
        return False


def _signature_verifier():
    try:
        from zk_channel_bridge.channel_protocol.signature import (
            ThresholdSignatureVerifier,
        )
    except ImportError:
        return _NoSigner()
    return ThresholdSignatureVerifier()


@pytest.fixture
def signing():
    """Group key registered on the channel plus a 2-of-3 share set."""
    pytest.importorskip("petlib")
    from zk_channel_bridge.channel_protocol import signature

    group_key = signature.derive_group_public_key(GROUP_SECRET)
    shares = signature.split_secret(GROUP_SECRET, threshold=2, n_shares=3)
    return signature, group_key, shares


def test_valid_initialization_proof_opens_channel(ledger, machine, groth16_tree16):
    print("\n" + "=" * 60)
    print("Initialization with a correctly encoded 33-signal vector")
    print("=" * 60)

    channel_id = _build_channel(ledger)
    signals = _expected_signals(ledger, channel_id)
    assert len(signals) == 33

    proof = groth16_tree16.prove(signals)
    machine.initialize_channel_state(channel_id, LEADER, ROOT, proof)

    assert ledger.get_channel_state(channel_id) is ChannelState.OPEN
    assert ledger.get_initial_state_root(channel_id) == ROOT
    print("✓ Channel is OPEN with the committed root")


def test_proof_replayed_against_tampered_balance_rejected(ledger, machine, groth16_tree16):
    honest = _build_channel(ledger)
    proof = groth16_tree16.prove(_expected_signals(ledger, honest))

    tampered = _build_channel(ledger, deposits=[E18, 2 * E18, 3 * E18 + 1])
    with pytest.raises(InvalidProofError):
        machine.initialize_channel_state(tampered, LEADER, ROOT, proof)
    assert ledger.get_channel_state(tampered) is ChannelState.INITIALIZED

    # The honest channel still accepts the same proof.
    machine.initialize_channel_state(honest, LEADER, ROOT, proof)
    assert ledger.get_channel_state(honest) is ChannelState.OPEN


def _open_channel(ledger, machine, groth16_tree16, group_key):
    channel_id = _build_channel(ledger)
    ledger.set_group_public_key(channel_id, group_key)
    proof = groth16_tree16.prove(_expected_signals(ledger, channel_id))
    machine.initialize_channel_state(channel_id, LEADER, ROOT, proof)
    return channel_id


def _sign_settlement(signature, group_key, shares, channel_id, balances):
    function_proof = FunctionProof(
        function_signature=TRANSFER,
        proof_part1=(7, 7),
        proof_part2=(1, 2, 3),
        public_inputs=PUBLIC_INPUTS,
        smax=64,
    )
    data = ProofData.build([function_proof], balances)
    message = settlement_message(channel_id, data.final_balances, data.function_proofs)
    signed = signature.sign_with_shares(
        {1: shares[1], 3: shares[3]}, message, group_key
    )
    return data, signed


def test_conserving_settlement_closes_channel(ledger, machine, groth16_tree16, signing):
    signature, group_key, shares = signing
    channel_id = _open_channel(ledger, machine, groth16_tree16, group_key)

    balances = [[E18], [2 * E18], [3 * E18]]
    data, signed = _sign_settlement(signature, group_key, shares, channel_id, balances)
    machine.submit_settlement(channel_id, LEADER, data, signed)

    assert ledger.get_channel_state(channel_id) is ChannelState.CLOSING
    assert ledger.is_signature_verified(channel_id) is True
    for participant, row in zip(PARTICIPANTS, balances):
        assert ledger.get_withdraw_amount(channel_id, participant, TOKEN) == row[0]


def test_off_by_one_settlement_fails_despite_valid_signature(
    ledger, machine, groth16_tree16, signing
):
    signature, group_key, shares = signing
    channel_id = _open_channel(ledger, machine, groth16_tree16, group_key)

    balances = [[E18], [2 * E18], [3 * E18 + 1]]
    data, signed = _sign_settlement(signature, group_key, shares, channel_id, balances)
    assert signature.ThresholdSignatureVerifier().verify(
        signed, group_key, ledger.get_signer_address(channel_id)
    )

    with pytest.raises(ConservationError):
        machine.submit_settlement(channel_id, LEADER, data, signed)
    assert ledger.get_channel_state(channel_id) is ChannelState.OPEN
    assert ledger.get_withdraw_amount(channel_id, PARTICIPANTS[2], TOKEN) == 0


def test_settlement_signed_by_other_group_rejected(ledger, machine, groth16_tree16, signing):
    signature, group_key, shares = signing
    channel_id = _open_channel(ledger, machine, groth16_tree16, group_key)

    balances = [[E18], [2 * E18], [3 * E18]]
    other_shares = signature.split_secret(GROUP_SECRET + 1, threshold=2, n_shares=3)
    data, signed = _sign_settlement(
        signature, group_key, other_shares, channel_id, balances
    )
    with pytest.raises(InvalidSignatureError):
        machine.submit_settlement(channel_id, LEADER, data, signed)
    assert ledger.is_signature_verified(channel_id) is False
