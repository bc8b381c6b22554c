"""
Command-Line Interface for zk-channel-bridge

Off-chain inspection commands: balance Merkle roots and proofs, the
initialization public-signal vector, and Groth16 verification of snarkjs
artifacts.
"""

import click
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from zk_channel_bridge import __version__, print_disclaimer
from zk_channel_bridge.channel_protocol.commitment import build_public_signals
from zk_channel_bridge.channel_protocol.exceptions import ChannelProtocolError
from zk_channel_bridge.channel_protocol.merkle import (
    balance_leaves,
    compute_merkle_root,
    generate_balance_proof,
    verify_balance,
)
from zk_channel_bridge.channel_protocol.types import normalize_address

console = Console()


def _read_json(path):
    with Path(path).open('r', encoding='utf-8') as fh:
        return json.load(fh)


def _load_balance_entries(path):
    """Read ``[{"participant", "token", "amount"}, ...]`` from a JSON file."""
    data = _read_json(path)
    if not isinstance(data, list):
        raise click.BadParameter(f"{path} must contain a JSON list of entries")
    return [
        (entry['participant'], entry['token'], int(entry['amount']))
        for entry in data
    ]


def _load_channel(path):
    """
    Read a channel description::

        {"tree_size": 16, "root": "0x..", "participants": [..], "tokens": [..],
         "entries": [{"participant", "token", "l2_key", "amount"}, ...]}
    """
    data = _read_json(path)
    participants = [normalize_address(p) for p in data['participants']]
    tokens = [normalize_address(t) for t in data['tokens']]
    l2_keys, deposits = {}, {}
    for entry in data.get('entries', []):
        key = (normalize_address(entry['participant']), normalize_address(entry['token']))
        l2_keys[key] = int(str(entry.get('l2_key', 0)), 0)
        deposits[key] = int(str(entry.get('amount', 0)), 0)
    return {
        'tree_size': int(data['tree_size']),
        'root': int(str(data['root']), 0),
        'participants': participants,
        'tokens': tokens,
        'l2_keys': l2_keys,
        'deposits': deposits,
    }


@click.group()
@click.version_option(version=__version__)
@click.option(
    '--verbose',
    is_flag=True,
    help='Enable debug logging'
)
def main(verbose):
    """
    zk-channel-bridge - channel proof inspection tool

    Computes the commitments a channel leader submits and checks Groth16
    artifacts off-chain.

    ⚠️  EXPERIMENTAL - NOT AUDITED
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )


@main.command('balance-root')
@click.argument('entries_file', type=click.Path(exists=True, dir_okay=False))
def balance_root(entries_file):
    """
    Compute the balance Merkle root of a JSON list of entries.

    Example:

        zk-channel-bridge balance-root balances.json
    """
    try:
        leaves = balance_leaves(_load_balance_entries(entries_file))
        root = compute_merkle_root(leaves)
    except (KeyError, TypeError, ValueError) as e:
        click.echo(click.style(f"✗ Error: {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo(f"Leaves: {len(leaves)}")
    click.echo(f"Root:   0x{root.hex()}")


@main.command('balance-proof')
@click.argument('entries_file', type=click.Path(exists=True, dir_okay=False))
@click.option(
    '--index',
    type=int,
    required=True,
    help='Position of the entry to prove'
)
@click.option(
    '--output',
    type=click.Path(),
    help='Write the proof as JSON to this path'
)
def balance_proof(entries_file, index, output):
    """
    Generate and check an inclusion proof for one balance entry.

    Example:

        zk-channel-bridge balance-proof balances.json --index 2
    """
    try:
        entries = _load_balance_entries(entries_file)
        leaves = balance_leaves(entries)
        proof = generate_balance_proof(leaves, index)
    except (IndexError, KeyError, TypeError, ValueError) as e:
        click.echo(click.style(f"✗ Error: {e}", fg="red"), err=True)
        sys.exit(1)

    root = compute_merkle_root(leaves)
    participant, token, amount = entries[index]
    verified = verify_balance(root, participant, token, amount, proof)

    payload = {
        'root': '0x' + root.hex(),
        'participant': participant,
        'token': token,
        'amount': str(amount),
        'proof': ['0x' + sibling.hex() for sibling in proof],
    }
    if output:
        Path(output).write_text(json.dumps(payload, indent=2))
        click.echo(click.style(f"✓ Proof saved to: {output}", fg="green"))
    else:
        click.echo(json.dumps(payload, indent=2))

    if verified:
        click.echo(click.style("✓ Proof verifies against root", fg="green"))
    else:
        click.echo(click.style("✗ Proof does not verify", fg="red"), err=True)
        sys.exit(1)


@main.command('public-signals')
@click.argument('channel_file', type=click.Path(exists=True, dir_okay=False))
@click.option(
    '--format',
    type=click.Choice(['table', 'json'], case_sensitive=False),
    default='table',
    help='Output format (default: table)'
)
@click.option(
    '--output',
    type=click.Path(),
    help='Write the signals as a snarkjs public.json to this path'
)
def public_signals(channel_file, format, output):
    """
    Build the initialization circuit's public-signal vector for a channel.

    Example:

        zk-channel-bridge public-signals channel.json --output public.json
    """
    try:
        channel = _load_channel(channel_file)
        signals = build_public_signals(
            channel['tree_size'],
            channel['participants'],
            channel['tokens'],
            channel['root'],
            channel['l2_keys'],
            channel['deposits'],
        )
    except (ChannelProtocolError, KeyError, TypeError, ValueError) as e:
        click.echo(click.style(f"✗ Error: {e}", fg="red"), err=True)
        sys.exit(1)

    as_strings = [str(s) for s in signals]
    if output:
        Path(output).write_text(json.dumps(as_strings, indent=2))
        click.echo(click.style(f"✓ {len(signals)} signals saved to: {output}", fg="green"))
        return

    if format == 'json':
        click.echo(json.dumps(as_strings, indent=2))
        return

    tree_size = channel['tree_size']
    table = Table(title=f"Public signals (tree size {tree_size})")
    table.add_column("Index", justify="right")
    table.add_column("Role")
    table.add_column("Value", overflow="fold")
    for i, value in enumerate(signals):
        if i == 0:
            role = "root"
        elif i <= tree_size:
            role = f"key[{i - 1}]"
        else:
            role = f"balance[{i - 1 - tree_size}]"
        table.add_row(str(i), role, str(value))
    console.print(table)


@main.command('verify-groth16')
@click.option(
    '--tree-size',
    type=click.Choice(['16', '32', '64', '128']),
    required=True,
    help='Channel tree capacity'
)
@click.option(
    '--vk',
    'vk_path',
    type=click.Path(exists=True, dir_okay=False),
    help='verification_key.json (default: resolved from CHANNEL_SNARK_PARAMS_DIR)'
)
@click.option(
    '--proof',
    'proof_path',
    type=click.Path(exists=True, dir_okay=False),
    help='proof.json (default: resolved from CHANNEL_SNARK_FIXTURES_DIR)'
)
@click.option(
    '--public',
    'public_path',
    type=click.Path(exists=True, dir_okay=False),
    help='public.json (default: resolved from CHANNEL_SNARK_FIXTURES_DIR)'
)
def verify_groth16(tree_size, vk_path, proof_path, public_path):
    """
    Verify a snarkjs Groth16 proof with the canonical verifier for a capacity.

    Example:

        zk-channel-bridge verify-groth16 --tree-size 16 \\
            --vk vk.json --proof proof.json --public public.json
    """
    from zk_channel_bridge.channel_protocol.snark.assets import (
        load_proof,
        load_public_signals,
        load_verifying_key,
        resolve_fixture_paths,
        resolve_groth16_vk,
    )
    from zk_channel_bridge.channel_protocol.snark.dispatcher import VerifierDispatcher

    tree_size = int(tree_size)
    try:
        if vk_path is None:
            vk_path = resolve_groth16_vk(tree_size)
        if proof_path is None or public_path is None:
            default_proof, default_public = resolve_fixture_paths(tree_size)
            proof_path = proof_path or default_proof
            public_path = public_path or default_public

        dispatcher = VerifierDispatcher.from_verifying_keys(
            {tree_size: load_verifying_key(vk_path)}
        )
        proof = load_proof(proof_path)
        signals = load_public_signals(public_path)
        verified = dispatcher.verify(tree_size, proof.a, proof.b, proof.c, signals)
    except (ChannelProtocolError, FileNotFoundError, ValueError) as e:
        click.echo(click.style(f"✗ Error: {e}", fg="red"), err=True)
        sys.exit(1)

    if verified:
        click.echo(click.style("✓ Proof valid", fg="green"))
    else:
        click.echo(click.style("✗ Proof invalid", fg="red"), err=True)
        sys.exit(1)


@main.command()
def version():
    """Show version and disclaimer information."""
    click.echo(f"\nzk-channel-bridge v{__version__}")
    click.echo("Experimental - Not Audited\n")
    print_disclaimer()


if __name__ == '__main__':
    main()
