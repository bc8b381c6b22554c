"""
zk-channel-bridge: proof-gated channel state machine.

⚠️  EXPERIMENTAL - NOT AUDITED
"""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())


def print_disclaimer():
    """Print the experimental-status disclaimer."""
    print(
        "⚠️  DISCLAIMER: zk-channel-bridge is experimental software.\n"
        "The Groth16 verifier, threshold signature adapter and settlement\n"
        "message format have not been audited. Do not use them to secure\n"
        "real funds."
    )


__all__ = ["__version__", "print_disclaimer"]
