"""
Custom exceptions for the channel protocol.

Four rejection categories, none retryable with the same inputs:
precondition violations, configuration/capacity errors, cryptographic
rejections and conservation violations.
"""


class ChannelProtocolError(Exception):
    """Base exception for channel protocol errors."""

    pass


# ============================================================================
# PRECONDITIONS
# ============================================================================


class PreconditionError(ChannelProtocolError):
    """A transition precondition does not hold."""

    pass


class UnknownChannelError(PreconditionError):
    """No channel record exists for the given id."""

    pass


class UnauthorizedCallerError(PreconditionError):
    """Caller is not the channel leader."""

    pass


class InvalidChannelStateError(PreconditionError):
    """Channel is not in a state that accepts the transition."""

    pass


class UnregisteredFunctionError(PreconditionError):
    """A function proof references a signature with no registered verifying key."""

    pass


class ReentrantCallError(PreconditionError):
    """A transition was re-entered on the same channel while in progress."""

    pass


# ============================================================================
# CONFIGURATION
# ============================================================================


class ConfigurationError(ChannelProtocolError):
    """Configuration error."""

    pass


class CapacityError(ConfigurationError):
    """Participant x token entries exceed the channel's tree capacity."""

    pass


# ============================================================================
# CRYPTOGRAPHIC REJECTION
# ============================================================================


class CryptographicRejection(ChannelProtocolError):
    """A proof or signature was rejected. Carries no finer diagnostic."""

    pass


class InvalidProofError(CryptographicRejection):
    def __init__(self, message: str = "invalid proof"):
        super().__init__(message)


class InvalidSignatureError(CryptographicRejection):
    def __init__(self, message: str = "invalid signature"):
        super().__init__(message)


# ============================================================================
# CONSERVATION / LEDGER
# ============================================================================


class ConservationError(ChannelProtocolError):
    """Proposed final balances do not sum to the deposited total of a token."""

    def __init__(self, token: str, expected: int, actual: int):
        self.token = token
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"conservation violated for token {token}: "
            f"deposited {expected}, settled {actual}"
        )


class LedgerInvariantError(ChannelProtocolError):
    """A write would break a ledger invariant (e.g. write-once field)."""

    pass
