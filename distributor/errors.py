from enum import Enum


class BadConfigException(Exception):
    pass


class ZeroSupplyError(BadConfigException):
    """Raise if a snapshot reports a total supply of zero"""

    pass


class MissingEnvironmentVariableException(Exception):
    pass


class EmptyQueryError(Exception):
    """Raise if GraphQL Query returns no results"""

    pass


class TooManyLoopsError(Exception):
    """Raise if a loop runs too many times"""

    pass


class InvalidTreeError(Exception):
    """Raise if a merkle tree cannot be built from the passed entries"""

    pass


class UnauthorizedError(Exception):
    """Raise if the caller lacks the role required for an operation"""

    pass


class DistributionNotFoundError(Exception):
    pass


class InvalidTransitionError(Exception):
    """Raise if a status change is not allowed from the current status"""

    pass


class InsufficientBalanceError(Exception):
    pass


class ClaimRejection(str, Enum):
    """
    Reasons a claim can be refused, in the order the gates are checked.
    """

    NOT_FOUND = "not_found"
    NOT_ACTIVE = "not_active"
    WINDOW_CLOSED = "window_closed"
    ALREADY_CLAIMED = "already_claimed"
    TOTAL_MISMATCH = "total_mismatch"
    INVALID_PROOF = "invalid_proof"
    INSUFFICIENT_ESCROW = "insufficient_escrow"


class ClaimRejectedError(Exception):
    """Raise if any claim gate fails. Nothing has been written when this is raised."""

    def __init__(self, reason: ClaimRejection, message: str = ""):
        self.reason = reason
        super().__init__(message or reason.value)
