"""Domain error taxonomy for ledger operations and the completion service.

Each error carries the HTTP status the API layer should answer with, so
routes can translate any ``LedgerError`` without a lookup table.
"""


class LedgerError(Exception):
    """Base class for all ledgerchat domain errors."""

    status_code = 400


class ValidationError(LedgerError):
    """Bad amount, conflicting parameters, or a malformed request."""

    status_code = 400


class AuthorizationError(LedgerError):
    """The acting user does not own the referenced account or session."""

    status_code = 403


class NotFoundError(LedgerError):
    """A referenced account, user, session or summary does not exist."""

    status_code = 404


class InsufficientFundsError(LedgerError):
    """The account balance is lower than the requested debit."""

    status_code = 400


class UpstreamServiceError(LedgerError):
    """The completion service was unreachable, timed out, or answered garbage."""

    status_code = 502
