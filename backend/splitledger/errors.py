"""Domain errors raised by the ledger core."""


class LedgerError(Exception):
    """Base class for ledger errors."""


class ValidationError(LedgerError):
    """A split directive, payer list or amount failed a shape or sum check."""


class InvalidStateError(LedgerError):
    """A settlement status transition is not allowed from its current state."""


class PreconditionViolation(LedgerError):
    """An expense handed to the balance aggregator is not internally balanced."""
