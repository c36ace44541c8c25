"""Errors raised by the settlement codec."""


class SettlementError(Exception):
    """Base class for all settlement codec errors."""


class ValidationError(SettlementError, ValueError):
    """Malformed input: bad lengths, addresses, amounts or missing fields."""


class UnsupportedOperationError(SettlementError, ValueError):
    """The requested operation is not supported for the given input."""


class MissingDataError(SettlementError, LookupError):
    """Data required to complete an encoding was never supplied."""
