"""Shared exception hierarchy for stakeledger services."""


class LedgerError(Exception):
    """Base exception for ledger errors."""


# ── Event processing ──────────────────────────────────────────────────────────


class EventProcessingError(LedgerError):
    """Base exception for event processing errors."""


class InvalidEventError(EventProcessingError):
    """Event payload is malformed or carries out-of-range values."""


class UnsupportedEventError(EventProcessingError):
    """No handler is registered for the event type."""
