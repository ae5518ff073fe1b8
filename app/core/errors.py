from __future__ import annotations


class LedgerError(ValueError):
    """Base class for errors raised by the cape/emote ledgers."""


class ValidationError(LedgerError):
    """A required field is missing or malformed."""


class AuthError(LedgerError):
    """The supplied ownership key does not match the one bound to the identity."""


class PersistenceError(LedgerError):
    """Snapshot could not be read or written.

    Never surfaced to API callers: the in-memory state stays authoritative.
    """
