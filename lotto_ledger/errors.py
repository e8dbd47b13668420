"""Exception types raised by the ingestion pipeline."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for lotto-ledger failures."""


class FetchError(LedgerError):
    """A network request failed after all retries."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url


class NoRowsError(LedgerError):
    """No draw rows could be obtained from any source."""


class LedgerFormatError(LedgerError):
    """An existing ledger file does not carry the expected header."""
