"""
Error taxonomy shared by the resolver, the store adapters and the cache.

  ValidationError       malformed scraped record; surfaced immediately,
                         never retried, raised before any write.
  ConflictError         a uniqueness constraint rejected an insert because
                         a concurrent caller created the same row first.
                         Always recovered locally by re-querying.
  BackendUnavailable    store / network failure.  Propagates out of
                         resolution; the cache swallows it and degrades.
  CacheTierUnavailable  the durable cache tier is not open (or broke).
"""

from __future__ import annotations


class ToxicFilterError(Exception):
    """Base class for every error raised by this project."""


class ValidationError(ToxicFilterError):
    """Scraped input failed validation.  ``errors`` lists every problem."""

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(f"Invalid product data: {', '.join(self.errors)}")


class ConflictError(ToxicFilterError):
    """Insert hit a unique constraint (Postgres 23505 / duplicate key)."""

    def __init__(self, table: str, detail: str = ""):
        self.table = table
        self.detail = detail
        super().__init__(f"Duplicate key on {table}: {detail}" if detail else f"Duplicate key on {table}")


class BackendUnavailable(ToxicFilterError):
    """The durable store could not be reached or returned an error."""


class CacheTierUnavailable(BackendUnavailable):
    """The durable cache tier is not initialised or failed mid-call."""
