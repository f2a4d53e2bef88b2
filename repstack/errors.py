"""
Exception hierarchy for the Repstack store.

Validation, referential-integrity and not-found errors are raised straight to
the caller. `MigrationError` is handled by the store opener, which resets the
database instead of surfacing it.
"""

from __future__ import annotations

from typing import Iterable, List


class RepstackError(Exception):
    """Base class for every error raised by the store."""


class ValidationError(RepstackError, ValueError):
    """One or more field or cross-field rules were violated.

    `errors` holds every violated rule, never just the first one.
    """

    def __init__(self, errors: Iterable[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors: List[str] = list(errors)
        super().__init__("Validation failed: " + ", ".join(self.errors))


class ReferentialIntegrityError(RepstackError):
    """A delete or create would break a cross-record invariant."""


class NotFoundError(RepstackError, LookupError):
    """The targeted identifier does not exist."""

    def __init__(self, entity: str, identifier: str) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} with id {identifier} not found")


class MigrationError(RepstackError):
    """A schema upgrade found state it cannot evolve in place."""


class ImportFormatError(RepstackError, ValueError):
    """An import payload is malformed; nothing was changed."""


class MissingTableError(RepstackError, LookupError):
    """An upgrade step asked for a table that does not exist."""

    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(f"Table {table!r} does not exist")
