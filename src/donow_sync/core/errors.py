# src/donow_sync/core/errors.py

from __future__ import annotations

"""
Error taxonomy.

- StorageError and its subclasses propagate to the caller of a store operation.
- AuthMissingError aborts a whole sync run; it never leaves the sync engine.
- RemoteOperationError (and PreconditionError) are recorded on the failing
  SyncOperation and never abort the batch.
"""


class DoNowSyncError(Exception):
    """Base class for everything this package raises on purpose."""


class StorageError(DoNowSyncError):
    """Local persistence failed (serialization, locked/unavailable database)."""


class RecordNotFoundError(StorageError, LookupError):
    def __init__(self, record_id: str, collection: str = "record") -> None:
        super().__init__(f"{collection} not found: {record_id}")
        self.record_id = record_id
        self.collection = collection


class AuthMissingError(DoNowSyncError):
    """No bearer token is available; sync cannot talk to the server."""


class RemoteOperationError(DoNowSyncError):
    """A single remote call failed (transport error or non-2xx status)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class PreconditionError(RemoteOperationError):
    """Update/delete attempted for a record that was never created remotely."""
