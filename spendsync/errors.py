"""
Exception types raised by spendsync's I/O layers.

Input rejections are never exceptions (see `spendsync.domain.models.RejectionReason`);
these classes cover persistence and remote-transport failures only.
"""

from __future__ import annotations


class StoreError(RuntimeError):
    """The local record store could not complete an operation."""


class RecordNotFoundError(StoreError):
    """No live record exists for the requested id."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"No record with id '{record_id}'")
        self.record_id = record_id


class DuplicateRecordError(StoreError):
    """A record with the same external reference or raw text already exists."""

    def __init__(self, value: str) -> None:
        super().__init__("A record with this reference or message text already exists")
        self.value = value


class ImmutableFieldError(ValueError):
    """An update attempted to change a field that is fixed at creation."""


class RemoteError(RuntimeError):
    """The remote record provider could not complete an operation."""


__all__ = [
    "DuplicateRecordError",
    "ImmutableFieldError",
    "RecordNotFoundError",
    "RemoteError",
    "StoreError",
]
