"""
Payment repository (in-process persistence).

This module owns every PaymentRecord instance. It does not decide *which*
transition should happen next; it only guarantees that:
- writes to a record are serialized (one lock guards the whole table),
- a write lands only if the record is still in the status the writer read
  (compare-and-swap on status),
- a transition replaces the whole record at once, so readers never observe
  a partially-applied change.

Records are immutable snapshots, so callers can hold on to what they read without
copying.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from domain.payment import PaymentRecord, PaymentStatus

PaymentId = Union[UUID, str]


class PaymentNotFoundError(LookupError):
    """Raised when a payment id does not exist in the store."""
    pass


class StaleRecordError(RuntimeError):
    """Raised when a record changed status between a writer's read and its write."""

    def __init__(self, payment_id: UUID, expected: PaymentStatus, actual: PaymentStatus) -> None:
        super().__init__(
            f"Payment {payment_id} is {actual.value}, expected {expected.value}"
        )
        self.payment_id = payment_id
        self.expected = expected
        self.actual = actual


def _coerce_id(payment_id: PaymentId) -> UUID:
    if isinstance(payment_id, UUID):
        return payment_id
    try:
        return UUID(str(payment_id))
    except ValueError:
        raise PaymentNotFoundError(f"Payment not found: {payment_id}") from None


class PaymentRepository:
    """Keyed table of payment records with status-indexed lookup."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: Dict[UUID, PaymentRecord] = {}

    def add(self, record: PaymentRecord) -> PaymentRecord:
        with self._lock:
            if record.payment_id in self._records:
                raise ValueError(f"Payment already exists: {record.payment_id}")
            self._records[record.payment_id] = record
            return record

    def get(self, payment_id: PaymentId) -> Optional[PaymentRecord]:
        try:
            key = _coerce_id(payment_id)
        except PaymentNotFoundError:
            return None
        with self._lock:
            return self._records.get(key)

    def require(self, payment_id: PaymentId) -> PaymentRecord:
        record = self.get(payment_id)
        if record is None:
            raise PaymentNotFoundError(f"Payment not found: {payment_id}")
        return record

    def list_all(self) -> List[PaymentRecord]:
        """All records, oldest first."""
        with self._lock:
            records = list(self._records.values())
        return sorted(records, key=lambda r: r.created_at)

    def list_by_status(self, *statuses: PaymentStatus) -> List[PaymentRecord]:
        """
        Records currently in any of `statuses`, oldest first.

        The result is a snapshot: records may move on while the caller iterates.
        """

        wanted = set(statuses)
        with self._lock:
            records = [r for r in self._records.values() if r.status in wanted]
        return sorted(records, key=lambda r: r.created_at)

    def count_by_status(self) -> Dict[PaymentStatus, int]:
        counts = {status: 0 for status in PaymentStatus}
        with self._lock:
            for record in self._records.values():
                counts[record.status] += 1
        return counts

    def transition(
        self,
        payment_id: PaymentId,
        target: PaymentStatus,
        *,
        expected_status: Optional[PaymentStatus] = None,
        error: Optional[str] = None,
        at: Optional[datetime] = None,
        **changes: Any,
    ) -> PaymentRecord:
        """
        Move a payment to `target` together with the fields that change with it.

        Args:
            payment_id: Payment to update
            target: New lifecycle status
            expected_status: Status the caller read; the write is refused if it moved
            error: Diagnostic text, required when target is ERROR
            changes: Settlement fields written in the same step

        Raises:
            PaymentNotFoundError: unknown payment
            StaleRecordError: status is no longer expected_status
            InvalidTransitionError / PaymentInvariantError: from the domain model
        """

        with self._lock:
            current = self._current(payment_id, expected_status)
            updated = current.transition(target, at=at, error=error, **changes)
            self._records[current.payment_id] = updated
            return updated

    def update(
        self,
        payment_id: PaymentId,
        *,
        expected_status: Optional[PaymentStatus] = None,
        at: Optional[datetime] = None,
        **changes: Any,
    ) -> PaymentRecord:
        """Write settlement fields without changing status."""

        with self._lock:
            current = self._current(payment_id, expected_status)
            updated = current.with_changes(at=at, **changes)
            self._records[current.payment_id] = updated
            return updated

    def _current(self, payment_id: PaymentId, expected_status: Optional[PaymentStatus]) -> PaymentRecord:
        key = _coerce_id(payment_id)
        current = self._records.get(key)
        if current is None:
            raise PaymentNotFoundError(f"Payment not found: {payment_id}")
        if expected_status is not None and current.status is not expected_status:
            raise StaleRecordError(current.payment_id, expected_status, current.status)
        return current

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
