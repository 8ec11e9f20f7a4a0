"""Usage accounting: per-tenant monthly call counters.

The dispatcher reports exactly one outcome per provider call through
:meth:`UsageRecorder.record_usage`. Recording is fire-and-forget: store
failures are logged and swallowed so accounting can never fail the call it
is accounting for.

Two stores ship with the gateway:

* :class:`InMemoryUsageStore`: default, process-local, used by tests.
* :class:`SqlUsageStore`: SQLAlchemy, find-or-create on
  ``(tenant_id, operation, month, year)`` then increment.

Example:
    >>> recorder = UsageRecorder(InMemoryUsageStore())
    >>> recorder.record_usage("mine-1", OperationType.EWAY_GENERATE, True, org_id="org-9")
    >>> recorder.store.stats_for_tenant("mine-1")[0].success_count
    1
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from govgate.core.logging import get_logger
from govgate.core.orm import ApiCallStat

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class OperationType(str, Enum):
    """Billable provider operations."""

    VAHAN_VEHICLE = "vahan_vehicle"
    VAHAN_DL = "vahan_dl"
    EWAY_GENERATE = "eway_generate"
    EWAY_CANCEL = "eway_cancel"
    EWAY_EXTEND = "eway_extend"
    EINVOICE_GENERATE = "einvoice_generate"
    EINVOICE_CANCEL = "einvoice_cancel"
    EINVOICE_GET_IRN = "einvoice_get_irn"
    EINVOICE_GET_DETAILS = "einvoice_get_details"


@dataclass
class UsageCounter:
    """Counters for one tenant × operation × month."""

    tenant_id: str
    operation: str
    month: int
    year: int
    org_id: str | None = None
    count: int = 0
    success_count: int = 0
    failure_count: int = 0
    last_called_at: datetime | None = None
    total_response_ms: float = 0.0

    @property
    def avg_response_ms(self) -> float | None:
        if not self.count:
            return None
        return round(self.total_response_ms / self.count, 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "org_id": self.org_id,
            "operation": self.operation,
            "month": self.month,
            "year": self.year,
            "count": self.count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "last_called_at": self.last_called_at.isoformat() if self.last_called_at else None,
            "avg_response_ms": self.avg_response_ms,
        }


class UsageStore(ABC):
    """Durable counter storage."""

    @abstractmethod
    def increment(
        self,
        tenant_id: str,
        operation: str,
        success: bool,
        *,
        org_id: str | None,
        at: datetime,
        duration_ms: float | None = None,
    ) -> None:
        """Increment the counter for the month containing *at*.

        *duration_ms*, when given, is added to the running response-time total.
        """
        ...

    @abstractmethod
    def all_stats(self, *, year: int | None = None, month: int | None = None) -> list[UsageCounter]:
        """Return every counter, optionally filtered by period."""
        ...

    def stats_for_tenant(
        self,
        tenant_id: str,
        *,
        year: int | None = None,
        month: int | None = None,
    ) -> list[UsageCounter]:
        return [c for c in self.all_stats(year=year, month=month) if c.tenant_id == tenant_id]

    def summary_by_tenant(
        self,
        *,
        year: int | None = None,
        month: int | None = None,
    ) -> dict[str, dict[str, Any]]:
        """Roll counters up per tenant: totals plus a per-operation breakdown."""
        summary: dict[str, dict[str, Any]] = {}
        for counter in self.all_stats(year=year, month=month):
            entry = summary.setdefault(
                counter.tenant_id,
                {"total": 0, "success": 0, "failure": 0, "total_response_ms": 0.0, "by_operation": {}},
            )
            entry["total"] += counter.count
            entry["success"] += counter.success_count
            entry["failure"] += counter.failure_count
            entry["total_response_ms"] += counter.total_response_ms
            entry["by_operation"][counter.operation] = (
                entry["by_operation"].get(counter.operation, 0) + counter.count
            )
        for entry in summary.values():
            total_ms = entry.pop("total_response_ms")
            entry["avg_response_ms"] = round(total_ms / entry["total"], 1) if entry["total"] else None
        return summary


class InMemoryUsageStore(UsageStore):
    """Process-local usage store."""

    def __init__(self) -> None:
        self._counters: dict[tuple[str, str, int, int], UsageCounter] = {}
        self._lock = threading.Lock()

    def increment(
        self,
        tenant_id: str,
        operation: str,
        success: bool,
        *,
        org_id: str | None,
        at: datetime,
        duration_ms: float | None = None,
    ) -> None:
        key = (tenant_id, operation, at.month, at.year)
        with self._lock:
            counter = self._counters.get(key)
            if counter is None:
                counter = UsageCounter(
                    tenant_id=tenant_id,
                    operation=operation,
                    month=at.month,
                    year=at.year,
                    org_id=org_id,
                )
                self._counters[key] = counter
            counter.count += 1
            if success:
                counter.success_count += 1
            else:
                counter.failure_count += 1
            counter.last_called_at = at
            if duration_ms is not None:
                counter.total_response_ms += duration_ms

    def all_stats(self, *, year: int | None = None, month: int | None = None) -> list[UsageCounter]:
        with self._lock:
            counters = list(self._counters.values())
        return [
            c
            for c in counters
            if (year is None or c.year == year) and (month is None or c.month == month)
        ]


class SqlUsageStore(UsageStore):
    """SQLAlchemy-backed usage store (``api_call_stats`` table)."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def increment(
        self,
        tenant_id: str,
        operation: str,
        success: bool,
        *,
        org_id: str | None,
        at: datetime,
        duration_ms: float | None = None,
    ) -> None:
        with self._session_factory() as session:
            row = self._find(session, tenant_id, operation, at)
            if row is None:
                row = ApiCallStat(
                    tenant_id=tenant_id,
                    org_id=org_id,
                    operation=operation,
                    month=at.month,
                    year=at.year,
                    count=0,
                    success_count=0,
                    failure_count=0,
                    total_response_ms=0.0,
                )
                session.add(row)
                try:
                    session.flush()
                except IntegrityError:
                    # Another writer created the row first
                    session.rollback()
                    row = self._find(session, tenant_id, operation, at)
                    if row is None:
                        raise
            row.count += 1
            if success:
                row.success_count += 1
            else:
                row.failure_count += 1
            row.last_called_at = at
            if duration_ms is not None:
                row.total_response_ms = (row.total_response_ms or 0.0) + duration_ms
            session.commit()

    @staticmethod
    def _find(session: Session, tenant_id: str, operation: str, at: datetime) -> ApiCallStat | None:
        stmt = select(ApiCallStat).where(
            ApiCallStat.tenant_id == tenant_id,
            ApiCallStat.operation == operation,
            ApiCallStat.month == at.month,
            ApiCallStat.year == at.year,
        )
        return session.scalars(stmt).first()

    def all_stats(self, *, year: int | None = None, month: int | None = None) -> list[UsageCounter]:
        stmt = select(ApiCallStat)
        if year is not None:
            stmt = stmt.where(ApiCallStat.year == year)
        if month is not None:
            stmt = stmt.where(ApiCallStat.month == month)
        stmt = stmt.order_by(ApiCallStat.year.desc(), ApiCallStat.month.desc(), ApiCallStat.tenant_id)
        with self._session_factory() as session:
            return [
                UsageCounter(
                    tenant_id=row.tenant_id,
                    operation=row.operation,
                    month=row.month,
                    year=row.year,
                    org_id=row.org_id,
                    count=row.count,
                    success_count=row.success_count,
                    failure_count=row.failure_count,
                    last_called_at=row.last_called_at,
                    total_response_ms=row.total_response_ms or 0.0,
                )
                for row in session.scalars(stmt)
            ]


class UsageRecorder:
    """Fire-and-forget front for a :class:`UsageStore`."""

    def __init__(self, store: UsageStore, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self._clock = clock

    def record_usage(
        self,
        tenant_id: str,
        operation: OperationType | str,
        success: bool,
        *,
        org_id: str | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Count one completed call. Never raises."""
        op = operation.value if isinstance(operation, OperationType) else operation
        try:
            self.store.increment(
                tenant_id, op, success, org_id=org_id, at=self._clock(), duration_ms=duration_ms
            )
        except Exception as e:
            logger.error(
                "usage_record_failed",
                tenant_id=tenant_id,
                operation=op,
                success=success,
                error=str(e),
            )


__all__ = [
    "OperationType",
    "UsageCounter",
    "UsageStore",
    "InMemoryUsageStore",
    "SqlUsageStore",
    "UsageRecorder",
]
