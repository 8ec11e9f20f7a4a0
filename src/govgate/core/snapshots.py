"""Cached vehicle and driver snapshots from VAHAN lookups.

A successful RC or DL lookup stores the provider payload under its vehicle
or licence number so dispatchers can read it back without a billable call.
Saving is best-effort, like usage accounting.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from govgate.core.logging import get_logger
from govgate.core.orm import EntitySnapshot

logger = get_logger(__name__)

VEHICLE = "vehicle"
DRIVER = "driver"


def normalize_key(key: str) -> str:
    """Registration and licence numbers are stored upper-case without spaces."""
    return "".join(key.split()).upper()


class SnapshotStore(ABC):
    @abstractmethod
    def _put(self, kind: str, key: str, data: dict[str, Any], tenant_id: str | None) -> None: ...

    @abstractmethod
    def get(self, kind: str, key: str) -> dict[str, Any] | None: ...

    def save(self, kind: str, key: str, data: dict[str, Any], *, tenant_id: str | None = None) -> bool:
        """Upsert a snapshot. Returns False (and logs) instead of raising."""
        try:
            self._put(kind, normalize_key(key), data, tenant_id)
            return True
        except Exception as e:
            logger.error("snapshot_save_failed", kind=kind, key=key, error=str(e))
            return False


class InMemorySnapshotStore(SnapshotStore):
    def __init__(self) -> None:
        self._items: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _put(self, kind: str, key: str, data: dict[str, Any], tenant_id: str | None) -> None:
        with self._lock:
            self._items[(kind, key)] = dict(data)

    def get(self, kind: str, key: str) -> dict[str, Any] | None:
        with self._lock:
            return self._items.get((kind, normalize_key(key)))


class SqlSnapshotStore(SnapshotStore):
    """SQLAlchemy-backed snapshot store (``entity_snapshots`` table)."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def _put(self, kind: str, key: str, data: dict[str, Any], tenant_id: str | None) -> None:
        with self._session_factory() as session:
            row = session.scalars(
                select(EntitySnapshot).where(EntitySnapshot.kind == kind, EntitySnapshot.key == key)
            ).first()
            if row is None:
                session.add(EntitySnapshot(kind=kind, key=key, data=data, tenant_id=tenant_id))
            else:
                row.data = data
                row.tenant_id = tenant_id
            session.commit()

    def get(self, kind: str, key: str) -> dict[str, Any] | None:
        with self._session_factory() as session:
            row = session.scalars(
                select(EntitySnapshot).where(
                    EntitySnapshot.kind == kind, EntitySnapshot.key == normalize_key(key)
                )
            ).first()
            return dict(row.data) if row is not None else None
