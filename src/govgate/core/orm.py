"""Declarative base, tables and engine factory for govgate persistence.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map`` so
``Mapped`` columns can use plain Python types.

Tables
------
* **api_call_stats**: usage counters per tenant × operation × month.
* **entity_snapshots**: last VAHAN vehicle / driver lookup result per key.
"""

from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text, UniqueConstraint, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class GatewayBase(DeclarativeBase):
    """Shared declarative base for every govgate table."""

    type_annotation_map = {
        str: Text,
        int: Integer,
        datetime.datetime: DateTime(timezone=True),
        dict: JSON,
    }


class ApiCallStat(GatewayBase):
    """Monthly call counter for one tenant and one operation type."""

    __tablename__ = "api_call_stats"
    __table_args__ = (
        UniqueConstraint("tenant_id", "operation", "month", "year", name="uq_api_call_stats_period"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True)
    org_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    operation: Mapped[str] = mapped_column(String(64))
    month: Mapped[int]
    year: Mapped[int]
    count: Mapped[int] = mapped_column(default=0)
    success_count: Mapped[int] = mapped_column(default=0)
    failure_count: Mapped[int] = mapped_column(default=0)
    total_response_ms: Mapped[float] = mapped_column(Float, default=0.0)
    last_called_at: Mapped[datetime.datetime | None] = mapped_column(nullable=True)


class EntitySnapshot(GatewayBase):
    """Most recent provider payload for a vehicle or driver."""

    __tablename__ = "entity_snapshots"
    __table_args__ = (UniqueConstraint("kind", "key", name="uq_entity_snapshots_key"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(16))
    key: Mapped[str] = mapped_column(String(64))
    tenant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    data: Mapped[dict]
    fetched_at: Mapped[datetime.datetime] = mapped_column(default=utcnow, onupdate=utcnow)


def create_gateway_engine(url: str, *, echo: bool = False, **kwargs: Any) -> Engine:
    """Create an engine and make sure the gateway tables exist."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()
    else:
        engine = create_engine(url, echo=echo, **kwargs)

    GatewayBase.metadata.create_all(engine)
    return engine


def gateway_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a ``sessionmaker`` bound to *engine* with ``expire_on_commit=False``."""
    return sessionmaker(bind=engine, expire_on_commit=False)
