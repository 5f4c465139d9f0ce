"""Durable storage for queued Mindbox operation calls."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from mindbox_relay.models import QueueItem, QueueStatus
from mindbox_relay.models.queue_item import ACTIVE_STATUSES


class QueueStore:
    """Keyed, filterable table of queue items.

    Every mutation touches a single row by id and commits on its own; no
    multi-row transaction is ever needed.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def add(self, fields: Mapping[str, Any]) -> int:
        """Insert a row and return its id."""
        with self._session_factory() as db:
            item = QueueItem(**fields)
            db.add(item)
            db.commit()
            return int(item.id)

    def get(self, item_id: int) -> QueueItem | None:
        with self._session_factory() as db:
            return db.get(QueueItem, item_id)

    def update_by_id(
        self,
        item_id: int,
        values: Mapping[str, Any],
        *,
        only_if_status: QueueStatus | None = None,
    ) -> bool:
        """Update one row; return False when no row matched."""
        stmt = update(QueueItem).where(QueueItem.id == item_id)
        if only_if_status is not None:
            stmt = stmt.where(QueueItem.status == only_if_status)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        with self._session_factory() as db:
            result = db.execute(stmt)
            db.commit()
            return int(result.rowcount or 0) == 1

    def get_due(self, limit: int, now: datetime) -> list[QueueItem]:
        """Return up to ``limit`` rows eligible for processing at ``now``.

        Rows without a scheduled time sort first, then oldest schedule, then
        lowest id.
        """
        stmt = (
            select(QueueItem)
            .where(
                QueueItem.status.in_(ACTIVE_STATUSES),
                or_(QueueItem.next_run_at.is_(None), QueueItem.next_run_at <= now),
                or_(QueueItem.locked_until.is_(None), QueueItem.locked_until < now),
            )
            .order_by(QueueItem.next_run_at.asc().nulls_first(), QueueItem.id.asc())
            .limit(limit)
        )
        with self._session_factory() as db:
            return list(db.scalars(stmt).all())

    def claim(self, item_id: int, now: datetime, lock_seconds: int) -> bool:
        """Lease a due row to the caller.

        The update only matches while the row is still due and unlocked, so
        of several concurrent claimers exactly one sees a True result.
        """
        stmt = (
            update(QueueItem)
            .where(
                QueueItem.id == item_id,
                QueueItem.status.in_(ACTIVE_STATUSES),
                or_(QueueItem.next_run_at.is_(None), QueueItem.next_run_at <= now),
                or_(QueueItem.locked_until.is_(None), QueueItem.locked_until < now),
            )
            .values(
                status=QueueStatus.LOCKED,
                locked_until=now + timedelta(seconds=lock_seconds),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as db:
            result = db.execute(stmt)
            db.commit()
            return int(result.rowcount or 0) == 1

    def count_by_status(self) -> dict[QueueStatus, int]:
        stmt = select(QueueItem.status, func.count()).group_by(QueueItem.status)
        counts = {status: 0 for status in QueueStatus}
        with self._session_factory() as db:
            for status, total in db.execute(stmt):
                counts[QueueStatus(status)] = int(total)
        return counts

    def list_items(self, status: QueueStatus | None = None, limit: int = 50) -> list[QueueItem]:
        """Return the newest rows, optionally filtered by status."""
        stmt = select(QueueItem).order_by(QueueItem.id.desc()).limit(limit)
        if status is not None:
            stmt = stmt.where(QueueItem.status == status)
        with self._session_factory() as db:
            return list(db.scalars(stmt).all())
