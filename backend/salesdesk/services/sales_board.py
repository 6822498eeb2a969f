# Overview: Sales board; cached sale list reloaded whenever a sale changes.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Sale, SALE_STATUS_PENDING
from . import store_gateway


def board_order(sales: list[Sale]) -> list[Sale]:
    """
    Counter ordering: PENDING sales first, oldest first (the queue the
    cashier works through); every other sale after them, newest first.
    """
    pending = [s for s in sales if s.status == SALE_STATUS_PENDING]
    others = [s for s in sales if s.status != SALE_STATUS_PENDING]
    pending.sort(key=lambda s: (s.created_at, s.id))
    others.sort(key=lambda s: (s.created_at, s.id), reverse=True)
    return pending + others


def table_fingerprint() -> tuple:
    """
    One grouped query summarizing the sales table: per status, the row
    count, the highest id, the newest updated_at and the sum of versions.

    Any insert or delete, any status change, and any update that touches
    updated_at or version_id changes the result, whichever connection made it.
    """
    rows = (
        db.session.query(
            Sale.status,
            func.count(Sale.id),
            func.max(Sale.id),
            func.max(Sale.updated_at),
            func.sum(Sale.version_id),
        )
        .group_by(Sale.status)
        .order_by(Sale.status)
        .all()
    )
    return tuple(tuple(row) for row in rows)


class SalesBoard:
    """
    Sale list kept in step with the sales table.

    Committed sale changes in this process mark the board stale through the
    gateway subscription. Every read also compares the table fingerprint
    with the one taken at the last reload, which catches writes from other
    workers and raw SQL. Either signal makes the read reload the full list.
    """

    def __init__(self):
        self._stale = True
        self._entries: list[dict] = []
        self._fingerprint: tuple | None = None
        self.reloads = 0
        self._subscription = store_gateway.subscribe_to_changes(Sale, self._on_change)

    def _on_change(self, change: str, record) -> None:
        self._stale = True

    @property
    def stale(self) -> bool:
        return self._stale

    def reload(self, fingerprint: tuple | None = None) -> None:
        # Clear first so a commit landing during the reload marks it stale again
        self._stale = False
        self._fingerprint = fingerprint if fingerprint is not None else table_fingerprint()
        sales = store_gateway.read_many(Sale)
        self._entries = [sale.to_dict() for sale in board_order(sales)]
        self.reloads += 1

    def entries(self, status: str | None = None) -> list[dict]:
        fingerprint = table_fingerprint()
        if self._stale or fingerprint != self._fingerprint:
            self.reload(fingerprint)
        if status:
            return [entry for entry in self._entries if entry["status"] == status]
        return list(self._entries)

    def invalidate(self) -> None:
        self._stale = True

    def close(self) -> None:
        self._subscription.unsubscribe()
