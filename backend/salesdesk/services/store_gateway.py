# Overview: Record store gateway; typed reads/writes and change notifications over SQLAlchemy.

"""
Record Store Gateway

The narrow contract the sale engines use to reach persisted records:

- read_one / get_one / read_many   reads
- insert / update                  ORM writes (flushed, not committed)
- conditional_update               single UPDATE ... WHERE ... returning rows affected
- subscribe_to_changes             committed insert/update/delete notifications for a model

Transaction boundaries (commit / rollback) belong to the calling service.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy import event, update as sql_update
from sqlalchemy.orm import Session, object_session

from ..extensions import db
from ..errors import NotFound

CHANGE_INSERT = "INSERT"
CHANGE_UPDATE = "UPDATE"
CHANGE_DELETE = "DELETE"

_MAPPER_EVENTS = {
    "after_insert": CHANGE_INSERT,
    "after_update": CHANGE_UPDATE,
    "after_delete": CHANGE_DELETE,
}


def read_one(model, **filters):
    """First record matching filters, or None. Always reflects the stored row."""
    return db.session.query(model).filter_by(**filters).populate_existing().first()


def get_one(model, **filters):
    """Like read_one, but a missing record is NotFound."""
    record = read_one(model, **filters)
    if record is None:
        raise NotFound(f"{model.__name__} not found", details={"filters": filters})
    return record


def read_many(model, filters: dict | None = None, order_by=None) -> list:
    query = db.session.query(model)
    if filters:
        query = query.filter_by(**filters)
    if order_by is not None:
        if not isinstance(order_by, (list, tuple)):
            order_by = (order_by,)
        query = query.order_by(*order_by)
    return query.all()


def insert(model, payload: dict):
    """Add a record; the flush assigns identity and server defaults."""
    record = model(**payload)
    db.session.add(record)
    db.session.flush()
    return record


def update(target, payload: dict, **filters):
    """
    Apply payload to a record.

    target is either a loaded record or a model class plus filters.
    """
    record = get_one(target, **filters) if isinstance(target, type) else target
    for key, value in payload.items():
        setattr(record, key, value)
    db.session.flush()
    return record


def delete(record) -> None:
    db.session.delete(record)
    db.session.flush()


def conditional_update(model, values: dict, *criteria) -> int:
    """
    UPDATE model SET values WHERE criteria, as one statement.

    Returns the number of rows affected; callers treat 0 as "condition not
    met". Loaded instances are not synchronized; re-read them with read_one.
    Subscribers to model get one UPDATE notification (record None) when the
    transaction commits.
    """
    stmt = (
        sql_update(model)
        .where(*criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount and _subscriptions.get(model):
        _queue_change(db.session(), model, CHANGE_UPDATE, None)
    return result.rowcount


# =============================================================================
# CHANGE SUBSCRIPTIONS
# =============================================================================
# Changes are queued per session at flush and delivered after commit, so a
# handler never observes a write that is later rolled back.

_subscriptions: dict[type, list["Subscription"]] = {}
_listening: set[type] = set()

_PENDING_KEY = "store_gateway.pending_changes"


def _queue_change(session, model, change: str, record) -> None:
    session.info.setdefault(_PENDING_KEY, []).append((model, change, record))


def _listen_to_mapper(model) -> None:
    if model in _listening:
        return

    for event_name, change in _MAPPER_EVENTS.items():
        def listener(mapper, connection, target, _change=change):
            session = object_session(target)
            if session is not None and _subscriptions.get(model):
                _queue_change(session, model, _change, target)

        event.listen(model, event_name, listener)
    _listening.add(model)


@event.listens_for(Session, "after_commit")
def _deliver_changes(session):
    pending = session.info.pop(_PENDING_KEY, None)
    for model, change, record in pending or ():
        for subscription in list(_subscriptions.get(model, ())):
            subscription.handler(change, record)


@event.listens_for(Session, "after_rollback")
def _discard_changes(session):
    session.info.pop(_PENDING_KEY, None)


class Subscription:
    """Handle returned by subscribe_to_changes; call unsubscribe() on teardown."""

    def __init__(self, model, handler: Callable[[str, object], None]):
        self.model = model
        self.handler = handler
        _listen_to_mapper(model)
        _subscriptions.setdefault(model, []).append(self)

    @property
    def active(self) -> bool:
        return self in _subscriptions.get(self.model, ())

    def unsubscribe(self) -> None:
        handlers = _subscriptions.get(self.model, [])
        if self in handlers:
            handlers.remove(self)


def subscribe_to_changes(model, handler: Callable[[str, object], None]) -> Subscription:
    """
    Invoke handler(change, record) for every committed insert/update/delete
    of model made through this process's sessions.

    Handlers run right after the commit, before loaded instances expire; they
    must not touch the session. record is None for conditional_update writes.
    Writes made by other processes are not seen here; readers that cache
    must also check the table itself (see sales_board.SalesBoard).
    """
    return Subscription(model, handler)
