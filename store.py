"""
Data store boundary.

Workflow modules talk to the database through the models and the helpers
here: the two stored procedures the invitation flow relies on, and the
change feed that tells watchers of a canteen's orders that something moved.
"""
import logging
import threading
from dataclasses import dataclass

from sqlalchemy import event
from sqlalchemy.orm import Session, object_session

from models import db, Invitation, InvitationStatus, Order, utcnow

logger = logging.getLogger(__name__)

_PENDING_KEY = "change_feed_pending"


# ---- Stored procedures ----

def get_invitation_details_by_token(token):
    """Return ``[]`` or a one-row list describing the invitation."""
    inv = Invitation.query.filter_by(token=token).first()
    if inv is None:
        return []
    return [{
        "id": inv.id,
        "email": inv.email,
        "role": inv.role,
        "canteen_id": inv.canteen_id,
        "canteen_name": inv.canteen.name if inv.canteen else None,
        "status": inv.status,
        "expires_at": inv.expires_at,
    }]


def mark_invitation_accepted(token):
    Invitation.query.filter_by(token=token).update(
        {"status": InvitationStatus.ACCEPTED.value, "accepted_at": utcnow()}
    )
    db.session.commit()


# ---- Change feed ----

@dataclass(frozen=True)
class ChangeEvent:
    table: str
    canteen_id: int


class Subscription:
    def __init__(self, feed, key, callback):
        self._feed = feed
        self.key = key
        self.callback = callback

    def unsubscribe(self):
        self._feed._remove(self)


class ChangeFeed:
    """In-process "something changed" notifications keyed by (table, canteen).

    Events carry no row payload; subscribers are expected to re-fetch. A
    commit that touches several rows of the same canteen yields one event.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._subscribers = {}

    def subscribe(self, table, canteen_id, callback):
        sub = Subscription(self, (table, canteen_id), callback)
        with self._lock:
            self._subscribers.setdefault(sub.key, []).append(sub)
        return sub

    def _remove(self, sub):
        with self._lock:
            subs = self._subscribers.get(sub.key, [])
            if sub in subs:
                subs.remove(sub)
            if not subs:
                self._subscribers.pop(sub.key, None)

    def subscriber_count(self, table, canteen_id):
        with self._lock:
            return len(self._subscribers.get((table, canteen_id), []))

    def publish(self, table, canteen_id):
        with self._lock:
            subs = list(self._subscribers.get((table, canteen_id), []))
        change = ChangeEvent(table, canteen_id)
        for sub in subs:
            try:
                sub.callback(change)
            except Exception:
                logger.exception("change feed subscriber failed for %s/%s", table, canteen_id)

    def clear(self):
        with self._lock:
            self._subscribers.clear()


feed = ChangeFeed()


def _record_order_change(mapper, connection, target):
    session = object_session(target)
    if session is not None:
        session.info.setdefault(_PENDING_KEY, set()).add((Order.__tablename__, target.canteen_id))


for _evt in ("after_insert", "after_update", "after_delete"):
    event.listen(Order, _evt, _record_order_change)


@event.listens_for(Session, "after_commit")
def _publish_pending(session):
    pending = session.info.pop(_PENDING_KEY, set())
    for table, canteen_id in sorted(pending):
        feed.publish(table, canteen_id)


@event.listens_for(Session, "after_soft_rollback")
def _drop_pending(session, previous_transaction):
    session.info.pop(_PENDING_KEY, None)
