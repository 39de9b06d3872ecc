# Overview: Append-only audit ledger writes and reads.

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import LedgerEvent
from resale.time_utils import utcnow


def append_ledger_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    session_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: dict | None = None,
) -> LedgerEvent:
    """
    Append a ledger event to the current transaction.

    Flushes so the event id is assigned, but never commits: the caller owns
    the transaction, so the event is persisted exactly when the change it
    records is.
    """
    ev = LedgerEvent(
        session_id=session_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_ledger_events(
    *,
    session_id: int | None = None,
    event_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[LedgerEvent], int]:
    query = db.session.query(LedgerEvent)
    if session_id is not None:
        query = query.filter(LedgerEvent.session_id == session_id)
    if event_type:
        query = query.filter(LedgerEvent.event_type == event_type)

    total = query.count()
    events = (
        query.order_by(LedgerEvent.occurred_at.desc(), LedgerEvent.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return events, total
