# Overview: Flask API routes for reading the audit ledger.

from flask import Blueprint, jsonify, request

from ..services.ledger_service import list_ledger_events


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("")
def list_ledger():
    """
    List ledger events, newest first.

    Query parameters:
    - session_id: Filter by purchase session
    - event_type: Filter by type (allocation.recalculated, item.sold, item.discarded)
    - limit: Maximum results (default: 100, max 500)
    - offset: Pagination offset (default: 0)
    """
    limit = min(max(request.args.get("limit", 100, type=int), 1), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)

    events, total = list_ledger_events(
        session_id=request.args.get("session_id", type=int),
        event_type=request.args.get("event_type"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [ev.to_dict() for ev in events],
        "count": total,
        "limit": limit,
        "offset": offset,
    }), 200
