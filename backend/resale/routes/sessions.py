# Overview: Flask API routes for purchase sessions; parses input and returns JSON responses.

"""
Purchase Session Routes

Cost edits (transportation_cost, transfer_fee, agency_fee) recompute every
item's allocated cost before the response is returned, so a client can
read fresh values immediately after a successful write.
"""

from flask import Blueprint, current_app, jsonify, request

from ..models import PurchaseSession, StorePurchase
from ..services import allocation_service, purchase_session_service, store_purchase_service
from ..services.allocation_service import AllocationNotFoundError
from ..services.money import InvalidAmount
from ..services.purchase_session_service import (
    PurchaseSessionError,
    PurchaseSessionNotFoundError,
    PurchaseSessionStateError,
)
from ..services.store_purchase_service import StorePurchaseError, StorePurchaseNotFoundError
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from .store_purchases import STORE_PURCHASE_POLICY


sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")

SESSION_COST_FIELDS = {"transportation_cost", "transfer_fee", "agency_fee"}

SESSION_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"title", "session_date", "notes"} | SESSION_COST_FIELDS,
    required_on_create={"title"},
    amount_fields=SESSION_COST_FIELDS,
)

SESSION_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"title", "session_date", "status", "notes"} | SESSION_COST_FIELDS,
    amount_fields=SESSION_COST_FIELDS,
)


@sessions_bp.get("")
def list_sessions_route():
    """
    List purchase sessions, newest first.

    Query parameters:
    - status: active | completed
    - limit: Maximum results (default: 100, max 500)
    - offset: Pagination offset (default: 0)
    """
    limit = min(max(request.args.get("limit", 100, type=int), 1), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)

    sessions, total = purchase_session_service.list_sessions(
        status=request.args.get("status"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [s.to_dict() for s in sessions],
        "count": total,
        "limit": limit,
        "offset": offset,
    }), 200


@sessions_bp.post("")
def create_session_route():
    try:
        patch = validate_payload(
            model=PurchaseSession,
            payload=request.get_json(silent=True),
            policy=SESSION_CREATE_POLICY,
            partial=False,
        )
        session = purchase_session_service.create_session(**patch)
    except (ValidationError, PurchaseSessionError, InvalidAmount) as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Failed to create purchase session")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(session.to_dict()), 201


@sessions_bp.get("/<int:session_id>")
def get_session_route(session_id: int):
    try:
        session = purchase_session_service.get_session(session_id)
    except PurchaseSessionNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404

    result = session.to_dict()
    result["store_purchases"] = [sp.to_dict() for sp in session.store_purchases]
    return jsonify(result), 200


@sessions_bp.put("/<int:session_id>")
def update_session_route(session_id: int):
    try:
        patch = validate_payload(
            model=PurchaseSession,
            payload=request.get_json(silent=True),
            policy=SESSION_UPDATE_POLICY,
            partial=True,
        )
        session = purchase_session_service.update_session(session_id, patch)
    except (ValidationError, PurchaseSessionError, InvalidAmount) as exc:
        return jsonify({"error": str(exc)}), 400
    except PurchaseSessionNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except Exception:
        current_app.logger.exception("Failed to update purchase session")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(session.to_dict()), 200


@sessions_bp.delete("/<int:session_id>")
def delete_session_route(session_id: int):
    try:
        purchase_session_service.delete_session(session_id)
    except PurchaseSessionNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except PurchaseSessionStateError as exc:
        return jsonify({"error": str(exc)}), 409
    return "", 204


@sessions_bp.get("/<int:session_id>/summary")
def session_summary_route(session_id: int):
    try:
        summary = purchase_session_service.get_session_summary(session_id)
    except (PurchaseSessionNotFoundError, AllocationNotFoundError) as exc:
        return jsonify({"error": str(exc)}), 404
    except InvalidAmount as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(summary), 200


@sessions_bp.post("/<int:session_id>/recalculate")
def recalculate_session_route(session_id: int):
    """
    Recompute and persist allocated_cost for every item in the session.

    Returns:
        {session_id, common_cost, total_subtotal, apportionment_drift,
         shares: {store_purchase_id: yen}, item_costs: {item_id: yen}}
    """
    try:
        allocation = allocation_service.recalculate_session_allocations(session_id)
    except AllocationNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except InvalidAmount as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Failed to recalculate session allocations")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "session_id": allocation.session_id,
        "common_cost": allocation.common_cost,
        "total_subtotal": allocation.total_subtotal,
        "apportionment_drift": allocation.apportionment_drift,
        "shares": {str(k): v for k, v in allocation.shares.items()},
        "item_costs": {str(k): v for k, v in allocation.item_costs.items()},
    }), 200


@sessions_bp.get("/<int:session_id>/store-purchases")
def list_session_store_purchases_route(session_id: int):
    try:
        purchase_session_service.get_session(session_id)
    except PurchaseSessionNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    store_purchases = store_purchase_service.list_store_purchases(session_id)
    return jsonify([sp.to_dict() for sp in store_purchases]), 200


@sessions_bp.post("/<int:session_id>/store-purchases")
def create_store_purchase_route(session_id: int):
    """
    Add a store purchase to a session.

    Request body:
    {
        "store_id": 1,                    // optional
        "purchase_date": "2026-01-31",    // optional
        "product_amount": 3000,           // optional, yen
        "shipping_cost": 0,               // optional, yen
        "commission_fee": 0,              // optional, yen
        "item_count": 3,                  // expected number of items
        "price_input_mode": "batch",      // individual | batch
        "payment_notes": "..."            // optional
    }
    """
    try:
        patch = validate_payload(
            model=StorePurchase,
            payload=request.get_json(silent=True),
            policy=STORE_PURCHASE_POLICY,
            partial=False,
        )
        sp = store_purchase_service.create_store_purchase(session_id=session_id, **patch)
    except (ValidationError, StorePurchaseError, InvalidAmount) as exc:
        return jsonify({"error": str(exc)}), 400
    except StorePurchaseNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except Exception:
        current_app.logger.exception("Failed to create store purchase")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(sp.to_dict()), 201
