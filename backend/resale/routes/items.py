# Overview: Flask API routes for single items: edits, removal and lifecycle transitions.

"""
Item Routes

allocated_cost, cost_at_sale, platform_fee and net_profit are read-only
here: they are set by the allocation recompute and by the sale operation.
"""

from flask import Blueprint, current_app, jsonify, request

from ..models import Item
from ..services import item_service
from ..services.item_service import ItemError, ItemNotFoundError, ItemStateError
from ..services.money import InvalidAmount
from ..validation import ValidationError, require_int_arg, validate_payload
from resale.time_utils import parse_iso_datetime
from .store_purchases import ITEM_POLICY


items_bp = Blueprint("items", __name__, url_prefix="/api/items")

# Matches Item.hold_reason / Item.discard_reason
REASON_MAX_LENGTH = 255


def _error_response(exc: Exception):
    if isinstance(exc, ItemNotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ItemStateError):
        return jsonify({"error": str(exc)}), 409
    return jsonify({"error": str(exc)}), 400


def _optional_datetime(payload: dict, key: str):
    raw = payload.get(key)
    if raw is None:
        return None
    try:
        value = parse_iso_datetime(str(raw))
    except ValueError:
        value = None
    if value is None:
        raise ValidationError(f"Invalid {key} format")
    return value


def _optional_text(payload: dict, key: str, *, max_length: int):
    raw = payload.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{key} must be a string")
    value = raw.strip()
    if len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value or None


@items_bp.get("/<int:item_id>")
def get_item_route(item_id: int):
    try:
        item = item_service.get_item(item_id)
    except ItemNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    return jsonify(item.to_dict()), 200


@items_bp.put("/<int:item_id>")
def update_item_route(item_id: int):
    try:
        patch = validate_payload(
            model=Item,
            payload=request.get_json(silent=True),
            policy=ITEM_POLICY,
            partial=True,
        )
        item = item_service.update_item(item_id, patch)
    except (ValidationError, ItemError, ItemNotFoundError, InvalidAmount) as exc:
        return _error_response(exc)
    return jsonify(item.to_dict()), 200


@items_bp.delete("/<int:item_id>")
def delete_item_route(item_id: int):
    try:
        item_service.remove_item(item_id)
    except (ItemNotFoundError, ItemStateError) as exc:
        return _error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to remove item")
        return jsonify({"error": "Internal server error"}), 500
    return "", 204


@items_bp.post("/<int:item_id>/ready")
def ready_item_route(item_id: int):
    try:
        item = item_service.mark_ready(item_id)
    except (ItemNotFoundError, ItemStateError) as exc:
        return _error_response(exc)
    return jsonify(item.to_dict()), 200


@items_bp.post("/<int:item_id>/list")
def list_item_route(item_id: int):
    """
    Request body (all optional):
    {"price": 2500, "listed_at": "2026-02-01T10:00:00Z"}
    """
    payload = request.get_json(silent=True) or {}
    try:
        price = require_int_arg(payload, "price", required=False)
        listed_at = _optional_datetime(payload, "listed_at")
        item = item_service.list_item(item_id, price=price, listed_at=listed_at)
    except (ValidationError, ItemNotFoundError, ItemStateError, InvalidAmount) as exc:
        return _error_response(exc)
    return jsonify(item.to_dict()), 200


@items_bp.post("/<int:item_id>/hold")
def hold_item_route(item_id: int):
    """
    Request body (all optional):
    {"reason": "needs cleaning", "held_at": "2026-02-01T10:00:00Z"}
    """
    payload = request.get_json(silent=True) or {}
    try:
        reason = _optional_text(payload, "reason", max_length=REASON_MAX_LENGTH)
        held_at = _optional_datetime(payload, "held_at")
        item = item_service.hold_item(item_id, reason=reason, held_at=held_at)
    except (ValidationError, ItemNotFoundError, ItemStateError) as exc:
        return _error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to hold item")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(item.to_dict()), 200


@items_bp.post("/<int:item_id>/discard")
def discard_item_route(item_id: int):
    """
    Request body:
    {"reason": "stain", "discarded_at": "2026-02-01"}   // reason required
    """
    payload = request.get_json(silent=True) or {}
    try:
        reason = _optional_text(payload, "reason", max_length=REASON_MAX_LENGTH)
        discarded_at = _optional_datetime(payload, "discarded_at")
        item = item_service.discard_item(
            item_id,
            reason=reason,
            discarded_at=discarded_at,
        )
    except (ValidationError, ItemError, ItemNotFoundError, ItemStateError) as exc:
        return _error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to discard item")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(item.to_dict()), 200


@items_bp.post("/<int:item_id>/sell")
def sell_item_route(item_id: int):
    """
    Record a sale and freeze its profit figures.

    Request body:
    {
        "sold_price": 4800,                 // required, yen
        "shipping_cost": 750,               // optional, yen
        "sold_at": "2026-02-03T12:00:00Z"   // optional, defaults to now
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        sold_price = require_int_arg(payload, "sold_price")
        shipping_cost = require_int_arg(payload, "shipping_cost", required=False)
        sold_at = _optional_datetime(payload, "sold_at")
        item = item_service.record_sale(
            item_id,
            sold_price=sold_price,
            shipping_cost=shipping_cost,
            sold_at=sold_at,
        )
    except (ValidationError, ItemNotFoundError, ItemStateError, InvalidAmount) as exc:
        return _error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(item.to_dict()), 200
