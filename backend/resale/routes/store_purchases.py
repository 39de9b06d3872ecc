# Overview: Flask API routes for store purchases and the items registered against them.

from flask import Blueprint, current_app, jsonify, request

from ..models import StorePurchase, Item
from ..services import item_service, store_purchase_service
from ..services.allocation_service import AllocationNotFoundError
from ..services.item_service import ItemError, ItemNotFoundError
from ..services.money import InvalidAmount
from ..services.store_purchase_service import (
    StorePurchaseError,
    StorePurchaseNotFoundError,
    StorePurchaseStateError,
)
from ..validation import ModelValidationPolicy, ValidationError, validate_payload


store_purchases_bp = Blueprint("store_purchases", __name__, url_prefix="/api/store-purchases")

STORE_PURCHASE_AMOUNT_FIELDS = {"product_amount", "shipping_cost", "commission_fee", "item_count"}

STORE_PURCHASE_POLICY = ModelValidationPolicy(
    writable_fields={
        "store_id",
        "purchase_date",
        "price_input_mode",
        "payment_notes",
    } | STORE_PURCHASE_AMOUNT_FIELDS,
    required_on_create=set(),
    amount_fields=STORE_PURCHASE_AMOUNT_FIELDS,
)

ITEM_PRICE_FIELDS = {"purchase_cost", "initial_price", "current_price"}

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "brand", "category", "size", "color", "condition", "notes",
    } | ITEM_PRICE_FIELDS,
    required_on_create={"name"},
    amount_fields=ITEM_PRICE_FIELDS,
)

MAX_BULK_ITEMS = 200


@store_purchases_bp.get("/<int:store_purchase_id>")
def get_store_purchase_route(store_purchase_id: int):
    try:
        sp = store_purchase_service.get_store_purchase(store_purchase_id)
    except StorePurchaseNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404

    result = sp.to_dict()
    result["items"] = [item.to_dict() for item in sp.items]
    return jsonify(result), 200


@store_purchases_bp.put("/<int:store_purchase_id>")
def update_store_purchase_route(store_purchase_id: int):
    try:
        patch = validate_payload(
            model=StorePurchase,
            payload=request.get_json(silent=True),
            policy=STORE_PURCHASE_POLICY,
            partial=True,
        )
        sp = store_purchase_service.update_store_purchase(store_purchase_id, patch)
    except (ValidationError, StorePurchaseError, InvalidAmount) as exc:
        return jsonify({"error": str(exc)}), 400
    except StorePurchaseNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except Exception:
        current_app.logger.exception("Failed to update store purchase")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(sp.to_dict()), 200


@store_purchases_bp.delete("/<int:store_purchase_id>")
def delete_store_purchase_route(store_purchase_id: int):
    try:
        store_purchase_service.delete_store_purchase(store_purchase_id)
    except StorePurchaseNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except StorePurchaseStateError as exc:
        return jsonify({"error": str(exc)}), 409
    except Exception:
        current_app.logger.exception("Failed to delete store purchase")
        return jsonify({"error": "Internal server error"}), 500
    return "", 204


@store_purchases_bp.get("/<int:store_purchase_id>/summary")
def store_purchase_summary_route(store_purchase_id: int):
    try:
        summary = store_purchase_service.get_store_purchase_summary(store_purchase_id)
    except (StorePurchaseNotFoundError, AllocationNotFoundError) as exc:
        return jsonify({"error": str(exc)}), 404
    except InvalidAmount as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(summary), 200


@store_purchases_bp.get("/<int:store_purchase_id>/items")
def list_items_route(store_purchase_id: int):
    try:
        store_purchase_service.get_store_purchase(store_purchase_id)
        items = item_service.list_items(store_purchase_id, status=request.args.get("status"))
    except StorePurchaseNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except ItemError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify([item.to_dict() for item in items]), 200


@store_purchases_bp.post("/<int:store_purchase_id>/items")
def add_item_route(store_purchase_id: int):
    try:
        patch = validate_payload(
            model=Item,
            payload=request.get_json(silent=True),
            policy=ITEM_POLICY,
            partial=False,
        )
        item = item_service.add_item(store_purchase_id, **patch)
    except (ValidationError, ItemError, InvalidAmount) as exc:
        return jsonify({"error": str(exc)}), 400
    except ItemNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except Exception:
        current_app.logger.exception("Failed to add item")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(item.to_dict()), 201


@store_purchases_bp.post("/<int:store_purchase_id>/items/bulk")
def bulk_add_items_route(store_purchase_id: int):
    """
    Register several items at once.

    Request body:
    {"items": [{"name": "...", "brand": "...", ...}, ...]}

    Every row is validated before anything is written; the session is
    recomputed once.
    """
    payload = request.get_json(silent=True) or {}
    rows = payload.get("items")
    if not isinstance(rows, list) or not rows:
        return jsonify({"error": "items must be a non-empty list"}), 400
    if len(rows) > MAX_BULK_ITEMS:
        return jsonify({"error": f"Cannot add more than {MAX_BULK_ITEMS} items at once"}), 400

    try:
        cleaned = []
        for index, row in enumerate(rows):
            try:
                cleaned.append(validate_payload(model=Item, payload=row, policy=ITEM_POLICY, partial=False))
            except ValidationError as exc:
                raise ValidationError(f"Row {index + 1}: {exc}") from exc
        items = item_service.add_items(store_purchase_id, cleaned)
    except (ValidationError, ItemError, InvalidAmount) as exc:
        return jsonify({"error": str(exc)}), 400
    except ItemNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except Exception:
        current_app.logger.exception("Failed to bulk add items")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"items": [item.to_dict() for item in items], "count": len(items)}), 201
