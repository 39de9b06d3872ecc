# Overview: Flask API routes for stores (shops goods are bought from).

from flask import Blueprint, jsonify, request

from ..models import Store
from ..services import store_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")

STORE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "store_type", "prefecture", "notes"},
    required_on_create={"name"},
)


@stores_bp.get("")
def list_stores():
    stores = store_service.list_stores(store_type=request.args.get("store_type"))
    return jsonify([store.to_dict() for store in stores]), 200


@stores_bp.post("")
def create_store():
    try:
        patch = validate_payload(
            model=Store,
            payload=request.get_json(silent=True),
            policy=STORE_POLICY,
            partial=False,
        )
        store = store_service.create_store(**patch)
    except (ValidationError, store_service.StoreError) as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(store.to_dict()), 201


@stores_bp.get("/<int:store_id>")
def get_store(store_id: int):
    store = store_service.get_store(store_id)
    if not store:
        return jsonify({"error": "Store not found"}), 404
    return jsonify(store.to_dict()), 200


@stores_bp.put("/<int:store_id>")
def update_store(store_id: int):
    try:
        patch = validate_payload(
            model=Store,
            payload=request.get_json(silent=True),
            policy=STORE_POLICY,
            partial=True,
        )
        store = store_service.update_store(store_id, patch)
    except (ValidationError, store_service.StoreError) as exc:
        return jsonify({"error": str(exc)}), 400
    except store_service.StoreNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    return jsonify(store.to_dict()), 200
