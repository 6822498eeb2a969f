# Overview: Flask API routes for users and sellers; parses input and returns JSON responses.

# backend/salesdesk/routes/people.py
from flask import Blueprint, request, jsonify

from ..errors import SaleError
from ..models import Seller, User
from ..services import people_service
from ..validation import ModelValidationPolicy, validate_payload

USER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "username", "password", "role", "active"},
    required_on_create={"name", "username", "password", "role"},
)

SELLER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "active"},
    required_on_create={"name"},
)

people_bp = Blueprint("people", __name__, url_prefix="/api")


# =============================================================================
# USERS
# =============================================================================

@people_bp.get("/users")
def list_users_route():
    return jsonify({"users": people_service.list_users()}), 200


@people_bp.post("/users")
def create_user_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False)
        user = people_service.create_user(
            name=patch["name"],
            username=patch["username"],
            password=patch["password"],
            role=patch["role"],
        )
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(user.to_dict()), 201


@people_bp.put("/users/<int:user_id>")
def update_user_route(user_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True)
        user = people_service.update_user(user_id, patch)
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(user.to_dict()), 200


@people_bp.delete("/users/<int:user_id>")
def delete_user_route(user_id: int):
    try:
        people_service.delete_user(user_id)
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"ok": True}), 200


# =============================================================================
# SELLERS
# =============================================================================

@people_bp.get("/sellers")
def list_sellers_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    return jsonify({"sellers": people_service.list_sellers(active_only=active_only)}), 200


@people_bp.post("/sellers")
def create_seller_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Seller, payload=payload, policy=SELLER_POLICY, partial=False)
        seller = people_service.create_seller(patch["name"])
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(seller.to_dict()), 201


@people_bp.put("/sellers/<int:seller_id>")
def update_seller_route(seller_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Seller, payload=payload, policy=SELLER_POLICY, partial=True)
        seller = people_service.update_seller(seller_id, patch)
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(seller.to_dict()), 200


@people_bp.post("/sellers/<int:seller_id>/toggle")
def toggle_seller_route(seller_id: int):
    try:
        seller = people_service.toggle_seller_active(seller_id)
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(seller.to_dict()), 200


@people_bp.delete("/sellers/<int:seller_id>")
def delete_seller_route(seller_id: int):
    try:
        people_service.delete_seller(seller_id)
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"ok": True}), 200
