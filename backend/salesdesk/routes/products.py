# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/salesdesk/routes/products.py
"""
Product catalog routes.

Payloads are validated against the Product column metadata and the
PRODUCT_POLICY allowlist before reaching the service.
"""
from flask import Blueprint, request, jsonify, current_app

from ..errors import SaleError
from ..models import Product
from ..services import products_service
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_product

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "description", "price", "stock", "category", "unit", "active"},
    required_on_create={"name", "price"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products ordered by name.

    Query params:
    - active_only: "true" to hide deactivated products
    """
    active_only = request.args.get("active_only", "false").lower() == "true"
    return jsonify({"products": products_service.list_products(active_only=active_only)}), 200


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return jsonify(products_service.get_product(product_id).to_dict()), 200
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = products_service.create_product(patch)
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify(created), 201


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = products_service.update_product(product_id, patch)
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify(updated), 200


@products_bp.post("/<int:product_id>/toggle")
def toggle_product_route(product_id: int):
    try:
        return jsonify(products_service.toggle_product_active(product_id)), 200
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    """Delete a product no open or completed sale references."""
    try:
        products_service.delete_product(product_id)
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"ok": True}), 200
