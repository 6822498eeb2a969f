# backend/salesdesk/services/products_service.py
"""
Products Service

Catalog maintenance. Stock is set here only when the catalog is edited by
hand; sales move it through sales_service.
"""
from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError, NotFound, ValidationError
from ..models import Product, Sale, BASE_UNIT, SALE_STATUS_CANCELLED
from . import store_gateway
from .units_service import get_catalog

PRODUCT_MUTABLE_FIELDS = {"code", "name", "description", "price", "stock", "category", "unit", "active"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _check_unit(patch: dict) -> None:
    if "unit" not in patch:
        return
    unit = patch["unit"] or BASE_UNIT
    if not get_catalog().is_active(unit):
        raise ValidationError(f"Unit {unit} is not an active unit of measure", details={"unit": unit})
    patch["unit"] = unit


def _check_code_unique(code: str | None, product_id: int | None = None) -> None:
    if not code:
        return
    query = db.session.query(Product).filter(Product.code == code)
    if product_id is not None:
        query = query.filter(Product.id != product_id)
    if query.first():
        raise ConflictError("Product code already exists.", details={"code": code})


def list_products(active_only: bool = False) -> list[dict]:
    filters = {"active": True} if active_only else None
    return [p.to_dict() for p in store_gateway.read_many(Product, filters, order_by=Product.name)]


def get_product(product_id: int) -> Product:
    product = store_gateway.read_one(Product, id=product_id)
    if not product:
        raise NotFound("Product not found", details={"product_id": product_id})
    return product


def create_product(patch: dict) -> dict:
    patch = dict(patch)
    patch.setdefault("unit", BASE_UNIT)
    _check_unit(patch)
    _check_code_unique(patch.get("code"))

    p = Product()
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.commit()
    return p.to_dict()


def update_product(product_id: int, patch: dict) -> dict:
    p = get_product(product_id)
    patch = dict(patch)
    _check_unit(patch)
    if "code" in patch:
        _check_code_unique(patch["code"], product_id=p.id)

    apply_product_patch(p, patch)
    db.session.commit()
    return p.to_dict()


def toggle_product_active(product_id: int) -> dict:
    p = get_product(product_id)
    p.active = not p.active
    db.session.commit()
    return p.to_dict()


def sales_referencing(product_id: int) -> list[int]:
    """Ids of non-cancelled sales with a line for product_id."""
    sales = db.session.query(Sale).filter(Sale.status != SALE_STATUS_CANCELLED).all()
    return [
        s.id for s in sales
        if any(rec.get("product_id") == product_id for rec in s.item_records)
    ]


def delete_product(product_id: int) -> None:
    """
    Delete a product.

    Refused while a non-cancelled sale still references it: completing or
    cancelling that sale needs the product's stock row.
    """
    p = get_product(product_id)
    referenced_by = sales_referencing(p.id)
    if referenced_by:
        raise ConflictError(
            "Product is referenced by open or completed sales; deactivate it instead.",
            details={"product_id": p.id, "sale_ids": referenced_by},
        )
    store_gateway.delete(p)
    db.session.commit()
