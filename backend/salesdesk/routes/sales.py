# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/salesdesk/routes/sales.py
"""
Sales API routes.

The counter builds the cart client-side and posts it whole; every request
rebuilds it server-side through the cart, discount and payment engines, so
totals, markdown limits and the discount authorization are enforced here.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import SaleError, ValidationError
from ..models import VALID_SALE_STATUSES
from ..services import sales_service
from ..services.discount_service import DiscountEditor


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

DISCOUNT_INPUT_MODES = {"amount", "percent", "total"}


def _sale_details(data: dict) -> dict:
    return {k: data[k] for k in sales_service.SALE_DETAIL_FIELDS if k in data}


def _board():
    return current_app.extensions["sales_board"]


@sales_bp.post("/quote")
def quote_route():
    """
    Price a cart without saving it.

    Optional discount_input {"mode": "amount" | "percent" | "total", "value": x}
    previews the discount dialog: the amount it resolves to, the matching
    percentage and post-discount total, and whether a token is required.
    """
    try:
        data = request.get_json(silent=True) or {}
        cart, notices = sales_service.build_cart(data)

        editor = DiscountEditor(cart)
        discount_input = data.get("discount_input")
        if discount_input:
            mode = discount_input.get("mode")
            if mode not in DISCOUNT_INPUT_MODES:
                raise ValidationError(
                    f"Invalid discount mode: {mode}",
                    details={"allowed": sorted(DISCOUNT_INPUT_MODES)},
                )
            value = discount_input.get("value")
            if mode == "amount":
                editor.set_amount(value)
            elif mode == "percent":
                editor.set_percent(value)
            else:
                editor.set_target_total(value)

        return jsonify({
            "cart": cart.summary(),
            "notices": notices,
            "discount": editor.to_dict(),
        }), 200

    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to quote sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("")
def create_sale_route():
    """
    Save a new sale as PENDING (sent to the cashier) or, with as_budget, as a
    BUDGET quote. PENDING requires the payments to settle the grand total.
    """
    try:
        data = request.get_json(silent=True) or {}
        cart, notices = sales_service.build_cart(data)
        sale = sales_service.save_sale(
            cart,
            seller_id=data.get("seller_id"),
            salesperson_id=data.get("salesperson_id"),
            as_budget=bool(data.get("as_budget")),
            **_sale_details(data),
        )
        return jsonify({"sale": sale.to_dict(), "notices": notices}), 201

    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.put("/<int:sale_id>")
def update_sale_route(sale_id: int):
    """Re-save a BUDGET or PENDING sale with a new cart snapshot."""
    try:
        data = request.get_json(silent=True) or {}
        cart, notices = sales_service.build_cart(data)
        sale = sales_service.save_sale(
            cart,
            seller_id=data.get("seller_id"),
            salesperson_id=data.get("salesperson_id"),
            as_budget=bool(data.get("as_budget")),
            sale_id=sale_id,
            **_sale_details(data),
        )
        return jsonify({"sale": sale.to_dict(), "notices": notices}), 200

    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    """
    Sales board: PENDING first (oldest first), then the rest newest first.

    Query params:
    - status: BUDGET | PENDING | COMPLETED | CANCELLED (optional)
    """
    status = request.args.get("status")
    if status and status not in VALID_SALE_STATUSES:
        return jsonify({"error": f"Invalid status: {status}"}), 400
    return jsonify({"sales": _board().entries(status)}), 200


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.post("/<int:sale_id>/finalize")
def finalize_sale_route(sale_id: int):
    """
    Cashier confirmation: allocate payments, check settlement, complete.

    Body: cashier_id (required), payments, installments, cashier_ident.
    """
    try:
        data = request.get_json(silent=True) or {}
        cashier_id = data.get("cashier_id")
        if not cashier_id:
            return jsonify({"error": "cashier_id required"}), 400

        sale = sales_service.finalize_sale(
            sale_id,
            cashier_id,
            payments=data.get("payments"),
            installments=data.get("installments"),
            cashier_ident=data.get("cashier_ident"),
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to finalize sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/cancel")
def cancel_sale_route(sale_id: int):
    """Cancel a sale; a COMPLETED sale returns its stock."""
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.cancel_sale(sale_id, manager_id=data.get("manager_id"))
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
