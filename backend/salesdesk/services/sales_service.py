"""
Sales Service - sale lifecycle

BUDGET / PENDING --finalize (cashier)--> COMPLETED
any status       --cancel (manager)----> CANCELLED (terminal)

Completion is the only transition with side effects on other records: the
global discount is folded into the line prices, then every line's product
stock is re-checked and decremented. Cancelling a COMPLETED sale gives the
stock back.

Stock is never read-then-written. Each decrement is a conditional UPDATE
(stock = stock - qty WHERE stock >= qty); a row count of zero means another
sale took the units first.

With SALE_COMPLETION_ATOMIC (default) the whole completion is a single
transaction, so a failing line leaves no decrement behind. With it off, each
decrement is committed as it happens and a later failure leaves the earlier
lines decremented; such sales have to be reconciled by hand.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import (
    AlreadyCompleted,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    ProductNotFound,
    RoleNotAllowed,
    ValidationError,
)
from ..models import (
    Product,
    Sale,
    Seller,
    User,
    ROLE_CASHIER,
    ROLE_MANAGER,
    ROLE_SALESPERSON,
    SALE_STATUS_BUDGET,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_PENDING,
    EDITABLE_SALE_STATUSES,
)
from ..money import ZERO, round_money, round_price, to_decimal
from salesdesk.time_utils import utcnow
from . import discount_service, payment_service, store_gateway
from .cart_service import Cart, SaleItem
from .concurrency import lock_for_update, run_with_retry

SALE_DETAIL_FIELDS = (
    "client_name",
    "observation",
    "delivery_address",
    "purchase_order",
    "customer_email",
    "cashier_ident",
)


# =============================================================================
# LOOKUPS
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = store_gateway.read_one(Sale, id=sale_id)
    if not sale:
        raise NotFound("Sale not found", details={"sale_id": sale_id})
    return sale


def _load_sale_locked(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).populate_existing().first()
    if not sale:
        raise NotFound("Sale not found", details={"sale_id": sale_id})
    return sale


def _require_user(user_id, roles: set[str], action: str) -> User:
    user = store_gateway.read_one(User, id=user_id) if user_id is not None else None
    if user is None:
        raise NotFound("User not found", details={"user_id": user_id})
    if not user.active:
        raise RoleNotAllowed(f"User '{user.username}' is inactive", details={"user_id": user.id})
    if user.role not in roles:
        raise RoleNotAllowed(
            f"Role {user.role} cannot {action}",
            details={"user_id": user.id, "role": user.role, "allowed_roles": sorted(roles)},
        )
    return user


# =============================================================================
# CART FROM PAYLOAD
# =============================================================================

def build_cart(payload: dict) -> tuple[Cart, list[str]]:
    """
    Rebuild a cart from a JSON payload through the cart, discount and
    payment engines.

    Lines are added at the current catalog price (which becomes their
    markdown baseline); a different unit_price is applied as an item edit,
    so the 6% line floor holds. Returns the cart and the item-edit notices.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    raw_items = payload.get("items") or []
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")

    cart = Cart()
    notices: list[str] = []

    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object")
        product_id = raw.get("product_id")
        product = store_gateway.read_one(Product, id=product_id) if product_id is not None else None
        if product is None:
            raise ProductNotFound(
                f"Product not found: {raw.get('product_name') or product_id}",
                details={"product_id": product_id},
            )

        item = cart.add_item(product, raw.get("quantity", 1), observation=raw.get("observation") or "")

        requested_price = raw.get("unit_price")
        if requested_price is not None and round_price(requested_price) != item.unit_price:
            notices.extend(cart.edit_item(len(cart.items) - 1, item.quantity, requested_price))

    if payload.get("installments") is not None:
        payment_service.set_installments(cart, payload["installments"])

    discount = round_money(payload.get("discount"))
    if discount > 0:
        discount_service.apply_discount(cart, discount, payload.get("discount_token"))
    elif discount < 0:
        raise ValidationError("Discount cannot be negative")

    cart.set_adjustments(freight=payload.get("freight"), other_costs=payload.get("other_costs"))

    payments = payload.get("payments") or {}
    if not isinstance(payments, dict):
        raise ValidationError("payments must be an object keyed by payment method")
    for method, value in payments.items():
        payment_service.set_amount(cart, method, value)

    return cart, notices


# =============================================================================
# SAVE (BUDGET / PENDING)
# =============================================================================

def save_sale(
    cart: Cart,
    *,
    seller_id: int,
    salesperson_id: int | None,
    as_budget: bool = False,
    sale_id: int | None = None,
    **details,
) -> Sale:
    """
    Create or update a sale in BUDGET or PENDING status with the full cart
    snapshot.

    Args:
        cart: Cart to persist
        seller_id: User saving the sale (salesperson or manager)
        salesperson_id: Seller roster entry responsible for the sale
        as_budget: BUDGET instead of PENDING; skips the payment check
        sale_id: Existing sale to update (BUDGET/PENDING only)
        details: client_name, observation, delivery_address, purchase_order,
            customer_email, cashier_ident

    Raises:
        ValidationError: empty cart, no/inactive salesperson, unknown field
        PaymentMismatch: payments do not settle a positive grand total
        InvalidTransition: sale_id is COMPLETED or CANCELLED
        NotFound: unknown user or sale
    """
    unknown = set(details) - set(SALE_DETAIL_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    if cart.is_empty:
        raise ValidationError("Add products to the sale.")
    if not salesperson_id:
        raise ValidationError("Select the responsible salesperson.")
    if not as_budget:
        payment_service.ensure_settled(cart)

    def _op():
        user = _require_user(seller_id, {ROLE_SALESPERSON, ROLE_MANAGER}, "create sales")

        salesperson = store_gateway.read_one(Seller, id=salesperson_id)
        if salesperson is None or not salesperson.active:
            raise ValidationError(
                "Select the responsible salesperson.",
                details={"salesperson_id": salesperson_id},
            )

        client_name = (details.get("client_name") or "").strip()
        payload = {
            "items": cart.item_records(),
            "total_value": round_money(cart.grand_total),
            "discount": round_money(cart.discount),
            "freight": round_money(cart.freight),
            "other_costs": round_money(cart.other_costs),
            "payments": payment_service.payment_records(cart),
            "installments": cart.installments,
            "salesperson_id": salesperson.id,
            "salesperson_name": salesperson.name,
            "client_name": client_name or current_app.config["DEFAULT_CLIENT_NAME"],
            "status": SALE_STATUS_BUDGET if as_budget else SALE_STATUS_PENDING,
        }
        for field in SALE_DETAIL_FIELDS[1:]:
            if field in details:
                payload[field] = details[field] or ""

        if sale_id is None:
            payload["seller_id"] = user.id
            payload["seller_name"] = user.name
            sale = store_gateway.insert(Sale, payload)
        else:
            sale = _load_sale_locked(sale_id)
            if sale.status not in EDITABLE_SALE_STATUSES:
                raise InvalidTransition(
                    f"Cannot edit a {sale.status} sale",
                    details={"sale_id": sale.id, "status": sale.status},
                )
            store_gateway.update(sale, payload)

        db.session.commit()
        return sale

    return run_with_retry(_op)


# =============================================================================
# COMPLETION
# =============================================================================

def redistribute_discount(items: list[SaleItem], discount) -> tuple[list[SaleItem], Decimal]:
    """
    Fold a global discount into the line prices.

    Every unit price is scaled by (subtotal - discount) / subtotal. Rounding
    leaves a few cents between the new line totals and subtotal - discount;
    that residue goes onto a single line so the lines add up exactly.
    Returns the items and the discount left on the sale: 0 once distributed,
    or the untouched discount when the subtotal is zero.
    """
    discount = round_money(discount)
    if discount <= 0:
        return items, discount

    subtotal = sum((item.total for item in items), ZERO)
    if subtotal <= 0:
        return items, discount

    target = max(ZERO, subtotal - discount)
    factor = target / subtotal
    for item in items:
        item.unit_price = round_price(item.unit_price * factor)

    _settle_residue(items, target)
    return items, ZERO


def _settle_residue(items: list[SaleItem], target: Decimal) -> None:
    residue = target - sum((item.total for item in items), ZERO)
    if residue == 0:
        return

    # Single-unit lines absorb any residue exactly; larger lines only while
    # the 4-place unit price can still express it
    candidates = sorted(
        (item for item in items if item.total + residue >= 0),
        key=lambda item: (item.quantity, -item.total),
    )
    for item in candidates:
        previous = item.unit_price
        item.unit_price = round_price((item.total + residue) / item.quantity)
        if sum((line.total for line in items), ZERO) == target:
            return
        item.unit_price = previous


def _take_stock(item: SaleItem) -> None:
    product = store_gateway.read_one(Product, id=item.product_id)
    if product is None:
        raise ProductNotFound(
            f"Product not found: {item.product_name}",
            details={"product_id": item.product_id},
        )

    if product.stock < item.quantity:
        raise InsufficientStock(product.name, product.stock, requested=item.quantity, product_id=product.id)

    rows = store_gateway.conditional_update(
        Product,
        {"stock": Product.stock - item.quantity},
        Product.id == product.id,
        Product.stock >= item.quantity,
    )
    if rows == 0:
        # Another completion took the units between the read and the update
        db.session.refresh(product)
        raise InsufficientStock(product.name, product.stock, requested=item.quantity, product_id=product.id)


def _complete_locked(sale: Sale, cashier: User, atomic: bool) -> Sale:
    """Completion steps on a sale already loaded under lock; commits."""
    if sale.status == SALE_STATUS_COMPLETED:
        raise AlreadyCompleted("Sale already completed.", details={"sale_id": sale.id})
    if sale.status == SALE_STATUS_CANCELLED:
        raise InvalidTransition(
            "Cancelled sales cannot be completed",
            details={"sale_id": sale.id, "status": sale.status},
        )

    items = [SaleItem.from_record(rec) for rec in sale.item_records]
    items, remaining_discount = redistribute_discount(items, sale.discount)

    decremented = 0
    try:
        for item in items:
            _take_stock(item)
            decremented += 1
            if not atomic:
                db.session.commit()
    except Exception:
        if decremented and not atomic:
            current_app.logger.warning(
                "Sale %s completion aborted after %d committed stock decrement(s)",
                sale.id,
                decremented,
            )
        raise

    store_gateway.update(sale, {
        "status": SALE_STATUS_COMPLETED,
        "cashier_id": cashier.id,
        "cashier_name": cashier.name,
        "finished_at": utcnow(),
        "items": [item.to_record() for item in items],
        "discount": remaining_discount,
    })
    db.session.commit()
    current_app.logger.info("Sale %s completed by cashier %s", sale.id, cashier.id)
    return sale


def complete_sale(sale_id: int, cashier_id: int) -> Sale:
    """
    Complete a sale: redistribute discount, check and decrement stock,
    record the cashier and completion time.

    Raises:
        NotFound: unknown sale or cashier
        AlreadyCompleted: sale is COMPLETED
        InvalidTransition: sale is CANCELLED
        RoleNotAllowed: cashier is not an active CASHIER/MANAGER
        ProductNotFound / InsufficientStock: a line cannot be served
    """
    atomic = current_app.config.get("SALE_COMPLETION_ATOMIC", True)

    def _op():
        cashier = _require_user(cashier_id, {ROLE_CASHIER, ROLE_MANAGER}, "complete sales")
        sale = _load_sale_locked(sale_id)
        return _complete_locked(sale, cashier, atomic)

    # Per-item commits cannot be replayed safely
    return run_with_retry(_op, attempts=3 if atomic else 1)


def finalize_sale(
    sale_id: int,
    cashier_id: int,
    payments: dict | None = None,
    installments: int | None = None,
    cashier_ident: str | None = None,
) -> Sale:
    """
    Cashier confirmation of a PENDING sale.

    Allocates the payments the cashier entered, checks they settle the
    grand total, then completes the sale. Payments and completion share one
    transaction, so a sale that fails to complete keeps its previous
    payments (in legacy per-item mode they are committed with the first
    decrement).

    Raises:
        ExceedsRemaining: a method allocation exceeds the remaining balance
        PaymentMismatch: payments do not settle the grand total
        InvalidTransition: sale is not PENDING
        plus everything complete_sale raises
    """
    atomic = current_app.config.get("SALE_COMPLETION_ATOMIC", True)

    def _op():
        cashier = _require_user(cashier_id, {ROLE_CASHIER, ROLE_MANAGER}, "complete sales")
        sale = _load_sale_locked(sale_id)

        if sale.status == SALE_STATUS_COMPLETED:
            raise AlreadyCompleted("Sale already completed.", details={"sale_id": sale.id})
        if sale.status != SALE_STATUS_PENDING:
            raise InvalidTransition(
                f"Only PENDING sales can be confirmed (sale is {sale.status})",
                details={"sale_id": sale.id, "status": sale.status},
            )

        cart = Cart.from_sale(sale)
        if payments is not None:
            if not isinstance(payments, dict):
                raise ValidationError("payments must be an object keyed by payment method")
            cart.payments = {}
            for method, value in payments.items():
                payment_service.set_amount(cart, method, value)
        if installments is not None:
            payment_service.set_installments(cart, installments)

        payment_service.ensure_settled(cart)

        patch = {
            "payments": payment_service.payment_records(cart),
            "installments": cart.installments,
        }
        if cashier_ident is not None:
            patch["cashier_ident"] = cashier_ident
        store_gateway.update(sale, patch)
        return _complete_locked(sale, cashier, atomic)

    return run_with_retry(_op, attempts=3 if atomic else 1)


# =============================================================================
# CANCELLATION
# =============================================================================

def cancel_sale(sale_id: int, manager_id: int | None = None) -> Sale:
    """
    Cancel a sale from any status.

    A COMPLETED sale gives its stock back first (line by line; a product
    that no longer exists is skipped). Cancelling twice is a no-op.
    """
    def _op():
        if manager_id is not None:
            _require_user(manager_id, {ROLE_MANAGER}, "cancel sales")

        sale = _load_sale_locked(sale_id)
        if sale.status == SALE_STATUS_CANCELLED:
            return sale

        if sale.status == SALE_STATUS_COMPLETED:
            for record in sale.item_records:
                quantity = int(to_decimal(record.get("quantity")))
                rows = store_gateway.conditional_update(
                    Product,
                    {"stock": Product.stock + quantity},
                    Product.id == record.get("product_id"),
                )
                if rows == 0:
                    current_app.logger.warning(
                        "Sale %s cancel: product %s no longer exists, %s unit(s) not restocked",
                        sale.id,
                        record.get("product_id"),
                        quantity,
                    )

        store_gateway.update(sale, {"status": SALE_STATUS_CANCELLED, "finished_at": None})
        db.session.commit()
        current_app.logger.info("Sale %s cancelled", sale.id)
        return sale

    return run_with_retry(_op)
