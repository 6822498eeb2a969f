# Overview: Payment reconciliation engine; per-method allocation and settlement checks.

"""
Payment Reconciliation Engine

A sale is paid through a breakdown of amounts per payment method (split
payments). Rules:

- No single method's allocation may push the total paid above the grand
  total: a method can take at most grand_total - sum(other methods).
- "Fill" adds whatever is still remaining to one method in a single step.
- Credit payments carry an installment count (1..10). Installments are only
  offered on full-price sales: with a global discount the count is 1.
- At confirmation, total paid must match the grand total within 0.05, or
  the grand total must be zero.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app, has_app_context

from ..errors import ExceedsRemaining, PaymentMismatch, ValidationError
from ..money import (
    PAYMENT_ALLOCATION_TOLERANCE,
    SETTLEMENT_TOLERANCE,
    ZERO,
    format_money,
    round_money,
    to_decimal,
    to_json_number,
)
from .cart_service import Cart


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_DEBIT = "debit"
METHOD_CREDIT = "credit"
METHOD_TICKET = "ticket"
METHOD_PIX = "pix"
METHOD_TRANSFER = "transfer"
METHOD_BOLETO = "boleto"
METHOD_CHEQUE = "cheque"
METHOD_CREDIT_STORE = "credit_store"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_DEBIT,
    METHOD_CREDIT,
    METHOD_TICKET,
    METHOD_PIX,
    METHOD_TRANSFER,
    METHOD_BOLETO,
    METHOD_CHEQUE,
    METHOD_CREDIT_STORE,
]

DEFAULT_MAX_INSTALLMENTS = 10


def _setting(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _currency() -> str:
    return _setting("CURRENCY_SYMBOL", "R$")


def empty_payments() -> dict[str, Decimal]:
    return {method: ZERO for method in VALID_PAYMENT_METHODS}


def _require_method(method: str) -> None:
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}",
            details={"method": method},
        )


# =============================================================================
# ALLOCATION
# =============================================================================

def room_left(cart: Cart, method: str) -> Decimal:
    """Largest amount method may hold given what the other methods already cover."""
    paid_by_others = cart.total_paid - to_decimal(cart.payments.get(method))
    return cart.grand_total - paid_by_others


def set_amount(cart: Cart, method: str, value) -> Decimal:
    """
    Set one method's amount.

    Raises:
        ValidationError: unknown method or negative amount
        ExceedsRemaining: amount larger than the room left for this method
    """
    _require_method(method)
    requested = to_decimal(value)
    amount = round_money(requested)
    if requested < 0:
        raise ValidationError("Payment amount cannot be negative", details={"method": method})

    # Tolerance applies to the amount as entered, before cent rounding
    room = room_left(cart, method)
    if requested > room + PAYMENT_ALLOCATION_TOLERANCE:
        raise ExceedsRemaining(
            f"Amount cannot exceed the remaining balance (Max: {_currency()} {format_money(room)})",
            details={
                "method": method,
                "amount": to_json_number(amount),
                "max_allowed": to_json_number(room),
            },
        )

    cart.payments[method] = amount
    return amount


def fill_remaining(cart: Cart, method: str) -> Decimal:
    """Add the current remaining balance to method (the Enter-key shortcut)."""
    _require_method(method)
    return set_amount(cart, method, to_decimal(cart.payments.get(method)) + cart.remaining)


def set_installments(cart: Cart, count) -> int:
    max_installments = int(_setting("MAX_INSTALLMENTS", DEFAULT_MAX_INSTALLMENTS))
    try:
        count = int(count)
    except (TypeError, ValueError):
        raise ValidationError("Installments must be a whole number")
    if not 1 <= count <= max_installments:
        raise ValidationError(
            f"Installments must be between 1 and {max_installments}",
            details={"installments": count},
        )
    if count > 1 and cart.has_global_discount:
        raise ValidationError(
            "Installments are not available on discounted sales",
            details={"installments": count, "discount": to_json_number(cart.discount)},
        )
    cart.installments = count
    return count


# =============================================================================
# SETTLEMENT
# =============================================================================

def check_settlement(grand_total, total_paid) -> None:
    """
    Raise PaymentMismatch unless the payment breakdown settles grand_total.

    details["difference"] is grand_total - total_paid: positive when money
    is missing, negative when there is too much.
    """
    grand_total = round_money(grand_total)
    total_paid = round_money(total_paid)
    if grand_total == 0:
        return

    difference = grand_total - total_paid
    details = {
        "grand_total": to_json_number(grand_total),
        "total_paid": to_json_number(total_paid),
        "difference": to_json_number(difference),
    }

    if total_paid <= 0:
        raise PaymentMismatch("Select a payment method before finishing.", details=details)

    if abs(difference) > SETTLEMENT_TOLERANCE:
        if difference > 0:
            message = f"Payment mismatch! Missing {_currency()} {format_money(difference)}."
        else:
            message = f"Payment mismatch! Excess {_currency()} {format_money(-difference)}."
        raise PaymentMismatch(message, details=details)


def ensure_settled(cart: Cart) -> None:
    check_settlement(cart.grand_total, cart.total_paid)


def payment_records(cart: Cart) -> dict:
    """Full breakdown (every method) for the sale's payments column."""
    breakdown = empty_payments()
    breakdown.update({k: round_money(v) for k, v in cart.payments.items() if k in breakdown})
    return {method: to_json_number(amount) for method, amount in breakdown.items()}
