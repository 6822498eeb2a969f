# Overview: Discount authorization engine; effective discount over original pricing.

"""
Discount Authorization Engine

The effective discount of a sale is measured against its ORIGINAL value
(catalog price at the time each line was added), so it adds up the
markdowns already baked into line prices and the proposed global discount:

    original_value  = sum(quantity * original_price)
    item_markdown   = original_value - subtotal
    total_pct       = 100 * (item_markdown + global_discount) / original_value

Above the authorization threshold (6% by default) confirming the discount
requires an override token.

NOTE: the token is only checked for length. There is no authority to
verify it against; it is a managerial control exercised by a person at the
counter, not by this engine.

Only the discount AMOUNT is state. The percentage and the post-discount
total shown to the operator are derived from it on every read, so editing
any of the three views keeps the other two consistent.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app, has_app_context

from ..errors import AuthorizationRequired, ValidationError
from ..money import ZERO, round_money, to_decimal, to_json_number
from .cart_service import Cart

DEFAULT_AUTHORIZATION_THRESHOLD_PCT = 6.0
DEFAULT_TOKEN_MIN_LENGTH = 3

HUNDRED = Decimal("100")


def _setting(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def authorization_threshold_pct() -> Decimal:
    return to_decimal(_setting("DISCOUNT_AUTHORIZATION_THRESHOLD_PCT", DEFAULT_AUTHORIZATION_THRESHOLD_PCT))


def token_min_length() -> int:
    return int(_setting("DISCOUNT_TOKEN_MIN_LENGTH", DEFAULT_TOKEN_MIN_LENGTH))


# =============================================================================
# PURE DERIVATIONS
# =============================================================================

def original_value(cart: Cart) -> Decimal:
    return cart.original_value


def item_markdown(cart: Cart) -> Decimal:
    """Discount already applied through line price edits."""
    return cart.original_value - cart.subtotal


def percent_for_amount(cart: Cart, amount) -> Decimal:
    """Total discount percentage (line markdowns + global amount)."""
    base = cart.original_value
    if base == 0:
        return ZERO
    return HUNDRED * (item_markdown(cart) + to_decimal(amount)) / base


def amount_for_percent(cart: Cart, pct) -> Decimal:
    """Global discount needed so the total discount reaches pct."""
    target = cart.original_value * to_decimal(pct) / HUNDRED
    return round_money(max(ZERO, target - item_markdown(cart)))


def amount_for_target_total(cart: Cart, total) -> Decimal:
    """Global discount needed so the items subtotal comes down to total."""
    return round_money(max(ZERO, cart.subtotal - to_decimal(total)))


def discounted_total(cart: Cart, amount) -> Decimal:
    return cart.subtotal - to_decimal(amount)


# =============================================================================
# AUTHORIZATION
# =============================================================================

def authorize_discount(cart: Cart, amount, token: str | None = None) -> Decimal:
    """
    Check a proposed global discount.

    Returns the resulting total discount percentage.

    Raises:
        ValidationError: negative amount
        AuthorizationRequired: percentage over the threshold without a token
    """
    amount = round_money(amount)
    if amount < 0:
        raise ValidationError("Discount cannot be negative")

    pct = percent_for_amount(cart, amount)
    threshold = authorization_threshold_pct()
    if pct > threshold and len(token or "") < token_min_length():
        raise AuthorizationRequired(
            f"Total discount ({pct:.2f}%) exceeds {threshold.normalize():f}%. Token required.",
            details={
                "percent": float(round(pct, 2)),
                "threshold": float(threshold),
                "amount": to_json_number(amount),
            },
        )
    return pct


def apply_discount(cart: Cart, amount, token: str | None = None) -> Decimal:
    """
    Authorize and set the cart's global discount.

    A global discount disables credit installments, so they drop back to 1.
    """
    authorize_discount(cart, amount, token)
    cart.discount = round_money(amount)
    if cart.discount > 0:
        cart.installments = 1
    return cart.discount


def clear_discount(cart: Cart) -> None:
    cart.discount = ZERO


class DiscountEditor:
    """
    Discount dialog state.

    Starts from the cart's current discount. The three inputs (amount,
    percentage, post-discount total) all write the amount; the other two
    views are read back from it.
    """

    def __init__(self, cart: Cart):
        self.cart = cart
        self.amount = round_money(cart.discount)

    @property
    def percent(self) -> Decimal:
        return percent_for_amount(self.cart, self.amount)

    @property
    def discounted_total(self) -> Decimal:
        return discounted_total(self.cart, self.amount)

    @property
    def requires_token(self) -> bool:
        return self.percent > authorization_threshold_pct()

    def set_amount(self, amount) -> None:
        self.amount = round_money(max(ZERO, to_decimal(amount)))

    def set_percent(self, pct) -> None:
        self.amount = amount_for_percent(self.cart, pct)

    def set_target_total(self, total) -> None:
        self.amount = amount_for_target_total(self.cart, total)

    def confirm(self, token: str | None = None) -> Decimal:
        return apply_discount(self.cart, self.amount, token)

    def to_dict(self) -> dict:
        return {
            "amount": to_json_number(self.amount),
            "percent": float(round(self.percent, 2)),
            "discounted_total": to_json_number(self.discounted_total),
            "original_value": to_json_number(self.cart.original_value),
            "item_markdown": to_json_number(item_markdown(self.cart)),
            "requires_token": self.requires_token,
        }
