# Overview: Cart engine; in-progress sale line items and derived totals.

"""
Cart Engine

Holds the line items of the sale being built plus its monetary adjustments
(global discount, freight, other costs) and the payment breakdown. Every
derived value (subtotal, grand total, paid, remaining) is computed on read,
never stored, so the cart cannot drift out of sync with its lines.

Item-level markdowns and the global discount are mutually exclusive editing
modes: while a global discount is applied, item prices are locked.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app, has_app_context

from ..errors import InsufficientStock, ItemEditLocked, ValidationError
from ..models import BASE_UNIT
from ..money import MAX_AMOUNT, ZERO, round_money, round_price, to_decimal, to_json_number

DEFAULT_LINE_MARKDOWN_LIMIT_PCT = 6.0

NOTICE_PRICE_REVERTED = "Invalid price. Reverted to the original price."
NOTICE_PRICE_CLAMPED = "Price adjusted to the maximum markdown of {limit}%."


def _setting(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def line_markdown_limit_pct() -> Decimal:
    return to_decimal(_setting("LINE_MARKDOWN_LIMIT_PCT", DEFAULT_LINE_MARKDOWN_LIMIT_PCT))


def as_quantity(value) -> int:
    """Positive whole quantity, or ValidationError."""
    if isinstance(value, bool):
        raise ValidationError("Quantity must be a positive whole number")
    amount = to_decimal(value)
    if amount <= 0 or amount > MAX_AMOUNT or amount != amount.to_integral_value():
        raise ValidationError(
            "Quantity must be a positive whole number",
            details={"quantity": str(value)},
        )
    return int(amount)


@dataclass
class SaleItem:
    """One line of a sale. total is always quantity * unit_price."""
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    original_price: Decimal
    product_code: str = ""
    unit: str = BASE_UNIT
    observation: str = ""

    @property
    def total(self) -> Decimal:
        return round_money(self.quantity * self.unit_price)

    @property
    def original_total(self) -> Decimal:
        return self.quantity * self.original_price

    def to_record(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_code": self.product_code,
            "product_name": self.product_name,
            "unit": self.unit,
            "quantity": self.quantity,
            "unit_price": to_json_number(self.unit_price, places=4),
            "original_price": to_json_number(self.original_price, places=4),
            "total": to_json_number(self.total),
            "observation": self.observation,
        }

    @classmethod
    def from_record(cls, record: dict) -> "SaleItem":
        unit_price = round_price(record.get("unit_price"))
        original = record.get("original_price")
        return cls(
            product_id=record.get("product_id"),
            product_name=record.get("product_name") or "",
            quantity=int(to_decimal(record.get("quantity"))),
            unit_price=unit_price,
            # Lines saved without a baseline use their own price
            original_price=round_price(original) if original else unit_price,
            product_code=record.get("product_code") or "",
            unit=record.get("unit") or BASE_UNIT,
            observation=record.get("observation") or "",
        )


@dataclass
class Cart:
    items: list[SaleItem] = field(default_factory=list)
    discount: Decimal = ZERO
    freight: Decimal = ZERO
    other_costs: Decimal = ZERO
    payments: dict[str, Decimal] = field(default_factory=dict)
    installments: int = 1

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def subtotal(self) -> Decimal:
        return sum((item.total for item in self.items), ZERO)

    @property
    def original_value(self) -> Decimal:
        return sum((item.original_total for item in self.items), ZERO)

    @property
    def grand_total(self) -> Decimal:
        return max(ZERO, self.subtotal - self.discount + self.freight + self.other_costs)

    @property
    def total_paid(self) -> Decimal:
        return sum((to_decimal(v) for v in self.payments.values()), ZERO)

    @property
    def remaining(self) -> Decimal:
        return max(ZERO, self.grand_total - self.total_paid)

    @property
    def has_global_discount(self) -> bool:
        return self.discount > 0

    def quantity_in_cart(self, product_id) -> int:
        return sum(item.quantity for item in self.items if item.product_id == product_id)

    # -------------------------------------------------------------------------
    # Line operations
    # -------------------------------------------------------------------------

    def add_item(self, product, quantity, unit_price=None, observation: str = "") -> SaleItem:
        """
        Append a line for product.

        The catalog price at the time of adding becomes the line's
        original_price (the markdown baseline). unit_price defaults to it.
        """
        quantity = as_quantity(quantity)
        if not product.active:
            raise ValidationError(
                f"Product '{product.name}' is inactive",
                details={"product_id": product.id},
            )

        stock = int(to_decimal(product.stock))
        requested = self.quantity_in_cart(product.id) + quantity
        if stock < requested:
            raise InsufficientStock(product.name, stock, requested=requested, product_id=product.id)

        catalog_price = round_price(product.price)
        price = catalog_price if unit_price is None else round_price(unit_price)

        item = SaleItem(
            product_id=product.id,
            product_code=product.code or "",
            product_name=product.name,
            unit=product.unit or BASE_UNIT,
            quantity=quantity,
            unit_price=price,
            original_price=catalog_price,
            observation=observation or "",
        )
        self.items.append(item)
        return item

    def remove_item(self, index: int) -> SaleItem:
        self._check_index(index)
        return self.items.pop(index)

    def edit_item(self, index: int, quantity, unit_price, observation: str | None = None) -> list[str]:
        """
        Change a line's quantity and price.

        Returns the non-fatal notices raised while normalizing the price.
        """
        if self.has_global_discount:
            raise ItemEditLocked(
                "Remove the global discount to edit items.",
                details={"discount": str(self.discount)},
            )
        self._check_index(index)
        quantity = as_quantity(quantity)

        item = self.items[index]
        notices: list[str] = []

        price = round_price(unit_price) if unit_price else ZERO
        if price == 0:
            price = item.original_price
            notices.append(NOTICE_PRICE_REVERTED)

        limit = line_markdown_limit_pct()
        floor = round_price(item.original_price * (1 - limit / 100))
        if price < floor:
            price = floor
            notices.append(NOTICE_PRICE_CLAMPED.format(limit=f"{limit.normalize():f}"))

        item.quantity = quantity
        item.unit_price = price
        if observation is not None:
            item.observation = observation
        return notices

    def _check_index(self, index: int) -> None:
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(self.items):
            raise ValidationError("Item not found in cart", details={"index": index})

    # -------------------------------------------------------------------------
    # Adjustments
    # -------------------------------------------------------------------------

    def set_adjustments(self, *, freight=None, other_costs=None) -> None:
        if freight is not None:
            freight = round_money(freight)
            if freight < 0:
                raise ValidationError("Freight cannot be negative")
            self.freight = freight
        if other_costs is not None:
            other_costs = round_money(other_costs)
            if other_costs < 0:
                raise ValidationError("Other costs cannot be negative")
            self.other_costs = other_costs

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def item_records(self) -> list[dict]:
        return [item.to_record() for item in self.items]

    def summary(self) -> dict:
        return {
            "items": self.item_records(),
            "subtotal": to_json_number(self.subtotal),
            "original_value": to_json_number(self.original_value),
            "discount": to_json_number(self.discount),
            "freight": to_json_number(self.freight),
            "other_costs": to_json_number(self.other_costs),
            "grand_total": to_json_number(self.grand_total),
            "total_paid": to_json_number(self.total_paid),
            "remaining": to_json_number(self.remaining),
            "payments": {k: to_json_number(v) for k, v in self.payments.items()},
            "installments": self.installments,
        }

    @classmethod
    def from_sale(cls, sale) -> "Cart":
        """Reopen a stored sale as a cart (edit or cashier confirmation)."""
        return cls(
            items=[SaleItem.from_record(rec) for rec in sale.item_records],
            discount=round_money(sale.discount),
            freight=round_money(sale.freight),
            other_costs=round_money(sale.other_costs),
            payments={k: round_money(v) for k, v in (sale.payments or {}).items()},
            installments=int(sale.installments or 1),
        )
