from __future__ import annotations

from ..extensions import db
from ..money import to_decimal, to_json_number
from salesdesk.time_utils import to_utc_z

# Unit-of-measure code used when a product record carries none
BASE_UNIT = "UNID"


class Product(db.Model):
    """
    Product master data.

    Stock is the one counter shared by concurrent sales. It is only ever
    changed through conditional UPDATE statements (see
    services/store_gateway.conditional_update) so it cannot go negative.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active", "active"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human code typed or scanned at the counter
    code = db.Column(db.String(64), nullable=False, default="")
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    category = db.Column(db.String(120), nullable=True)
    unit = db.Column(db.String(16), nullable=True, default=BASE_UNIT)
    active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r} stock={self.stock}>"

    @property
    def unit_code(self) -> str:
        return self.unit or BASE_UNIT

    @property
    def unit_price(self):
        return to_decimal(self.price)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code or "",
            "name": self.name,
            "description": self.description or "",
            "price": to_json_number(self.price),
            "stock": int(to_decimal(self.stock)),
            "category": self.category or "",
            "unit": self.unit_code,
            "active": bool(self.active),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
