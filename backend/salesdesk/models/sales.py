from __future__ import annotations

from ..extensions import db
from ..money import to_decimal, to_json_number
from salesdesk.time_utils import to_utc_z

SALE_STATUS_BUDGET = "BUDGET"
SALE_STATUS_PENDING = "PENDING"
SALE_STATUS_COMPLETED = "COMPLETED"
SALE_STATUS_CANCELLED = "CANCELLED"

VALID_SALE_STATUSES = [
    SALE_STATUS_BUDGET,
    SALE_STATUS_PENDING,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_CANCELLED,
]

# Statuses in which the cart can still be reopened and edited
EDITABLE_SALE_STATUSES = {SALE_STATUS_BUDGET, SALE_STATUS_PENDING}


class Sale(db.Model):
    """
    Sale record.

    Line items live inside the sale as a JSON list (one object per line,
    see services/cart_service.SaleItem.to_record). Payments are a JSON object
    keyed by payment method.

    LIFECYCLE:
    - BUDGET / PENDING: created and re-edited by salespeople
    - COMPLETED: cashier confirmation; stock decremented, finished_at set
    - CANCELLED: by a manager from any status; terminal
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Creator (logged-in user / terminal)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    seller_name = db.Column(db.String(255), nullable=True)

    # Responsible salesperson (roster entry)
    salesperson_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=True, index=True)
    salesperson_name = db.Column(db.String(255), nullable=True)

    # Populated only at completion
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cashier_name = db.Column(db.String(255), nullable=True)

    items = db.Column(db.JSON, nullable=False, default=list)
    total_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_PENDING, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)

    client_name = db.Column(db.String(255), nullable=True)

    # Monetary adjustments
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    freight = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    other_costs = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    payments = db.Column(db.JSON, nullable=True)
    installments = db.Column(db.Integer, nullable=False, default=1)

    observation = db.Column(db.Text, nullable=True)
    delivery_address = db.Column(db.String(255), nullable=True)
    purchase_order = db.Column(db.String(64), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    cashier_ident = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} status={self.status} total_value={self.total_value}>"

    @property
    def item_records(self) -> list[dict]:
        return list(self.items or [])

    def to_dict(self) -> dict:
        payments = {
            method: to_json_number(amount)
            for method, amount in (self.payments or {}).items()
        }
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "seller_name": self.seller_name or "",
            "salesperson_id": self.salesperson_id,
            "salesperson_name": self.salesperson_name or "",
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier_name or "",
            "items": self.item_records,
            "total_value": to_json_number(self.total_value),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "finished_at": to_utc_z(self.finished_at) if self.finished_at else None,
            "updated_at": to_utc_z(self.updated_at) if self.updated_at else None,
            "client_name": self.client_name or "",
            "discount": to_json_number(self.discount),
            "freight": to_json_number(self.freight),
            "other_costs": to_json_number(self.other_costs),
            "payments": payments,
            "installments": int(to_decimal(self.installments) or 1),
            "observation": self.observation or "",
            "delivery_address": self.delivery_address or "",
            "purchase_order": self.purchase_order or "",
            "customer_email": self.customer_email or "",
            "cashier_ident": self.cashier_ident or "",
            "version_id": self.version_id,
        }
