from __future__ import annotations

from ..extensions import db
from salesdesk.time_utils import to_utc_z

ROLE_MANAGER = "MANAGER"
ROLE_SALESPERSON = "SALESPERSON"
ROLE_CASHIER = "CASHIER"

VALID_ROLES = [ROLE_MANAGER, ROLE_SALESPERSON, ROLE_CASHIER]


class User(db.Model):
    """
    Authenticated operator (terminal login).

    The user creating a sale is recorded as its seller; the cashier who
    confirms it is recorded at completion.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    role = db.Column(db.String(16), nullable=False, default=ROLE_SALESPERSON)
    active = db.Column(db.Boolean, nullable=False, default=True)

    # bcrypt hash, never serialized
    password_hash = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "role": self.role,
            "active": bool(self.active),
            "created_at": to_utc_z(self.created_at),
        }


class Seller(db.Model):
    """Roster entry selectable as the responsible salesperson of a sale."""
    __tablename__ = "sellers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "active": bool(self.active),
            "created_at": to_utc_z(self.created_at),
        }
