# Overview: Service-layer operations for users and sellers.

"""
People Service

Users are the operators who log in (manager, salesperson, cashier). Sellers
are the roster of salespeople a sale can be attributed to; they do not log
in.

SECURITY NOTES:
- Credentials hashed with bcrypt (cost factor 12)
- The hash is never serialized (User.to_dict omits it)
"""

import bcrypt

from ..extensions import db
from ..errors import ConflictError, NotFound, ValidationError
from ..models import Sale, Seller, User, VALID_ROLES

USER_MUTABLE_FIELDS = {"name", "username", "role", "active"}
SELLER_MUTABLE_FIELDS = {"name", "active"}


def hash_password(password: str) -> str:
    if not password:
        raise ValidationError("password is required")
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


# =============================================================================
# USERS
# =============================================================================

def _check_role(role) -> None:
    if role is not None and role not in VALID_ROLES:
        raise ValidationError(f"Invalid role: {role}. Must be one of {VALID_ROLES}")


def _check_username_unique(username: str, user_id: int | None = None) -> None:
    query = db.session.query(User).filter(User.username == username)
    if user_id is not None:
        query = query.filter(User.id != user_id)
    if query.first():
        raise ConflictError("Username already exists.", details={"username": username})


def list_users() -> list[dict]:
    return [u.to_dict() for u in db.session.query(User).order_by(User.name).all()]


def get_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFound("User not found", details={"user_id": user_id})
    return user


def create_user(*, name: str, username: str, password: str, role: str) -> User:
    _check_role(role)
    _check_username_unique(username)
    user = User(
        name=name,
        username=username,
        role=role,
        active=True,
        password_hash=hash_password(password),
    )
    db.session.add(user)
    db.session.commit()
    return user


def update_user(user_id: int, patch: dict) -> User:
    user = get_user(user_id)
    _check_role(patch.get("role"))
    if "username" in patch:
        _check_username_unique(patch["username"], user_id=user.id)
    for k, v in patch.items():
        if k in USER_MUTABLE_FIELDS:
            setattr(user, k, v)
    if patch.get("password"):
        user.password_hash = hash_password(patch["password"])
    db.session.commit()
    return user


def delete_user(user_id: int) -> None:
    user = get_user(user_id)
    in_use = db.session.query(Sale).filter(
        (Sale.seller_id == user.id) | (Sale.cashier_id == user.id)
    ).first()
    if in_use:
        raise ConflictError(
            "User is recorded on sales; deactivate it instead.",
            details={"user_id": user.id},
        )
    db.session.delete(user)
    db.session.commit()


# =============================================================================
# SELLERS
# =============================================================================

def list_sellers(active_only: bool = False) -> list[dict]:
    query = db.session.query(Seller)
    if active_only:
        query = query.filter_by(active=True)
    return [s.to_dict() for s in query.order_by(Seller.name).all()]


def get_seller(seller_id: int) -> Seller:
    seller = db.session.query(Seller).filter_by(id=seller_id).first()
    if not seller:
        raise NotFound("Seller not found", details={"seller_id": seller_id})
    return seller


def create_seller(name: str) -> Seller:
    seller = Seller(name=name, active=True)
    db.session.add(seller)
    db.session.commit()
    return seller


def update_seller(seller_id: int, patch: dict) -> Seller:
    seller = get_seller(seller_id)
    for k, v in patch.items():
        if k in SELLER_MUTABLE_FIELDS:
            setattr(seller, k, v)
    db.session.commit()
    return seller


def toggle_seller_active(seller_id: int) -> Seller:
    seller = get_seller(seller_id)
    seller.active = not seller.active
    db.session.commit()
    return seller


def delete_seller(seller_id: int) -> None:
    seller = get_seller(seller_id)
    if db.session.query(Sale).filter_by(salesperson_id=seller.id).first():
        raise ConflictError(
            "Seller is responsible for recorded sales; deactivate it instead.",
            details={"seller_id": seller.id},
        )
    db.session.delete(seller)
    db.session.commit()
