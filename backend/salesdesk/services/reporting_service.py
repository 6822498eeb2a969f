# Overview: Dashboard report; revenue and status counts over stored sales.

from __future__ import annotations

from ..extensions import db
from ..money import ZERO, round_money, to_decimal, to_json_number
from ..models import (
    Sale,
    SALE_STATUS_BUDGET,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_PENDING,
)

RECENT_SALES_LIMIT = 10


def dashboard(recent_limit: int = RECENT_SALES_LIMIT) -> dict:
    """
    Counter dashboard.

    revenue counts COMPLETED sales only. recent_sales holds the last
    recent_limit completions, oldest first, as chart points labelled with the
    completion time (HH:MM).
    """
    sales = db.session.query(Sale).all()

    counts = {
        SALE_STATUS_COMPLETED: 0,
        SALE_STATUS_PENDING: 0,
        SALE_STATUS_CANCELLED: 0,
        SALE_STATUS_BUDGET: 0,
    }
    revenue = ZERO
    completed = []
    for sale in sales:
        if sale.status in counts:
            counts[sale.status] += 1
        if sale.status == SALE_STATUS_COMPLETED:
            revenue += to_decimal(sale.total_value)
            completed.append(sale)

    completed.sort(key=lambda s: (s.finished_at is None, s.finished_at, s.id))
    recent = completed[-recent_limit:] if recent_limit > 0 else []

    return {
        "revenue": to_json_number(round_money(revenue)),
        "completed_count": counts[SALE_STATUS_COMPLETED],
        "pending_count": counts[SALE_STATUS_PENDING],
        "cancelled_count": counts[SALE_STATUS_CANCELLED],
        "budget_count": counts[SALE_STATUS_BUDGET],
        "recent_sales": [
            {
                "sale_id": s.id,
                "time": s.finished_at.strftime("%H:%M") if s.finished_at else "",
                "value": to_json_number(s.total_value),
            }
            for s in recent
        ],
    }
