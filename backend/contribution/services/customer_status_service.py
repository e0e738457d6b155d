# Overview: Lazily evaluated customer status (completed / defaulting / in progress).

"""
Customer Status

Recording a legacy payment only decides completed vs in_progress. Whether a
customer is defaulting depends on how long ago they last paid, so it is
re-evaluated here in a batch (CLI: flask customers refresh-statuses).

RULES (first match wins):
1. boxes_filled >= total_boxes             -> completed
2. last payment older than the window      -> defaulting
3. otherwise (including never paid)        -> in_progress
"""

from __future__ import annotations

from datetime import date, timedelta

from flask import current_app

from ..extensions import db
from ..models import Customer
from ..models.customers import CUSTOMER_COMPLETED, CUSTOMER_DEFAULTING, CUSTOMER_IN_PROGRESS
from contribution.money import to_decimal
from contribution.time_utils import Clock, business_date, utcnow
from .concurrency import run_with_retry


def _window_days() -> int:
    return int(current_app.config.get("DEFAULTING_WINDOW_DAYS", 7))


def evaluate_status(customer: Customer, today: date, window_days: int) -> str:
    if to_decimal(customer.boxes_filled) >= customer.total_boxes:
        return CUSTOMER_COMPLETED
    if customer.last_payment_date and (today - customer.last_payment_date).days > window_days:
        return CUSTOMER_DEFAULTING
    return CUSTOMER_IN_PROGRESS


def refresh_customer_statuses(tenant, *, clock: Clock = utcnow) -> dict:
    """
    Re-evaluate every live customer's status. Returns counts of changes by new status.
    """
    def _op():
        today = business_date(clock)
        window = _window_days()
        changed = {CUSTOMER_COMPLETED: 0, CUSTOMER_DEFAULTING: 0, CUSTOMER_IN_PROGRESS: 0}

        customers = tenant.query(Customer).filter(Customer.deleted_at.is_(None)).all()
        for customer in customers:
            status = evaluate_status(customer, today, window)
            if status != customer.status:
                customer.status = status
                changed[status] += 1

        db.session.commit()
        current_app.logger.info(
            "Customer statuses refreshed scanned=%s changed=%s window_days=%s",
            len(customers), changed, window,
        )
        return {"scanned": len(customers), "changed": changed}

    return run_with_retry(_op)


def list_defaulting_customers(tenant, *, clock: Clock = utcnow) -> list[Customer]:
    """Customers not completed whose last payment is older than the window."""
    cutoff = business_date(clock) - timedelta(days=_window_days())
    return (
        tenant.query(Customer)
        .filter(
            Customer.deleted_at.is_(None),
            Customer.status != CUSTOMER_COMPLETED,
            Customer.last_payment_date.isnot(None),
            Customer.last_payment_date < cutoff,
        )
        .order_by(Customer.last_payment_date)
        .all()
    )
