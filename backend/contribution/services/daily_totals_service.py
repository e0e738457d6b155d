# Overview: Service-layer operations for daily totals; three-level incremental rollup.

"""
Daily Totals Rollup

WHY: Dashboards read worker/branch/company collections per day without
scanning payments. Every payment event (record, reverse, adjust) is applied
here incrementally inside the same transaction as the ledger change.

DESIGN PRINCIPLES:
- Always keyed by the payment's calendar date, never wall-clock "now", so
  backdated payments land in the right historical bucket.
- Get-or-create before increment (savepoint guards the concurrent-insert race).
- Increments are a single UPDATE ... SET col = col + :delta, never
  read-modify-write in Python.
- Active counts are recomputed from the level below after each change:
  workers active = worker rows with payments for that branch/date (one row
  per worker and branch, so a worker active in two branches counts in each),
  branches active = branch rows with payments for that company/date.

ADDITIVITY: the same delta is applied to all three levels, so
sum(worker) == branch and sum(branch) == company for each date.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import WorkerDailyTotal, BranchDailyTotal, CompanyDailyTotal
from contribution.money import ZERO, round_money, to_decimal


def roll_payment(
    *,
    company_id: int,
    worker_id: int,
    branch_id: int | None,
    payment_date: date,
    amount: Decimal,
) -> bool:
    """
    Add one payment to the worker, branch and company totals for payment_date.

    Returns False (and logs) when the payment has no branch to roll up into.
    """
    return _apply(
        company_id=company_id,
        worker_id=worker_id,
        branch_id=branch_id,
        payment_date=payment_date,
        amount_delta=round_money(amount),
        count_delta=1,
        create_missing=True,
    )


def unroll_payment(
    *,
    company_id: int,
    worker_id: int,
    branch_id: int | None,
    payment_date: date,
    amount: Decimal,
) -> bool:
    """Remove a reversed payment's amount and count from all three levels."""
    return _apply(
        company_id=company_id,
        worker_id=worker_id,
        branch_id=branch_id,
        payment_date=payment_date,
        amount_delta=-round_money(amount),
        count_delta=-1,
        create_missing=False,
    )


def adjust_collections(
    *,
    company_id: int,
    worker_id: int,
    branch_id: int | None,
    payment_date: date,
    amount_delta: Decimal,
) -> bool:
    """Apply a money-only correction (payment count unchanged)."""
    return _apply(
        company_id=company_id,
        worker_id=worker_id,
        branch_id=branch_id,
        payment_date=payment_date,
        amount_delta=round_money(amount_delta),
        count_delta=0,
        create_missing=False,
    )


def _apply(
    *,
    company_id: int,
    worker_id: int,
    branch_id: int | None,
    payment_date: date,
    amount_delta: Decimal,
    count_delta: int,
    create_missing: bool,
) -> bool:
    if not branch_id or not worker_id:
        current_app.logger.warning(
            "Daily totals skipped: no branch or worker (company_id=%s worker_id=%s date=%s)",
            company_id, worker_id, payment_date,
        )
        return False

    if create_missing:
        worker_row = _get_or_create(
            WorkerDailyTotal,
            keys={"worker_id": worker_id, "branch_id": branch_id, "date": payment_date},
            defaults={"company_id": company_id},
        )
        branch_row = _get_or_create(
            BranchDailyTotal,
            keys={"branch_id": branch_id, "date": payment_date},
            defaults={"company_id": company_id},
        )
        company_row = _get_or_create(
            CompanyDailyTotal,
            keys={"company_id": company_id, "date": payment_date},
        )
    else:
        worker_row = db.session.query(WorkerDailyTotal).filter_by(
            worker_id=worker_id, branch_id=branch_id, date=payment_date
        ).first()
        branch_row = db.session.query(BranchDailyTotal).filter_by(branch_id=branch_id, date=payment_date).first()
        company_row = db.session.query(CompanyDailyTotal).filter_by(company_id=company_id, date=payment_date).first()
        if not (worker_row and branch_row and company_row):
            # Correcting a payment that never rolled up; applying to a subset would break additivity
            current_app.logger.warning(
                "Daily totals correction skipped: missing rollup rows (worker_id=%s branch_id=%s date=%s)",
                worker_id, branch_id, payment_date,
            )
            return False

    _increment(WorkerDailyTotal, worker_row.id, total_collections=amount_delta, total_customers_paid=count_delta)
    _increment(BranchDailyTotal, branch_row.id, total_collections=amount_delta, total_payments=count_delta)
    _increment(CompanyDailyTotal, company_row.id, total_collections=amount_delta, total_payments=count_delta)

    if count_delta:
        _recount_active_workers(branch_row.id, branch_id, payment_date)
        _recount_active_branches(company_row.id, company_id, payment_date)

    return True


def _get_or_create(model, *, keys: dict, defaults: dict | None = None):
    row = db.session.query(model).filter_by(**keys).first()
    if row is not None:
        return row

    # Savepoint so a concurrent insert doesn't roll back the rest of the unit of work
    savepoint = db.session.begin_nested()
    try:
        row = model(**keys, **(defaults or {}), total_collections=ZERO)
        db.session.add(row)
        db.session.flush()
        savepoint.commit()
        return row
    except IntegrityError:
        savepoint.rollback()
        return db.session.query(model).filter_by(**keys).one()


def _increment(model, row_id: int, **deltas) -> None:
    values = {
        getattr(model, column): getattr(model, column) + delta
        for column, delta in deltas.items()
        if delta
    }
    if not values:
        return
    db.session.query(model).filter(model.id == row_id).update(values, synchronize_session="fetch")


def _recount_active_workers(branch_row_id: int, branch_id: int, payment_date: date) -> None:
    active = db.session.query(func.count(WorkerDailyTotal.id)).filter(
        WorkerDailyTotal.branch_id == branch_id,
        WorkerDailyTotal.date == payment_date,
        WorkerDailyTotal.total_customers_paid > 0,
    ).scalar() or 0
    db.session.query(BranchDailyTotal).filter(BranchDailyTotal.id == branch_row_id).update(
        {BranchDailyTotal.total_workers_active: active}, synchronize_session="fetch"
    )


def _recount_active_branches(company_row_id: int, company_id: int, payment_date: date) -> None:
    active = db.session.query(func.count(BranchDailyTotal.id)).filter(
        BranchDailyTotal.company_id == company_id,
        BranchDailyTotal.date == payment_date,
        BranchDailyTotal.total_payments > 0,
    ).scalar() or 0
    db.session.query(CompanyDailyTotal).filter(CompanyDailyTotal.id == company_row_id).update(
        {CompanyDailyTotal.total_branches_active: active}, synchronize_session="fetch"
    )


# =============================================================================
# READS
# =============================================================================

def get_worker_daily_total(tenant, worker_id: int, branch_id: int, on_date: date) -> WorkerDailyTotal | None:
    """A worker's collections in one branch on one date."""
    return tenant.query(WorkerDailyTotal).filter_by(worker_id=worker_id, branch_id=branch_id, date=on_date).first()


def get_worker_day_totals(tenant, worker_id: int, on_date: date) -> dict:
    """A worker's collections on one date summed across every branch they collected in."""
    rows = (
        tenant.query(WorkerDailyTotal)
        .filter_by(worker_id=worker_id, date=on_date)
        .order_by(WorkerDailyTotal.branch_id)
        .all()
    )
    return {
        "worker_id": worker_id,
        "date": on_date.isoformat(),
        "total_collections": round_money(sum((to_decimal(r.total_collections) for r in rows), ZERO)),
        "total_customers_paid": sum(r.total_customers_paid for r in rows),
        "branches": [r.branch_id for r in rows],
    }


def get_branch_daily_total(tenant, branch_id: int, on_date: date) -> BranchDailyTotal | None:
    return tenant.query(BranchDailyTotal).filter_by(branch_id=branch_id, date=on_date).first()


def get_company_daily_total(tenant, on_date: date, company_id: int | None = None) -> CompanyDailyTotal | None:
    company_id = company_id if company_id is not None else tenant.require_company_id()
    return tenant.query(CompanyDailyTotal).filter_by(company_id=company_id, date=on_date).first()


def sum_worker_collections(tenant, branch_id: int, on_date: date) -> Decimal:
    total = tenant.query(WorkerDailyTotal).with_entities(
        func.coalesce(func.sum(WorkerDailyTotal.total_collections), 0)
    ).filter(
        WorkerDailyTotal.branch_id == branch_id,
        WorkerDailyTotal.date == on_date,
    ).scalar()
    return round_money(to_decimal(total))
