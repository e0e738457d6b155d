from __future__ import annotations

from ..extensions import db
from contribution.money import to_money_str
from contribution.time_utils import to_iso_date

"""
Daily-total snapshots (worker -> branch -> company).

One row per (entity, date); worker rows are per (worker, branch, date)
so a worker collecting in two branches on one day feeds each branch separately. Rows are incremented in place by
daily_totals_service on every payment event and are never rebuilt from
scratch on the hot path.
"""


class WorkerDailyTotal(db.Model):
    __tablename__ = "worker_daily_totals"
    __table_args__ = (
        db.UniqueConstraint("worker_id", "branch_id", "date", name="uq_worker_daily_totals_worker_branch_date"),
        db.Index("ix_worker_daily_totals_branch_date", "branch_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    worker_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)

    total_collections = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_customers_paid = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "worker_id": self.worker_id,
            "branch_id": self.branch_id,
            "date": to_iso_date(self.date),
            "total_collections": to_money_str(self.total_collections),
            "total_customers_paid": self.total_customers_paid,
        }


class BranchDailyTotal(db.Model):
    __tablename__ = "branch_daily_totals"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "date", name="uq_branch_daily_totals_branch_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)

    total_collections = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_payments = db.Column(db.Integer, nullable=False, default=0)
    total_workers_active = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "branch_id": self.branch_id,
            "date": to_iso_date(self.date),
            "total_collections": to_money_str(self.total_collections),
            "total_payments": self.total_payments,
            "total_workers_active": self.total_workers_active,
        }


class CompanyDailyTotal(db.Model):
    __tablename__ = "company_daily_totals"
    __table_args__ = (
        db.UniqueConstraint("company_id", "date", name="uq_company_daily_totals_company_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)

    total_collections = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_payments = db.Column(db.Integer, nullable=False, default=0)
    total_branches_active = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "date": to_iso_date(self.date),
            "total_collections": to_money_str(self.total_collections),
            "total_payments": self.total_payments,
            "total_branches_active": self.total_branches_active,
        }
