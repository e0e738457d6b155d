from __future__ import annotations

from ..extensions import db
from contribution.money import to_money_str
from contribution.time_utils import to_iso_date, to_utc_z

CUSTOMER_IN_PROGRESS = "in_progress"
CUSTOMER_COMPLETED = "completed"
CUSTOMER_DEFAULTING = "defaulting"


class Customer(db.Model):
    """
    Customer holding a card, with the legacy running-balance ledger.

    LEGACY PATH: boxes_filled / amount_paid are mutated directly by
    legacy_payment_service. boxes_filled is fractional (a partial box is
    representable), unlike CustomerCard.boxes_checked.

    balance is derived on read (total_amount - amount_paid), never stored.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    worker_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    card_id = db.Column(db.Integer, db.ForeignKey("cards.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    location = db.Column(db.Text, nullable=True)

    total_boxes = db.Column(db.Integer, nullable=False, default=0)
    boxes_filled = db.Column(db.Numeric(14, 6), nullable=False, default=0)
    price_per_box = db.Column(db.Numeric(14, 6), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=CUSTOMER_IN_PROGRESS, index=True)
    last_payment_date = db.Column(db.Date, nullable=True, index=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch", backref=db.backref("customers", lazy=True))
    worker = db.relationship("User", foreign_keys=[worker_id])
    card = db.relationship("Card")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def balance(self):
        return self.total_amount - self.amount_paid

    @property
    def completion_percentage(self) -> float:
        if not self.total_boxes:
            return 0.0
        return round(float(self.boxes_filled) / self.total_boxes * 100, 2)

    def snapshot(self) -> dict:
        """Fields captured before/after a legacy payment for the audit log."""
        return {
            "boxes_filled": str(self.boxes_filled),
            "amount_paid": to_money_str(self.amount_paid),
            "status": self.status,
            "last_payment_date": to_iso_date(self.last_payment_date),
        }

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "branch_id": self.branch_id,
            "worker_id": self.worker_id,
            "card_id": self.card_id,
            "name": self.name,
            "phone": self.phone,
            "location": self.location,
            "total_boxes": self.total_boxes,
            "boxes_filled": str(self.boxes_filled),
            "price_per_box": str(self.price_per_box),
            "total_amount": to_money_str(self.total_amount),
            "amount_paid": to_money_str(self.amount_paid),
            "balance": to_money_str(self.balance),
            "completion_percentage": self.completion_percentage,
            "status": self.status,
            "last_payment_date": to_iso_date(self.last_payment_date),
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    Legacy customer-level payment (not box-granular).

    boxes_filled is the fractional box-equivalent of payment_amount at the
    customer's price_per_box when the payment was taken.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_company_date", "company_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    worker_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    payment_amount = db.Column(db.Numeric(12, 2), nullable=False)
    boxes_filled = db.Column(db.Numeric(14, 6), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    reference_number = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "customer_id": self.customer_id,
            "worker_id": self.worker_id,
            "branch_id": self.branch_id,
            "payment_amount": to_money_str(self.payment_amount),
            "boxes_filled": str(self.boxes_filled),
            "payment_date": to_iso_date(self.payment_date),
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
