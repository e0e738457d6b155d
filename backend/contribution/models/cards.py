from __future__ import annotations

from ..extensions import db
from contribution.money import ZERO, round_box_price, to_money_str
from contribution.time_utils import to_iso_date, to_utc_z

CARD_STATUS_ACTIVE = "active"
CARD_STATUS_INACTIVE = "inactive"

CUSTOMER_CARD_ACTIVE = "active"
CUSTOMER_CARD_COMPLETED = "completed"
CUSTOMER_CARD_CANCELLED = "cancelled"


class Card(db.Model):
    """
    Purchasable card template: N boxes sold for a fixed total amount.

    The per-box price is always derived (amount / number_of_boxes), never stored.
    Cards are retired (status=inactive, deleted_at set) rather than deleted.
    """
    __tablename__ = "cards"
    __table_args__ = (
        db.UniqueConstraint("company_id", "card_code", name="uq_cards_company_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    card_code = db.Column(db.String(32), nullable=False)
    card_name = db.Column(db.String(255), nullable=False)
    number_of_boxes = db.Column(db.Integer, nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=CARD_STATUS_ACTIVE, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    company = db.relationship("Company", backref=db.backref("cards", lazy=True))

    @property
    def box_price(self):
        if not self.number_of_boxes:
            return ZERO
        return round_box_price(self.amount / self.number_of_boxes)

    def __repr__(self) -> str:
        return f"<Card id={self.id} code={self.card_code!r} boxes={self.number_of_boxes}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "card_code": self.card_code,
            "card_name": self.card_name,
            "number_of_boxes": self.number_of_boxes,
            "amount": to_money_str(self.amount),
            "box_price": str(self.box_price),
            "status": self.status,
            "deleted_at": to_utc_z(self.deleted_at),
            "created_at": to_utc_z(self.created_at),
        }


class CustomerCard(db.Model):
    """
    Ledger header: one customer's assignment of a Card, tracked box by box.

    INVARIANTS (checked after every mutation by box_ledger_service):
    - 0 <= boxes_checked <= total_boxes
    - amount_paid + amount_remaining == total_amount (within 0.01)
    - status == completed  <=>  boxes_checked == total_boxes

    CONCURRENCY: version_id is an optimistic lock. Two writers that both read
    the same boxes_checked cannot both commit.
    """
    __tablename__ = "customer_cards"
    __table_args__ = (
        db.Index("ix_customer_cards_customer_status", "customer_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    card_id = db.Column(db.Integer, db.ForeignKey("cards.id"), nullable=False, index=True)

    assigned_date = db.Column(db.Date, nullable=False, index=True)
    assigned_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    total_boxes = db.Column(db.Integer, nullable=False)
    boxes_checked = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    amount_remaining = db.Column(db.Numeric(12, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=CUSTOMER_CARD_ACTIVE, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("customer_cards", lazy=True))
    card = db.relationship("Card")
    box_states = db.relationship(
        "BoxState",
        back_populates="customer_card",
        cascade="all, delete-orphan",
        order_by="BoxState.box_number",
        lazy=True,
    )
    box_payments = db.relationship(
        "BoxPayment",
        back_populates="customer_card",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def boxes_remaining(self) -> int:
        return self.total_boxes - self.boxes_checked

    @property
    def completion_percentage(self) -> float:
        if not self.total_boxes:
            return 0.0
        return round(self.boxes_checked / self.total_boxes * 100, 2)

    def __repr__(self) -> str:
        return (
            f"<CustomerCard id={self.id} checked={self.boxes_checked}/{self.total_boxes} "
            f"status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "customer_id": self.customer_id,
            "card_id": self.card_id,
            "assigned_date": to_iso_date(self.assigned_date),
            "assigned_by": self.assigned_by,
            "total_boxes": self.total_boxes,
            "boxes_checked": self.boxes_checked,
            "boxes_remaining": self.boxes_remaining,
            "completion_percentage": self.completion_percentage,
            "total_amount": to_money_str(self.total_amount),
            "amount_paid": to_money_str(self.amount_paid),
            "amount_remaining": to_money_str(self.amount_remaining),
            "status": self.status,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BoxPayment(db.Model):
    """
    One box-granular payment event.

    IMMUTABLE except for:
    - adjustment fields (adjusted_from/by/at, adjustment_notes) stamped by adjust_payment
    - tombstone fields (reversed_at/by, reversal_notes) stamped by reverse_payment

    Reversed payments stay in the table so the audit history survives.
    """
    __tablename__ = "box_payments"
    __table_args__ = (
        db.Index("ix_box_payments_card_date", "customer_card_id", "payment_date"),
        db.Index("ix_box_payments_worker_date", "worker_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    customer_card_id = db.Column(db.Integer, db.ForeignKey("customer_cards.id", ondelete="CASCADE"), nullable=False)
    worker_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    # Branch the payment was rolled up under; corrections go back to the same rows
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    payment_date = db.Column(db.Date, nullable=False, index=True)
    boxes_checked = db.Column(db.Integer, nullable=False)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    notes = db.Column(db.Text, nullable=True)

    # Adjustment audit trail
    adjusted_from = db.Column(db.Numeric(12, 2), nullable=True)
    adjusted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    adjusted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    adjustment_notes = db.Column(db.Text, nullable=True)

    # Reversal tombstone
    reversed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    reversed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reversal_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer_card = db.relationship("CustomerCard", back_populates="box_payments")

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None

    def __repr__(self) -> str:
        return f"<BoxPayment id={self.id} boxes={self.boxes_checked} amount={self.amount_paid}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "customer_card_id": self.customer_card_id,
            "worker_id": self.worker_id,
            "branch_id": self.branch_id,
            "payment_date": to_iso_date(self.payment_date),
            "boxes_checked": self.boxes_checked,
            "amount_paid": to_money_str(self.amount_paid),
            "payment_method": self.payment_method,
            "notes": self.notes,
            "adjusted_from": to_money_str(self.adjusted_from),
            "adjusted_by": self.adjusted_by,
            "adjusted_at": to_utc_z(self.adjusted_at),
            "adjustment_notes": self.adjustment_notes,
            "reversed_at": to_utc_z(self.reversed_at),
            "reversed_by": self.reversed_by,
            "reversal_notes": self.reversal_notes,
            "created_at": to_utc_z(self.created_at),
        }


class BoxState(db.Model):
    """
    Checked/unchecked state of one physical box (1..total_boxes) on a CustomerCard.

    payment_id points at the BoxPayment that checked the box; reversal finds
    boxes through it instead of re-deriving "the first N".
    """
    __tablename__ = "box_states"
    __table_args__ = (
        db.UniqueConstraint("customer_card_id", "box_number", name="uq_box_states_card_box"),
        db.Index("ix_box_states_card_checked", "customer_card_id", "is_checked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    customer_card_id = db.Column(db.Integer, db.ForeignKey("customer_cards.id", ondelete="CASCADE"), nullable=False)
    box_number = db.Column(db.Integer, nullable=False)

    is_checked = db.Column(db.Boolean, nullable=False, default=False)
    checked_date = db.Column(db.Date, nullable=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("box_payments.id", ondelete="SET NULL"), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer_card = db.relationship("CustomerCard", back_populates="box_states")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<BoxState card={self.customer_card_id} box={self.box_number} checked={self.is_checked}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_card_id": self.customer_card_id,
            "box_number": self.box_number,
            "is_checked": self.is_checked,
            "checked_date": to_iso_date(self.checked_date),
            "payment_id": self.payment_id,
        }
