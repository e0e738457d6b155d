# Overview: Service-layer operations for cards and card assignments; encapsulates business logic and database work.

"""
Card Service

WHY: A Card is the product template (N boxes for a fixed amount); a
CustomerCard is one customer's box-tracking ledger for it. Assignment
creates the ledger header and every BoxState row up front so payments only
ever flip existing rows.

DESIGN PRINCIPLES:
- One active CustomerCard per customer.
- Box rows 1..total_boxes are created unchecked in the same transaction as the header.
- Cards with zero boxes or non-positive pricing are rejected here, before any
  ledger arithmetic can divide by zero.
- Cards are retired (soft deleted), never removed, so assignments keep their template.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import BoxPayment, BoxState, Card, Company, Customer, CustomerCard
from ..models.cards import CARD_STATUS_ACTIVE, CARD_STATUS_INACTIVE, CUSTOMER_CARD_ACTIVE
from contribution.money import ZERO, round_box_price, round_money, to_decimal
from contribution.time_utils import Clock, business_date, utcnow
from .audit_service import log_audit
from .box_ledger_service import ledger_snapshot
from .concurrency import run_with_retry
from .errors import InvalidPricing, InvalidRequest, TenantAccessError

DEFAULT_CARD_PREFIX = "CRD"


# =============================================================================
# CARD TEMPLATES
# =============================================================================

def create_card(
    tenant,
    *,
    card_name: str,
    number_of_boxes: int,
    amount,
    card_code: str | None = None,
    company_id: int | None = None,
) -> Card:
    """
    Create a card template, generating "<prefix>-NNN" when no code is given.

    Raises:
        InvalidPricing: no boxes, non-positive amount, or a box price below MIN_BOX_PRICE
    """
    def _op():
        owner_id = company_id if company_id is not None else tenant.require_company_id()
        price = validate_card_pricing(number_of_boxes, amount)

        code = card_code or _next_card_code(owner_id)
        card = Card(
            company_id=owner_id,
            card_code=code,
            card_name=card_name,
            number_of_boxes=number_of_boxes,
            amount=round_money(amount),
            status=CARD_STATUS_ACTIVE,
        )
        tenant.add(card)
        db.session.commit()

        current_app.logger.info(
            "Card created id=%s code=%s boxes=%s amount=%s box_price=%s",
            card.id, card.card_code, card.number_of_boxes, card.amount, price,
        )
        return card

    return run_with_retry(_op)


def validate_card_pricing(number_of_boxes: int, amount) -> Decimal:
    if not number_of_boxes or number_of_boxes <= 0:
        raise InvalidPricing("Card must have at least one box", number_of_boxes=number_of_boxes)
    amount = to_decimal(amount)
    if amount <= ZERO:
        raise InvalidPricing("Card amount must be positive", amount=str(amount))

    price = round_box_price(amount / number_of_boxes)
    min_price = current_app.config.get("MIN_BOX_PRICE", Decimal("0.10"))
    if price < min_price:
        raise InvalidPricing(
            f"Box price {price} is below the minimum of {min_price}; check the card amount",
            box_price=str(price),
            min_box_price=str(min_price),
        )
    return price


def retire_card(tenant, card_id: int, *, clock: Clock = utcnow) -> Card:
    """Soft delete: the card stays referenced by existing assignments but cannot be assigned again."""
    def _op():
        card = tenant.require(Card, card_id)
        card.status = CARD_STATUS_INACTIVE
        card.deleted_at = clock()
        db.session.commit()
        current_app.logger.info("Card retired id=%s code=%s", card.id, card.card_code)
        return card

    return run_with_retry(_op)


def _next_card_code(company_id: int) -> str:
    company = db.session.get(Company, company_id)
    prefix = (company.card_prefix if company and company.card_prefix else DEFAULT_CARD_PREFIX).upper()

    # Retired cards are still counted, so codes are never reused
    number = (db.session.query(func.count(Card.id)).filter(Card.company_id == company_id).scalar() or 0) + 1
    code = f"{prefix}-{number:03d}"
    while db.session.query(Card.id).filter_by(company_id=company_id, card_code=code).first():
        number += 1
        code = f"{prefix}-{number:03d}"
    return code


# =============================================================================
# ASSIGNMENT
# =============================================================================

def assign_card(
    tenant,
    customer_id: int,
    card_id: int,
    assigned_by: int | None,
    *,
    assigned_date: date | None = None,
    clock: Clock = utcnow,
) -> CustomerCard:
    """
    Assign a card to a customer: create the ledger header and unchecked boxes 1..N.

    Raises:
        NotFound: customer or card not visible to this tenant (raised by tenant.require)
        InvalidRequest: card retired, or customer already has an active card
        InvalidPricing: card has no boxes, no positive price, or a box price below MIN_BOX_PRICE
    """
    def _op():
        customer = tenant.require(Customer, customer_id)
        card = tenant.require(Card, card_id)

        if card.company_id != customer.company_id:
            raise TenantAccessError("Card and customer belong to different companies")

        if card.status != CARD_STATUS_ACTIVE or card.deleted_at is not None:
            raise InvalidRequest("Card has been retired and cannot be assigned", card_id=card.id)

        validate_card_pricing(card.number_of_boxes, card.amount)

        existing = tenant.query(CustomerCard).filter_by(
            customer_id=customer.id, status=CUSTOMER_CARD_ACTIVE
        ).first()
        if existing:
            raise InvalidRequest(
                "Customer already has an active card",
                customer_id=customer.id,
                customer_card_id=existing.id,
            )

        total_amount = round_money(card.amount)
        customer_card = CustomerCard(
            company_id=customer.company_id,
            customer_id=customer.id,
            card_id=card.id,
            assigned_date=assigned_date or business_date(clock),
            assigned_by=assigned_by,
            total_boxes=card.number_of_boxes,
            boxes_checked=0,
            total_amount=total_amount,
            amount_paid=ZERO,
            amount_remaining=total_amount,
            status=CUSTOMER_CARD_ACTIVE,
        )
        tenant.add(customer_card)
        db.session.flush()

        db.session.add_all([
            BoxState(
                company_id=customer_card.company_id,
                customer_card_id=customer_card.id,
                box_number=number,
                is_checked=False,
            )
            for number in range(1, customer_card.total_boxes + 1)
        ])

        log_audit(
            action="card_assigned",
            entity=customer_card,
            company_id=customer_card.company_id,
            user_id=assigned_by,
            new_values={"card_id": card.id, "total_boxes": customer_card.total_boxes, **ledger_snapshot(customer_card)},
            occurred_at=clock(),
        )

        db.session.commit()
        current_app.logger.info(
            "Card assigned customer_card_id=%s customer_id=%s card_id=%s boxes=%s",
            customer_card.id, customer.id, card.id, customer_card.total_boxes,
        )
        return customer_card

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def get_active_customer_card(tenant, customer_id: int) -> CustomerCard | None:
    return tenant.query(CustomerCard).filter_by(
        customer_id=customer_id, status=CUSTOMER_CARD_ACTIVE
    ).first()


def list_customer_cards(tenant, *, status: str | None = None, assigned_by: int | None = None) -> list[CustomerCard]:
    query = tenant.query(CustomerCard)
    if status:
        query = query.filter(CustomerCard.status == status)
    if assigned_by:
        query = query.filter(CustomerCard.assigned_by == assigned_by)
    return query.order_by(CustomerCard.created_at.desc(), CustomerCard.id.desc()).all()


def get_box_states(tenant, customer_card_id: int) -> list[BoxState]:
    """All boxes of a card ordered by box_number."""
    tenant.require(CustomerCard, customer_card_id)
    return (
        tenant.query(BoxState)
        .filter(BoxState.customer_card_id == customer_card_id)
        .order_by(BoxState.box_number)
        .all()
    )


def get_payment_history(tenant, customer_card_id: int, *, include_reversed: bool = False) -> list[BoxPayment]:
    """Box payments for a card, newest first."""
    tenant.require(CustomerCard, customer_card_id)
    query = tenant.query(BoxPayment).filter(BoxPayment.customer_card_id == customer_card_id)
    if not include_reversed:
        query = query.filter(BoxPayment.reversed_at.is_(None))
    return query.order_by(
        BoxPayment.payment_date.desc(), BoxPayment.created_at.desc(), BoxPayment.id.desc()
    ).all()


def get_daily_sales(tenant, customer_card_id: int, on_date: date | None = None, *, clock: Clock = utcnow) -> Decimal:
    """Money collected on one card on one calendar date (reversed payments excluded)."""
    tenant.require(CustomerCard, customer_card_id)
    on_date = on_date or business_date(clock)
    total = tenant.query(BoxPayment).with_entities(
        func.coalesce(func.sum(BoxPayment.amount_paid), 0)
    ).filter(
        BoxPayment.customer_card_id == customer_card_id,
        BoxPayment.payment_date == on_date,
        BoxPayment.reversed_at.is_(None),
    ).scalar()
    return round_money(to_decimal(total))


def get_worker_daily_summary(tenant, worker_id: int, on_date: date | None = None, *, clock: Clock = utcnow) -> dict:
    on_date = on_date or business_date(clock)
    total, count = tenant.query(BoxPayment).with_entities(
        func.coalesce(func.sum(BoxPayment.amount_paid), 0),
        func.count(BoxPayment.id),
    ).filter(
        BoxPayment.worker_id == worker_id,
        BoxPayment.payment_date == on_date,
        BoxPayment.reversed_at.is_(None),
    ).one()
    return {
        "date": on_date.isoformat(),
        "total_sales": round_money(to_decimal(total)),
        "payments_count": int(count or 0),
    }


def get_worker_daily_sales(tenant, worker_id: int, on_date: date | None = None, *, clock: Clock = utcnow) -> Decimal:
    """Money a worker collected on box payments on one calendar date."""
    return get_worker_daily_summary(tenant, worker_id, on_date, clock=clock)["total_sales"]
