# Overview: Box-granular payment recording (check boxes on a customer card).

"""
Box Payment Service

WHY: Workers collect money box by box. One call records the BoxPayment,
flips the matching BoxState rows, updates the CustomerCard header, rolls up
daily totals and writes the audit entry, all in one transaction.

DESIGN PRINCIPLES:
- The CustomerCard row is locked first; it serializes every mutation on one card.
- Boxes are consumed FIFO: the lowest-numbered unchecked boxes are checked.
- Only whole boxes. amount = boxes * box_price, except the payment that
  completes the card, which is charged exactly the outstanding amount.
- A rejected payment never mutates anything.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import BoxPayment, BoxState, Customer, CustomerCard
from contribution.money import to_money_str, whole_boxes
from contribution.time_utils import Clock, business_date, utcnow
from .audit_service import log_audit
from .box_ledger_service import amount_for_boxes, apply_check, box_price, ledger_snapshot
from .concurrency import lock_for_update, run_with_retry
from .daily_totals_service import roll_payment
from .errors import InvalidRequest, LedgerCorruption, NotFound, OverpaymentRejected

PAYMENT_METHOD_CASH = "cash"
VALID_PAYMENT_METHODS = ("cash", "mobile_money", "bank_transfer", "cheque")


def validate_payment_method(method: str | None, allowed=VALID_PAYMENT_METHODS) -> str:
    method = (method or PAYMENT_METHOD_CASH).strip().lower()
    if method not in allowed:
        raise InvalidRequest(
            f"Invalid payment method. Must be one of: {', '.join(allowed)}",
            payment_method=method,
        )
    return method


def require_box_count(boxes) -> int:
    if not isinstance(boxes, int) or isinstance(boxes, bool) or boxes <= 0:
        raise InvalidRequest("Number of boxes to check must be a positive integer", boxes=boxes)
    return boxes


def load_card_for_update(tenant, customer_card_id: int) -> CustomerCard:
    query = tenant.query(CustomerCard).filter(CustomerCard.id == customer_card_id)
    card = lock_for_update(query).first()
    if card is None:
        raise NotFound("CustomerCard", customer_card_id)
    return card


def next_unchecked_boxes(card: CustomerCard, count: int) -> list[BoxState]:
    """The `count` lowest-numbered unchecked boxes, locked for update."""
    boxes = lock_for_update(
        db.session.query(BoxState)
        .filter(BoxState.customer_card_id == card.id, BoxState.is_checked.is_(False))
        .order_by(BoxState.box_number)
        .limit(count)
    ).all()
    if len(boxes) != count:
        current_app.logger.critical(
            "LEDGER CORRUPTION customer_card_id=%s: header has %s boxes remaining but only %s unchecked rows",
            card.id, card.total_boxes - card.boxes_checked, len(boxes),
        )
        raise LedgerCorruption("Box rows do not match the card header", customer_card_id=card.id)
    return boxes


def check_boxes(
    tenant,
    customer_card_id: int,
    worker_id: int,
    boxes_to_check: int,
    payment_method: str | None = PAYMENT_METHOD_CASH,
    notes: str | None = None,
    *,
    payment_date: date | None = None,
    clock: Clock = utcnow,
) -> BoxPayment:
    """
    Check `boxes_to_check` boxes on a customer card and record the payment.

    Raises:
        NotFound: card not visible to this tenant
        InvalidRequest: non-positive box count, unknown method, cancelled card
        InvalidPricing: the card has no usable box price
        OverpaymentRejected: more boxes than remain (carries max_boxes / max_amount)
        LedgerCorruption: header and box rows disagree
    """
    require_box_count(boxes_to_check)
    method = validate_payment_method(payment_method)

    def _op():
        card = load_card_for_update(tenant, customer_card_id)
        paid_on = payment_date or business_date(clock)

        amount = amount_for_boxes(card, boxes_to_check)
        try:
            # Header checks happen before any row is written
            apply_check(card, boxes_to_check, amount)
        except OverpaymentRejected as exc:
            current_app.logger.warning(
                "Overpayment rejected customer_card_id=%s requested=%s max_boxes=%s",
                card.id, boxes_to_check, exc.max_boxes,
            )
            raise

        customer = db.session.get(Customer, card.customer_id)
        branch_id = customer.branch_id if customer else None

        payment = BoxPayment(
            company_id=card.company_id,
            customer_card_id=card.id,
            worker_id=worker_id,
            branch_id=branch_id,
            payment_date=paid_on,
            boxes_checked=boxes_to_check,
            amount_paid=amount,
            payment_method=method,
            notes=notes,
        )
        tenant.add(payment)
        db.session.flush()

        for box in next_unchecked_boxes(card, boxes_to_check):
            box.is_checked = True
            box.checked_date = paid_on
            box.payment_id = payment.id

        roll_payment(
            company_id=card.company_id,
            worker_id=worker_id,
            branch_id=branch_id,
            payment_date=paid_on,
            amount=amount,
        )

        log_audit(
            action="boxes_checked",
            entity=payment,
            company_id=card.company_id,
            user_id=worker_id,
            new_values={
                "customer_card_id": card.id,
                "boxes": boxes_to_check,
                "amount": to_money_str(amount),
                "payment_method": method,
                "payment_date": paid_on.isoformat(),
                **ledger_snapshot(card),
            },
            occurred_at=clock(),
        )

        db.session.commit()
        current_app.logger.info(
            "Boxes checked customer_card_id=%s payment_id=%s boxes=%s amount=%s status=%s",
            card.id, payment.id, boxes_to_check, amount, card.status,
        )
        return payment

    return run_with_retry(_op)


def check_boxes_for_amount(
    tenant,
    customer_card_id: int,
    worker_id: int,
    amount,
    payment_method: str | None = PAYMENT_METHOD_CASH,
    notes: str | None = None,
    *,
    payment_date: date | None = None,
    clock: Clock = utcnow,
) -> BoxPayment:
    """
    Convert a money amount into whole boxes (floor) and check them.

    The payment is recorded for the whole boxes only; any remainder is not kept.
    """
    card = tenant.get(CustomerCard, customer_card_id)
    if card is None:
        raise NotFound("CustomerCard", customer_card_id)

    price: Decimal = box_price(card)
    boxes = whole_boxes(amount, price)
    if boxes < 1:
        raise InvalidRequest(
            f"Amount is less than the price of one box ({to_money_str(price)})",
            box_price=str(price),
        )
    return check_boxes(
        tenant,
        customer_card_id,
        worker_id,
        boxes,
        payment_method,
        notes,
        payment_date=payment_date,
        clock=clock,
    )
