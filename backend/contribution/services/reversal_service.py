# Overview: Reversal and adjustment of recorded box payments (elevated roles only).

"""
Reversal & Adjustment

WHY: Workers make mistakes. A CEO/secretary can undo a box payment entirely
or correct its box count, and the card header, box rows and daily totals
must all follow in the same transaction.

DESIGN PRINCIPLES:
- Reversal unchecks the exact boxes the payment checked (by payment_id), never
  "the first N boxes", so interleaved later payments are untouched.
- Reversed payments are tombstoned (reversed_at/by/notes), not deleted.
- Adjust down unchecks this payment's highest-numbered boxes;
  adjust up checks the lowest-numbered unchecked boxes and attributes them to it.
- Invariants are re-verified after every change (LedgerCorruption aborts).
- Daily-total corrections go to the branch stored on the payment, not the
  customer's current branch.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import BoxPayment, BoxState
from contribution.money import round_money, to_decimal, to_money_str
from contribution.time_utils import Clock, utcnow
from .audit_service import log_audit
from .box_ledger_service import (
    amount_for_boxes,
    apply_check,
    apply_uncheck,
    box_price,
    ledger_snapshot,
    verify_invariants,
)
from .box_payment_service import load_card_for_update, next_unchecked_boxes, require_box_count
from .concurrency import lock_for_update, run_with_retry
from .daily_totals_service import adjust_collections, unroll_payment
from .errors import InvalidRequest, LedgerCorruption, NotFound


def _load_payment(tenant, box_payment_id: int) -> BoxPayment:
    payment = tenant.get(BoxPayment, box_payment_id, lock=True)
    if payment is None:
        raise NotFound("BoxPayment", box_payment_id)
    if payment.reversed_at is not None:
        raise InvalidRequest("Payment has already been reversed", box_payment_id=payment.id)
    return payment


def _boxes_of_payment(payment: BoxPayment, *, highest_first: bool = False) -> list[BoxState]:
    order = BoxState.box_number.desc() if highest_first else BoxState.box_number
    return lock_for_update(
        db.session.query(BoxState)
        .filter(BoxState.customer_card_id == payment.customer_card_id, BoxState.payment_id == payment.id)
        .order_by(order)
    ).all()


def _uncheck(boxes: list[BoxState]) -> None:
    for box in boxes:
        box.is_checked = False
        box.checked_date = None
        box.payment_id = None


def reverse_payment(tenant, box_payment_id: int, actor, *, notes: str | None = None, clock: Clock = utcnow) -> BoxPayment:
    """
    Fully undo a box payment.

    Raises:
        Unauthorized: actor is not CEO/secretary/super admin
        NotFound: payment not visible to this tenant
        InvalidRequest: payment already reversed
        LedgerCorruption: box rows or header disagree with the payment
    """
    actor.require_elevated("reverse payments")

    def _op():
        payment = _load_payment(tenant, box_payment_id)
        card = load_card_for_update(tenant, payment.customer_card_id)
        before = ledger_snapshot(card)

        boxes = _boxes_of_payment(payment)
        if len(boxes) != payment.boxes_checked:
            current_app.logger.critical(
                "LEDGER CORRUPTION box_payment_id=%s: records %s boxes but %s rows reference it",
                payment.id, payment.boxes_checked, len(boxes),
            )
            raise LedgerCorruption("Payment boxes do not match box rows", box_payment_id=payment.id)

        _uncheck(boxes)
        apply_uncheck(card, payment.boxes_checked, to_decimal(payment.amount_paid))

        payment.reversed_at = clock()
        payment.reversed_by = actor.id
        payment.reversal_notes = notes

        unroll_payment(
            company_id=payment.company_id,
            worker_id=payment.worker_id,
            branch_id=payment.branch_id,
            payment_date=payment.payment_date,
            amount=to_decimal(payment.amount_paid),
        )

        log_audit(
            action="payment_reversed",
            entity=payment,
            company_id=payment.company_id,
            user_id=actor.id,
            old_values={
                "boxes": payment.boxes_checked,
                "amount": to_money_str(payment.amount_paid),
                "box_numbers": [box.box_number for box in boxes],
                **before,
            },
            new_values={"notes": notes, **ledger_snapshot(card)},
            occurred_at=payment.reversed_at,
        )

        db.session.commit()
        current_app.logger.info(
            "Payment reversed box_payment_id=%s customer_card_id=%s boxes=%s amount=%s by=%s",
            payment.id, card.id, payment.boxes_checked, payment.amount_paid, actor.id,
        )
        return payment

    return run_with_retry(_op)


def adjust_payment(
    tenant,
    box_payment_id: int,
    new_box_count: int,
    actor,
    notes: str | None = None,
    *,
    clock: Clock = utcnow,
) -> BoxPayment:
    """
    Correct the number of boxes a payment covers.

    Raises:
        Unauthorized: actor is not CEO/secretary/super admin
        InvalidRequest: new count not positive (use reverse_payment) or unchanged
        OverpaymentRejected: adjusting up past the remaining boxes
        LedgerCorruption: invariants broken after the change
    """
    actor.require_elevated("adjust payments")
    if isinstance(new_box_count, int) and not isinstance(new_box_count, bool) and new_box_count <= 0:
        raise InvalidRequest("New box count must be positive; use reverse to undo a payment", boxes=new_box_count)
    require_box_count(new_box_count)

    def _op():
        payment = _load_payment(tenant, box_payment_id)
        card = load_card_for_update(tenant, payment.customer_card_id)
        before = ledger_snapshot(card)
        old_count = payment.boxes_checked
        old_amount = round_money(payment.amount_paid)

        delta = new_box_count - old_count
        if delta == 0:
            raise InvalidRequest("Payment already covers that many boxes", boxes=new_box_count)

        if delta < 0:
            boxes = _boxes_of_payment(payment, highest_first=True)[: -delta]
            if len(boxes) != -delta:
                raise LedgerCorruption("Payment boxes do not match box rows", box_payment_id=payment.id)
            new_amount = min(round_money(new_box_count * box_price(card)), old_amount)
            _uncheck(boxes)
            apply_uncheck(card, -delta, old_amount - new_amount)
            changed_boxes = [box.box_number for box in boxes]
        else:
            extra_amount = amount_for_boxes(card, delta)
            apply_check(card, delta, extra_amount)
            boxes = next_unchecked_boxes(card, delta)
            for box in boxes:
                box.is_checked = True
                box.checked_date = payment.payment_date
                box.payment_id = payment.id
            new_amount = old_amount + extra_amount
            changed_boxes = [box.box_number for box in boxes]

        payment.adjusted_from = old_amount
        payment.boxes_checked = new_box_count
        payment.amount_paid = new_amount
        payment.adjusted_by = actor.id
        payment.adjusted_at = clock()
        payment.adjustment_notes = notes

        verify_invariants(card)

        adjust_collections(
            company_id=payment.company_id,
            worker_id=payment.worker_id,
            branch_id=payment.branch_id,
            payment_date=payment.payment_date,
            amount_delta=new_amount - old_amount,
        )

        log_audit(
            action="payment_adjusted",
            entity=payment,
            company_id=payment.company_id,
            user_id=actor.id,
            old_values={"boxes": old_count, "amount": to_money_str(old_amount), **before},
            new_values={
                "boxes": new_box_count,
                "amount": to_money_str(new_amount),
                "box_numbers": changed_boxes,
                "notes": notes,
                **ledger_snapshot(card),
            },
            occurred_at=payment.adjusted_at,
        )

        db.session.commit()
        current_app.logger.info(
            "Payment adjusted box_payment_id=%s boxes %s->%s amount %s->%s by=%s",
            payment.id, old_count, new_box_count, old_amount, new_amount, actor.id,
        )
        return payment

    return run_with_retry(_op)
