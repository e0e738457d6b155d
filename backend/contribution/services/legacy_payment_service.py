# Overview: Legacy customer-balance payments (fractional boxes on the Customer row).

"""
Legacy Payment Service

WHY: Customers created before box-level tracking carry their progress on the
Customer row itself (boxes_filled, amount_paid). Payments there are recorded
as money; the boxes they cover are derived and may be fractional.

DESIGN PRINCIPLES:
- Independent from the CustomerCard ledger: nothing here touches cards or box rows.
- boxes_to_mark = amount / price_per_box, rounded to 6 places (partial boxes allowed).
- Status is completed once boxes_filled >= total_boxes, otherwise in_progress.
  Defaulting is evaluated separately by customer_status_service.
- Customer update, Payment row, daily totals and audit entry commit together.
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Customer, Payment
from ..models.customers import CUSTOMER_COMPLETED, CUSTOMER_IN_PROGRESS
from contribution.money import ZERO, round_box_count, round_money, to_decimal, to_money_str
from contribution.time_utils import Clock, business_date, parse_iso_date, utcnow
from .audit_service import log_audit
from .box_payment_service import validate_payment_method
from .concurrency import lock_for_update, run_with_retry
from .daily_totals_service import roll_payment
from .errors import InvalidPricing, InvalidRequest, LedgerError, NotFound, OverpaymentRejected

LEGACY_PAYMENT_METHODS = ("cash", "mobile_money", "bank_transfer")


def _payment_date(value, clock: Clock) -> date:
    if value is None or value == "":
        return business_date(clock)
    if isinstance(value, date):
        return value
    try:
        return parse_iso_date(value)
    except ValueError as exc:
        raise InvalidRequest("payment_date must be an ISO date (YYYY-MM-DD)", payment_date=value) from exc


def record_legacy_payment(tenant, actor, customer_id: int, data: dict, *, clock: Clock = utcnow) -> Payment:
    """
    Record a money payment against a customer's legacy balance.

    data keys: payment_amount (required), payment_date, payment_method,
    reference_number, notes.

    Raises:
        NotFound: customer not visible to this tenant
        InvalidRequest: missing/non-positive amount, bad date or method
        InvalidPricing: customer has no positive price_per_box
        OverpaymentRejected: payment would fill more than total_boxes
    """
    try:
        amount = round_money(data.get("payment_amount"))
    except (ArithmeticError, TypeError, ValueError) as exc:
        raise InvalidRequest("payment_amount must be a number") from exc
    if amount <= ZERO:
        raise InvalidRequest("payment_amount must be positive", payment_amount=to_money_str(amount))

    method = validate_payment_method(data.get("payment_method"), LEGACY_PAYMENT_METHODS)
    paid_on = _payment_date(data.get("payment_date"), clock)

    def _op():
        customer = lock_for_update(
            tenant.query(Customer).filter(Customer.id == customer_id, Customer.deleted_at.is_(None))
        ).first()
        if customer is None:
            raise NotFound("Customer", customer_id)

        price = to_decimal(customer.price_per_box)
        if price <= ZERO:
            raise InvalidPricing(
                "Invalid card pricing. Please update the customer card information.",
                customer_id=customer.id,
            )

        boxes_to_mark = round_box_count(amount / price)
        filled = to_decimal(customer.boxes_filled)
        if filled + boxes_to_mark > customer.total_boxes:
            remaining_boxes = max(to_decimal(customer.total_boxes) - filled, ZERO)
            max_amount = round_money(remaining_boxes * price)
            current_app.logger.warning(
                "Legacy overpayment rejected customer_id=%s amount=%s max_amount=%s",
                customer.id, amount, max_amount,
            )
            raise OverpaymentRejected(
                f"Payment amount exceeds remaining balance. Maximum payable amount is {to_money_str(max_amount)}",
                max_boxes=remaining_boxes,
                max_amount=max_amount,
            )

        before = customer.snapshot()

        customer.boxes_filled = round_box_count(filled + boxes_to_mark)
        customer.amount_paid = round_money(to_decimal(customer.amount_paid) + amount)
        customer.last_payment_date = paid_on
        customer.status = (
            CUSTOMER_COMPLETED if customer.boxes_filled >= customer.total_boxes else CUSTOMER_IN_PROGRESS
        )

        payment = Payment(
            company_id=customer.company_id,
            customer_id=customer.id,
            worker_id=customer.worker_id,
            branch_id=customer.branch_id,
            payment_amount=amount,
            boxes_filled=boxes_to_mark,
            payment_date=paid_on,
            payment_method=method,
            reference_number=data.get("reference_number"),
            notes=data.get("notes"),
            created_by=actor.id if actor else None,
        )
        tenant.add(payment)
        db.session.flush()

        roll_payment(
            company_id=customer.company_id,
            worker_id=customer.worker_id,
            branch_id=customer.branch_id,
            payment_date=paid_on,
            amount=amount,
        )

        log_audit(
            action="payment_recorded",
            entity=payment,
            company_id=customer.company_id,
            user_id=actor.id if actor else None,
            old_values=before,
            new_values={
                "payment_amount": to_money_str(amount),
                "boxes_marked": str(boxes_to_mark),
                "customer_id": customer.id,
                **customer.snapshot(),
            },
            occurred_at=clock(),
        )

        db.session.commit()
        current_app.logger.info(
            "Legacy payment recorded payment_id=%s customer_id=%s amount=%s boxes=%s status=%s",
            payment.id, customer.id, amount, boxes_to_mark, customer.status,
        )
        return payment

    return run_with_retry(_op)


def record_legacy_payments_bulk(tenant, actor, items: list[dict], *, clock: Clock = utcnow) -> dict:
    """
    Record several legacy payments, each in its own transaction.

    One failing item never rolls back the others.
    Returns {"successful": [...], "failed": [...]}.
    """
    if not items:
        raise InvalidRequest("At least one payment is required")

    results = {"successful": [], "failed": []}
    for index, item in enumerate(items):
        customer_id = item.get("customer_id")
        try:
            if customer_id is None:
                raise InvalidRequest("customer_id is required")
            payment = record_legacy_payment(tenant, actor, customer_id, item, clock=clock)
        except LedgerError as exc:
            results["failed"].append({
                "index": index,
                "customer_id": customer_id,
                "error": exc.to_dict(),
            })
            continue

        results["successful"].append({
            "index": index,
            "customer_id": customer_id,
            "payment_id": payment.id,
            "amount": to_money_str(payment.payment_amount),
        })

    current_app.logger.info(
        "Bulk legacy payments processed successful=%s failed=%s",
        len(results["successful"]), len(results["failed"]),
    )
    return results
