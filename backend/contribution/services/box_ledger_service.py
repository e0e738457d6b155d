# Overview: Box ledger rules for one CustomerCard header (price, remaining boxes, check/uncheck).

"""
Box Ledger

WHY: The CustomerCard header is the authoritative state of a card
assignment. Every mutation of boxes_checked / amount_paid /
amount_remaining / status goes through apply_check or apply_uncheck so the
invariants below are enforced in one place.

INVARIANTS (verified after every mutation):
1. 0 <= boxes_checked <= total_boxes
2. amount_paid >= 0 and amount_remaining >= 0
3. amount_paid + amount_remaining == total_amount (within ROUNDING_TOLERANCE)
4. status == completed  <=>  boxes_checked == total_boxes (cancelled cards excepted)

The box price is derived from the header on every call and never stored.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..models import CustomerCard
from ..models.cards import CUSTOMER_CARD_ACTIVE, CUSTOMER_CARD_CANCELLED, CUSTOMER_CARD_COMPLETED
from contribution.money import ZERO, balanced, round_box_price, round_money, to_decimal, to_money_str
from .errors import InvalidPricing, InvalidRequest, LedgerCorruption, OverpaymentRejected


def box_price(card: CustomerCard) -> Decimal:
    """
    total_amount / total_boxes, rounded to 6 decimal places.

    Raises:
        InvalidPricing: total_boxes is zero (division by zero) or the price is not positive
    """
    if not card.total_boxes or card.total_boxes <= 0:
        raise InvalidPricing(
            "Invalid card pricing: card has no boxes",
            customer_card_id=card.id,
        )
    price = round_box_price(to_decimal(card.total_amount) / card.total_boxes)
    if price <= ZERO:
        raise InvalidPricing(
            "Invalid card pricing: box price must be positive",
            customer_card_id=card.id,
        )
    return price


def remaining_boxes(card: CustomerCard) -> int:
    """
    total_boxes - boxes_checked.

    A negative result means an upstream invariant was already broken; it is
    reported as LedgerCorruption, never clamped.
    """
    remaining = card.total_boxes - card.boxes_checked
    if remaining < 0:
        _corrupted(card, f"boxes_checked {card.boxes_checked} exceeds total_boxes {card.total_boxes}")
    return remaining


def amount_for_boxes(card: CustomerCard, count: int) -> Decimal:
    """
    Money owed for `count` more boxes at the card's box price.

    When `count` consumes every remaining box the exact outstanding amount is
    charged instead, so per-box rounding never leaves a stray cent on a
    completed card.
    """
    if count == remaining_boxes(card):
        return round_money(card.amount_remaining)
    return round_money(count * box_price(card))


def max_payable(card: CustomerCard) -> tuple[int, Decimal]:
    remaining = remaining_boxes(card)
    if remaining == 0:
        return 0, ZERO
    return remaining, amount_for_boxes(card, remaining)


def apply_check(card: CustomerCard, count: int, amount: Decimal) -> CustomerCard:
    """
    Record `count` boxes and `amount` as paid on the header.

    Raises:
        InvalidRequest: count is not a positive integer or the card is cancelled
        OverpaymentRejected: count exceeds remaining boxes (state untouched)
        LedgerCorruption: invariants broken after the update
    """
    if not isinstance(count, int) or isinstance(count, bool) or count <= 0:
        raise InvalidRequest("Number of boxes to check must be a positive integer", boxes=count)

    if card.status == CUSTOMER_CARD_CANCELLED:
        raise InvalidRequest("Cannot record payments on a cancelled card", customer_card_id=card.id)

    remaining = remaining_boxes(card)
    if count > remaining:
        max_boxes, max_amount = max_payable(card)
        raise OverpaymentRejected(
            f"Cannot check more boxes than remaining. Maximum payable amount is {to_money_str(max_amount)}",
            max_boxes=max_boxes,
            max_amount=max_amount,
        )

    amount = round_money(amount)
    card.boxes_checked = card.boxes_checked + count
    card.amount_paid = round_money(to_decimal(card.amount_paid) + amount)
    card.amount_remaining = round_money(to_decimal(card.amount_remaining) - amount)

    if card.boxes_checked == card.total_boxes:
        card.status = CUSTOMER_CARD_COMPLETED

    verify_invariants(card)
    return card


def apply_uncheck(card: CustomerCard, count: int, amount: Decimal) -> CustomerCard:
    """
    Inverse of apply_check, used by reversals and downward adjustments.

    Raises:
        LedgerCorruption: the undo would drive boxes_checked or amount_paid below zero
    """
    amount = round_money(amount)
    if count < 0 or amount < ZERO:
        raise InvalidRequest("Uncheck count and amount must not be negative", boxes=count)

    if count > card.boxes_checked:
        _corrupted(card, f"cannot uncheck {count} boxes, only {card.boxes_checked} checked")
    if amount > to_decimal(card.amount_paid):
        _corrupted(card, f"cannot refund {amount}, only {card.amount_paid} paid")

    card.boxes_checked = card.boxes_checked - count
    card.amount_paid = round_money(to_decimal(card.amount_paid) - amount)
    card.amount_remaining = round_money(to_decimal(card.amount_remaining) + amount)

    if card.status == CUSTOMER_CARD_COMPLETED and card.boxes_checked < card.total_boxes:
        card.status = CUSTOMER_CARD_ACTIVE

    verify_invariants(card)
    return card


def verify_invariants(card: CustomerCard) -> None:
    """Raise LedgerCorruption (logged at CRITICAL) if the header is inconsistent."""
    paid = to_decimal(card.amount_paid)
    remaining_amount = to_decimal(card.amount_remaining)

    if card.boxes_checked < 0:
        _corrupted(card, "boxes_checked is negative")
    if card.boxes_checked > card.total_boxes:
        _corrupted(card, "boxes_checked exceeds total_boxes")
    if paid < ZERO:
        _corrupted(card, "amount_paid is negative")
    if remaining_amount < ZERO:
        _corrupted(card, "amount_remaining is negative")
    if not balanced(paid, remaining_amount, card.total_amount):
        _corrupted(card, "amount_paid + amount_remaining != total_amount")
    if card.status != CUSTOMER_CARD_CANCELLED:
        full = card.boxes_checked == card.total_boxes
        if full != (card.status == CUSTOMER_CARD_COMPLETED):
            _corrupted(card, f"status {card.status} inconsistent with {card.boxes_checked}/{card.total_boxes} boxes")


def ledger_snapshot(card: CustomerCard) -> dict:
    return {
        "boxes_checked": card.boxes_checked,
        "amount_paid": to_money_str(card.amount_paid),
        "amount_remaining": to_money_str(card.amount_remaining),
        "status": card.status,
    }


def _corrupted(card: CustomerCard, detail: str) -> None:
    current_app.logger.critical(
        "LEDGER CORRUPTION customer_card_id=%s: %s (boxes_checked=%s total_boxes=%s "
        "amount_paid=%s amount_remaining=%s total_amount=%s status=%s)",
        card.id, detail, card.boxes_checked, card.total_boxes,
        card.amount_paid, card.amount_remaining, card.total_amount, card.status,
    )
    raise LedgerCorruption(detail, customer_card_id=card.id)
