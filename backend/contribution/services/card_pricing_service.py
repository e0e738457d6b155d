# Overview: Card pricing audit (finds and reprices cards with an implausible box price).

"""
Card Pricing Audit

Cards entered with the price of one box in the amount field end up with a
box price of a fraction of a pesewa. Such cards are found here and repriced
from an operator-supplied price per box (CLI: flask cards fix-amounts).

Repricing only changes the Card template. Existing CustomerCard headers
keep the total they were assigned with.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Card
from contribution.money import ZERO, round_box_price, round_money, to_decimal
from .concurrency import run_with_retry
from .errors import InvalidPricing


def card_box_price(card: Card) -> Decimal:
    if not card.number_of_boxes or card.number_of_boxes <= 0:
        return ZERO
    return round_box_price(to_decimal(card.amount) / card.number_of_boxes)


def find_suspicious_cards(tenant, min_box_price=None) -> list[Card]:
    """Cards whose box price is positive but below min_box_price (default MIN_BOX_PRICE)."""
    if min_box_price is None:
        min_box_price = current_app.config.get("MIN_BOX_PRICE", Decimal("0.10"))
    min_box_price = to_decimal(min_box_price)

    cards = tenant.query(Card).filter(Card.deleted_at.is_(None)).order_by(Card.id).all()
    return [card for card in cards if ZERO < card_box_price(card) < min_box_price]


def reprice_card(tenant, card_id: int, price_per_box, *, dry_run: bool = False) -> dict:
    """
    Set amount = price_per_box * number_of_boxes.

    Returns {card_id, old_amount, new_amount, dry_run}. Nothing is written on a dry run.
    """
    price = to_decimal(price_per_box)
    if price <= ZERO:
        raise InvalidPricing("Price per box must be positive", price_per_box=str(price))

    def _op():
        card = tenant.require(Card, card_id)
        if not card.number_of_boxes or card.number_of_boxes <= 0:
            raise InvalidPricing("Card has no boxes", card_id=card.id)

        old_amount = round_money(card.amount)
        new_amount = round_money(price * card.number_of_boxes)
        result = {
            "card_id": card.id,
            "card_code": card.card_code,
            "old_amount": old_amount,
            "new_amount": new_amount,
            "dry_run": dry_run,
        }
        if dry_run:
            db.session.rollback()
            return result

        card.amount = new_amount
        db.session.commit()
        current_app.logger.info(
            "Card repriced id=%s code=%s amount %s->%s (price_per_box=%s)",
            card.id, card.card_code, old_amount, new_amount, price,
        )
        return result

    return run_with_retry(_op)
