# Overview: Pytest coverage for box-granular payments (assignment, checking boxes, reads).

"""
Box Payment Tests

Covers:
- Card assignment (box rows 1..N, one active card per customer, pricing guards)
- Checking boxes (partial and completing payments, FIFO consumption, rejection leaves no trace)
- Check by amount, payment methods, backdated payments
- Read operations (box states, daily sales, worker summaries, history)
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from contribution.models import AuditLog, BoxPayment, BoxState, Card, CustomerCard
from contribution.services import box_payment_service
from contribution.services.box_payment_service import check_boxes, check_boxes_for_amount
from contribution.services.card_service import (
    assign_card,
    create_card,
    get_active_customer_card,
    get_box_states,
    get_daily_sales,
    get_payment_history,
    get_worker_daily_sales,
    get_worker_daily_summary,
    list_customer_cards,
    retire_card,
)
from contribution.services.errors import (
    InternalError,
    InvalidPricing,
    InvalidRequest,
    NotFound,
    OverpaymentRejected,
)

from conftest import BUSINESS_DAY, fixed_clock


def snapshot(db_session, customer_card_id):
    db_session.expire_all()
    card = db_session.get(CustomerCard, customer_card_id)
    boxes = (
        db_session.query(BoxState)
        .filter_by(customer_card_id=customer_card_id)
        .order_by(BoxState.box_number)
        .all()
    )
    return (
        card.boxes_checked,
        card.amount_paid,
        card.amount_remaining,
        card.status,
        [(b.box_number, b.is_checked, b.checked_date, b.payment_id) for b in boxes],
    )


class TestAssignCard:
    def test_assignment_creates_unchecked_boxes(self, db_session, tenant_a, customer_card):
        boxes = get_box_states(tenant_a, customer_card.id)

        assert [b.box_number for b in boxes] == list(range(1, 101))
        assert not any(b.is_checked for b in boxes)
        assert customer_card.total_amount == Decimal("1000.00")
        assert customer_card.amount_remaining == Decimal("1000.00")
        assert customer_card.assigned_date == BUSINESS_DAY
        assert customer_card.status == "active"

    def test_assignment_is_audited(self, db_session, customer_card):
        entry = db_session.query(AuditLog).filter_by(action="card_assigned").one()
        assert entry.auditable_type == "CustomerCard"
        assert entry.auditable_id == customer_card.id
        assert entry.new_values["total_boxes"] == 100

    def test_second_active_card_rejected(self, db_session, tenant_a, customer_card, customer_a, card_a, ceo_a):
        with pytest.raises(InvalidRequest):
            assign_card(tenant_a, customer_a.id, card_a.id, ceo_a.id, clock=fixed_clock)
        assert db_session.query(CustomerCard).count() == 1

    def test_zero_box_card_rejected(self, db_session, tenant_a, company_a, customer_a, ceo_a):
        broken = Card(company_id=company_a.id, card_code="ACC-009", card_name="Broken", number_of_boxes=0, amount=Decimal("100.00"))
        db_session.add(broken)
        db_session.commit()

        with pytest.raises(InvalidPricing):
            assign_card(tenant_a, customer_a.id, broken.id, ceo_a.id, clock=fixed_clock)
        assert db_session.query(CustomerCard).count() == 0
        assert db_session.query(BoxState).count() == 0

    def test_box_price_below_minimum_cannot_be_assigned(self, db_session, tenant_a, company_a, customer_a, ceo_a):
        mistyped = Card(company_id=company_a.id, card_code="ACC-010", card_name="Mistyped", number_of_boxes=100, amount=Decimal("5.00"))
        db_session.add(mistyped)
        db_session.commit()

        with pytest.raises(InvalidPricing) as exc_info:
            assign_card(tenant_a, customer_a.id, mistyped.id, ceo_a.id, clock=fixed_clock)

        assert exc_info.value.details["box_price"] == "0.050000"
        assert db_session.query(CustomerCard).count() == 0
        assert db_session.query(BoxState).count() == 0

    def test_retired_card_cannot_be_assigned(self, db_session, tenant_a, customer_a, card_a, ceo_a):
        retire_card(tenant_a, card_a.id, clock=fixed_clock)
        with pytest.raises(InvalidRequest):
            assign_card(tenant_a, customer_a.id, card_a.id, ceo_a.id, clock=fixed_clock)

    def test_active_card_lookup(self, db_session, tenant_a, customer_card, customer_a):
        assert get_active_customer_card(tenant_a, customer_a.id).id == customer_card.id
        assert [c.id for c in list_customer_cards(tenant_a, status="active")] == [customer_card.id]
        assert list_customer_cards(tenant_a, status="completed") == []


class TestCreateCard:
    def test_generated_code_uses_company_prefix(self, db_session, tenant_a, card_a):
        card = create_card(tenant_a, card_name="Gold", number_of_boxes=31, amount="310")
        assert card.card_code == "ACC-002"
        assert card.company_id == tenant_a.company_id

    def test_default_prefix(self, db_session, tenant_b):
        card = create_card(tenant_b, card_name="Silver", number_of_boxes=10, amount="50")
        assert card.card_code == "CRD-001"

    def test_box_price_below_minimum_rejected(self, db_session, tenant_a):
        with pytest.raises(InvalidPricing):
            create_card(tenant_a, card_name="Typo", number_of_boxes=100, amount="5")


class TestCheckBoxes:
    def test_partial_payment(self, db_session, tenant_a, customer_card, worker_a):
        payment = check_boxes(tenant_a, customer_card.id, worker_a.id, 30, "cash", clock=fixed_clock)

        card = db_session.get(CustomerCard, customer_card.id)
        assert payment.amount_paid == Decimal("300.00")
        assert payment.boxes_checked == 30
        assert payment.payment_date == BUSINESS_DAY
        assert card.boxes_checked == 30
        assert card.amount_paid == Decimal("300.00")
        assert card.amount_remaining == Decimal("700.00")
        assert card.status == "active"

    def test_completing_payment(self, db_session, tenant_a, customer_card, worker_a):
        check_boxes(tenant_a, customer_card.id, worker_a.id, 30, clock=fixed_clock)
        check_boxes(tenant_a, customer_card.id, worker_a.id, 70, clock=fixed_clock)

        card = db_session.get(CustomerCard, customer_card.id)
        assert card.boxes_checked == 100
        assert card.amount_remaining == Decimal("0.00")
        assert card.status == "completed"

    def test_rejection_leaves_state_unchanged(self, db_session, tenant_a, customer_card, worker_a):
        check_boxes(tenant_a, customer_card.id, worker_a.id, 100, clock=fixed_clock)
        before = snapshot(db_session, customer_card.id)
        payments_before = db_session.query(BoxPayment).count()

        with pytest.raises(OverpaymentRejected) as exc_info:
            check_boxes(tenant_a, customer_card.id, worker_a.id, 1, clock=fixed_clock)

        assert exc_info.value.max_amount == Decimal("0")
        assert snapshot(db_session, customer_card.id) == before
        assert db_session.query(BoxPayment).count() == payments_before

    def test_overpayment_reports_maximum(self, db_session, tenant_a, customer_card, worker_a):
        check_boxes(tenant_a, customer_card.id, worker_a.id, 95, clock=fixed_clock)
        with pytest.raises(OverpaymentRejected) as exc_info:
            check_boxes(tenant_a, customer_card.id, worker_a.id, 10, clock=fixed_clock)

        payload = exc_info.value.to_dict()
        assert payload["error"] == "overpayment_rejected"
        assert payload["max_boxes"] == "5"
        assert payload["max_amount"] == "50.00"
        assert "50.00" in payload["message"]

    def test_fifo_lowest_unchecked_boxes(self, db_session, tenant_a, customer_card, worker_a):
        first = check_boxes(tenant_a, customer_card.id, worker_a.id, 3, clock=fixed_clock)
        second = check_boxes(tenant_a, customer_card.id, worker_a.id, 2, clock=fixed_clock)

        boxes = get_box_states(tenant_a, customer_card.id)
        by_number = {b.box_number: b for b in boxes}
        assert [n for n in range(1, 4) if by_number[n].payment_id == first.id] == [1, 2, 3]
        assert [n for n in range(4, 6) if by_number[n].payment_id == second.id] == [4, 5]
        assert not by_number[6].is_checked
        assert by_number[1].checked_date == BUSINESS_DAY

    def test_boxes_checked_plus_remaining_is_total(self, db_session, tenant_a, customer_card, worker_a):
        for count in (7, 13, 29):
            check_boxes(tenant_a, customer_card.id, worker_a.id, count, clock=fixed_clock)
            card = db_session.get(CustomerCard, customer_card.id)
            checked = db_session.query(BoxState).filter_by(customer_card_id=card.id, is_checked=True).count()
            assert checked == card.boxes_checked
            assert card.boxes_checked + card.boxes_remaining == card.total_boxes
            assert card.amount_paid + card.amount_remaining == card.total_amount

    @pytest.mark.parametrize("boxes", [0, -1])
    def test_non_positive_boxes_rejected(self, db_session, tenant_a, customer_card, worker_a, boxes):
        with pytest.raises(InvalidRequest):
            check_boxes(tenant_a, customer_card.id, worker_a.id, boxes, clock=fixed_clock)

    def test_unknown_payment_method_rejected(self, db_session, tenant_a, customer_card, worker_a):
        with pytest.raises(InvalidRequest):
            check_boxes(tenant_a, customer_card.id, worker_a.id, 1, "barter", clock=fixed_clock)

    def test_cheque_is_accepted(self, db_session, tenant_a, customer_card, worker_a):
        payment = check_boxes(tenant_a, customer_card.id, worker_a.id, 1, "cheque", clock=fixed_clock)
        assert payment.payment_method == "cheque"

    def test_unknown_card_is_not_found(self, db_session, tenant_a, worker_a):
        with pytest.raises(NotFound):
            check_boxes(tenant_a, 424242, worker_a.id, 1, clock=fixed_clock)

    def test_backdated_payment_uses_given_date(self, db_session, tenant_a, customer_card, worker_a):
        payment = check_boxes(
            tenant_a, customer_card.id, worker_a.id, 2, payment_date=date(2026, 3, 1), clock=fixed_clock
        )
        assert payment.payment_date == date(2026, 3, 1)

    def test_payment_is_audited(self, db_session, tenant_a, customer_card, worker_a):
        payment = check_boxes(tenant_a, customer_card.id, worker_a.id, 4, clock=fixed_clock)
        entry = db_session.query(AuditLog).filter_by(action="boxes_checked").one()
        assert entry.auditable_id == payment.id
        assert entry.new_values["amount"] == "40.00"
        assert entry.new_values["boxes_checked"] == 4


class TestCheckBoxesForAmount:
    def test_amount_is_floored_to_whole_boxes(self, db_session, tenant_a, customer_card, worker_a):
        payment = check_boxes_for_amount(tenant_a, customer_card.id, worker_a.id, "57.50", clock=fixed_clock)
        assert payment.boxes_checked == 5
        assert payment.amount_paid == Decimal("50.00")

    def test_amount_below_one_box_rejected(self, db_session, tenant_a, customer_card, worker_a):
        with pytest.raises(InvalidRequest):
            check_boxes_for_amount(tenant_a, customer_card.id, worker_a.id, "9.99", clock=fixed_clock)


class TestReads:
    def test_daily_sales_per_card(self, db_session, tenant_a, customer_card, worker_a):
        check_boxes(tenant_a, customer_card.id, worker_a.id, 3, clock=fixed_clock)
        check_boxes(tenant_a, customer_card.id, worker_a.id, 2, clock=fixed_clock)
        check_boxes(tenant_a, customer_card.id, worker_a.id, 1, payment_date=date(2026, 3, 9), clock=fixed_clock)

        assert get_daily_sales(tenant_a, customer_card.id, BUSINESS_DAY) == Decimal("50.00")
        assert get_daily_sales(tenant_a, customer_card.id, date(2026, 3, 9)) == Decimal("10.00")
        assert get_daily_sales(tenant_a, customer_card.id, date(2026, 3, 8)) == Decimal("0.00")

    def test_worker_daily_sales_and_summary(self, db_session, tenant_a, customer_card, worker_a, worker_a2):
        check_boxes(tenant_a, customer_card.id, worker_a.id, 3, clock=fixed_clock)
        check_boxes(tenant_a, customer_card.id, worker_a2.id, 2, clock=fixed_clock)

        assert get_worker_daily_sales(tenant_a, worker_a.id, BUSINESS_DAY) == Decimal("30.00")
        summary = get_worker_daily_summary(tenant_a, worker_a2.id, BUSINESS_DAY)
        assert summary == {"date": "2026-03-10", "total_sales": Decimal("20.00"), "payments_count": 1}

    def test_payment_history_newest_first(self, db_session, tenant_a, customer_card, worker_a):
        older = check_boxes(tenant_a, customer_card.id, worker_a.id, 1, payment_date=date(2026, 3, 1), clock=fixed_clock)
        newer = check_boxes(tenant_a, customer_card.id, worker_a.id, 1, clock=fixed_clock)

        history = get_payment_history(tenant_a, customer_card.id)
        assert [p.id for p in history] == [newer.id, older.id]


class TestStorageFailure:
    """A storage error mid-payment surfaces as InternalError and nothing is persisted."""

    def test_failure_after_boxes_flipped_rolls_back(self, db_session, tenant_a, customer_card, worker_a, monkeypatch, caplog):
        check_boxes(tenant_a, customer_card.id, worker_a.id, 4, clock=fixed_clock)
        before = snapshot(db_session, customer_card.id)

        def fail_rollup(**kwargs):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(box_payment_service, "roll_payment", fail_rollup)

        with pytest.raises(InternalError):
            check_boxes(tenant_a, customer_card.id, worker_a.id, 6, clock=fixed_clock)

        assert "Ledger storage failure" in caplog.text
        assert snapshot(db_session, customer_card.id) == before
        assert db_session.query(BoxPayment).count() == 1
        assert db_session.query(BoxState).filter_by(is_checked=True).count() == 4
        assert db_session.query(AuditLog).filter_by(action="boxes_checked").count() == 1

    def test_persistent_lock_conflict_gives_up(self, db_session, tenant_a, customer_card, worker_a, monkeypatch):
        before = snapshot(db_session, customer_card.id)
        calls = []

        def locked_audit(**kwargs):
            calls.append(kwargs["action"])
            raise OperationalError("UPDATE customer_cards", {}, Exception("database is locked"))

        monkeypatch.setattr(box_payment_service, "log_audit", locked_audit)

        with pytest.raises(InternalError):
            check_boxes(tenant_a, customer_card.id, worker_a.id, 5, clock=fixed_clock)

        assert len(calls) == 3
        assert snapshot(db_session, customer_card.id) == before
        assert db_session.query(BoxPayment).count() == 0
        assert db_session.query(BoxState).filter_by(is_checked=True).count() == 0
