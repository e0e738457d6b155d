# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for ledger resources.

These tests create two companies with separate branches, workers and cards,
then verify that:
1. A scoped context cannot read or write rows of another company
2. Cross-tenant lookups raise NotFound (not errors that reveal existence)
3. Unresolved contexts fail with MissingTenantContext instead of returning everything
4. Console / super-admin contexts see every company
5. Deactivated companies cannot be resolved
"""

import logging
from decimal import Decimal

import pytest

from contribution.models import BoxPayment, Card, CustomerCard
from contribution.services.box_payment_service import check_boxes
from contribution.services.card_service import assign_card, get_box_states, get_daily_sales
from contribution.services.company_service import deactivate_company
from contribution.services.errors import MissingTenantContext, NotFound, TenantAccessError
from contribution.services.reversal_service import reverse_payment
from contribution.services.tenant_service import TenantContext

from conftest import fixed_clock


class TestTenantContext:
    def test_scoped_query_filters_by_company(self, db_session, tenant_a, tenant_b, card_a, card_b):
        assert [c.id for c in tenant_a.query(Card).all()] == [card_a.id]
        assert [c.id for c in tenant_b.query(Card).all()] == [card_b.id]

    def test_unscoped_console_sees_all(self, db_session, card_a, card_b):
        console = TenantContext.unscoped("console")
        assert {c.id for c in console.query(Card).all()} == {card_a.id, card_b.id}

    def test_super_admin_sees_all(self, db_session, card_a, card_b):
        admin = TenantContext.resolve(lambda: None, super_admin=True)
        assert admin.is_unscoped
        assert admin.query(Card).count() == 2

    def test_unresolved_context_refuses_queries(self, db_session, card_a):
        tenant = TenantContext.resolve(lambda: None)
        with pytest.raises(MissingTenantContext):
            tenant.query(Card)
        with pytest.raises(MissingTenantContext):
            tenant.require_company_id()

    def test_unknown_bypass_reason_rejected(self):
        with pytest.raises(ValueError):
            TenantContext.unscoped("cron")

    def test_resolve_validates_company_is_active(self, db_session, company_a):
        assert TenantContext.resolve(lambda: company_a.id).company_id == company_a.id

        deactivate_company(company_a.id, clock=fixed_clock)
        with pytest.raises(MissingTenantContext):
            TenantContext.resolve(lambda: company_a.id)

    def test_resolve_unknown_company(self, db_session):
        with pytest.raises(MissingTenantContext):
            TenantContext.resolve(lambda: 98765)

    def test_stamp_fills_company(self, db_session, tenant_a, company_a):
        card = tenant_a.stamp(Card(card_code="X-1", card_name="X", number_of_boxes=1, amount=Decimal("1")))
        assert card.company_id == company_a.id

    def test_stamp_refuses_foreign_company(self, db_session, tenant_a, company_b, caplog):
        with caplog.at_level(logging.WARNING):
            with pytest.raises(TenantAccessError):
                tenant_a.stamp(Card(company_id=company_b.id, card_code="X-1", card_name="X", number_of_boxes=1, amount=Decimal("1")))
        assert "CROSS_TENANT_ACCESS_DENIED" in caplog.text

    def test_unscoped_stamp_requires_company(self, db_session):
        with pytest.raises(MissingTenantContext):
            TenantContext.unscoped().stamp(Card(card_code="X-1", card_name="X", number_of_boxes=1, amount=Decimal("1")))


class TestLedgerIsolation:
    def test_cannot_assign_foreign_card(self, db_session, tenant_a, customer_a, card_b, ceo_a):
        with pytest.raises(NotFound):
            assign_card(tenant_a, customer_a.id, card_b.id, ceo_a.id, clock=fixed_clock)

    def test_console_cannot_mix_companies(self, db_session, customer_a, card_b, ceo_a):
        with pytest.raises(TenantAccessError):
            assign_card(TenantContext.unscoped(), customer_a.id, card_b.id, ceo_a.id, clock=fixed_clock)

    def test_cannot_check_boxes_on_foreign_card(self, db_session, tenant_b, customer_card, worker_b):
        with pytest.raises(NotFound):
            check_boxes(tenant_b, customer_card.id, worker_b.id, 1, clock=fixed_clock)
        assert db_session.get(CustomerCard, customer_card.id).boxes_checked == 0

    def test_cannot_read_foreign_boxes_or_sales(self, db_session, tenant_b, customer_card):
        with pytest.raises(NotFound):
            get_box_states(tenant_b, customer_card.id)
        with pytest.raises(NotFound):
            get_daily_sales(tenant_b, customer_card.id, clock=fixed_clock)

    def test_cannot_reverse_foreign_payment(self, db_session, tenant_a, tenant_b, customer_card, worker_a, ceo_actor):
        payment = check_boxes(tenant_a, customer_card.id, worker_a.id, 2, clock=fixed_clock)
        with pytest.raises(NotFound):
            reverse_payment(tenant_b, payment.id, ceo_actor, clock=fixed_clock)
        assert db_session.get(BoxPayment, payment.id).reversed_at is None

    def test_rows_are_stamped_with_owner(self, db_session, tenant_a, company_a, customer_card, worker_a):
        payment = check_boxes(tenant_a, customer_card.id, worker_a.id, 2, clock=fixed_clock)
        boxes = get_box_states(tenant_a, customer_card.id)

        assert payment.company_id == company_a.id
        assert {b.company_id for b in boxes} == {company_a.id}
