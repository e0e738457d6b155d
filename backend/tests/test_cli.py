# Overview: Pytest coverage for the flask CLI command groups.

from datetime import date
from decimal import Decimal

from contribution.models import Branch, Card, Company, Customer


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init", "--company", "Boot Co", "--code", "BOOT"])
    second = runner.invoke(args=["system", "init", "--company", "Boot Co", "--code", "BOOT"])

    assert "Created company: Boot Co" in first.output
    assert "Using existing company" in second.output
    assert db_session.query(Company).filter_by(code="BOOT").count() == 1
    assert db_session.query(Branch).count() == 1


def test_companies_create_and_list(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["companies", "create", "--name", "Tema Susu", "--code", "TEMA", "--card-prefix", "tm"])
    assert "PASS Created company: Tema Susu" in result.output
    assert db_session.query(Company).filter_by(code="TEMA").one().card_prefix == "TM"

    listing = runner.invoke(args=["companies", "list"])
    assert "Tema Susu" in listing.output
    assert "TM" in listing.output


def test_companies_create_duplicate_code_fails(app, db_session, company_a):
    result = app.test_cli_runner().invoke(args=["companies", "create", "--name", "Again", "--code", company_a.code])
    assert "FAIL" in result.output
    assert db_session.query(Company).count() == 1


def test_companies_deactivate(app, db_session, company_a):
    result = app.test_cli_runner().invoke(args=["companies", "deactivate", str(company_a.id), "--yes"])

    assert "is inactive" in result.output
    assert db_session.get(Company, company_a.id).is_active is False


def test_companies_add_branch(app, db_session, company_a):
    result = app.test_cli_runner().invoke(args=["companies", "add-branch", "--company-id", str(company_a.id), "--name", "Kasoa"])

    assert "PASS Created branch: Kasoa" in result.output
    assert db_session.query(Branch).filter_by(company_id=company_a.id, name="Kasoa").count() == 1


def test_cards_fix_amounts_prompts_per_card(app, db_session, company_a, card_a):
    db_session.add(Card(company_id=company_a.id, card_code="ACC-777", card_name="Typo", number_of_boxes=31, amount=Decimal("2.00")))
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["cards", "fix-amounts"], input="5\n")

    assert "Found card with suspicious pricing" in result.output
    assert "ACC-777" in result.output
    assert "PASS Fixed 1 card(s)!" in result.output
    assert db_session.query(Card).filter_by(card_code="ACC-777").one().amount == Decimal("155.00")
    assert db_session.query(Card).filter_by(card_code="ACC-001").one().amount == Decimal("1000.00")


def test_cards_fix_amounts_dry_run(app, db_session, company_a):
    db_session.add(Card(company_id=company_a.id, card_code="ACC-778", card_name="Typo", number_of_boxes=31, amount=Decimal("2.00")))
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["cards", "fix-amounts", "--dry-run"], input="5\n")

    assert "[DRY RUN] Would update to 155.00" in result.output
    assert db_session.query(Card).filter_by(card_code="ACC-778").one().amount == Decimal("2.00")


def test_cards_fix_amounts_skips_blank_answer(app, db_session, company_a):
    db_session.add(Card(company_id=company_a.id, card_code="ACC-779", card_name="Typo", number_of_boxes=31, amount=Decimal("2.00")))
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["cards", "fix-amounts"], input="\n")

    assert "Skipped" in result.output
    assert "No cards needed fixing" in result.output


def test_cards_fix_amounts_nothing_to_do(app, db_session, card_a):
    result = app.test_cli_runner().invoke(args=["cards", "fix-amounts"])
    assert "PASS No cards needed fixing!" in result.output


def test_customers_refresh_statuses(app, db_session, customer_a):
    customer_a.last_payment_date = date(2000, 1, 1)
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["customers", "refresh-statuses", "--company-id", str(customer_a.company_id)])

    assert "1 defaulting" in result.output
    assert db_session.get(Customer, customer_a.id).status == "defaulting"
