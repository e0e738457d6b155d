# Overview: Company (tenant) and branch lifecycle; companies are deactivated, never deleted.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Branch, Company
from contribution.time_utils import Clock, utcnow
from .concurrency import run_with_retry
from .errors import InvalidRequest, NotFound


def list_companies(*, include_inactive: bool = True) -> list[Company]:
    query = db.session.query(Company)
    if not include_inactive:
        query = query.filter(Company.is_active.is_(True))
    return query.order_by(Company.id).all()


def create_company(*, name: str, code: str | None = None, card_prefix: str | None = None) -> Company:
    """Create a tenant. Codes are unique across the platform."""
    name = (name or "").strip()
    if not name:
        raise InvalidRequest("Company name is required")

    def _op():
        if code and db.session.query(Company.id).filter_by(code=code).first():
            raise InvalidRequest(f"Company with code '{code}' already exists", code=code)

        company = Company(
            name=name,
            code=code,
            card_prefix=card_prefix.upper() if card_prefix else None,
            is_active=True,
        )
        db.session.add(company)
        db.session.commit()
        current_app.logger.info("Company created id=%s code=%s", company.id, company.code)
        return company

    return run_with_retry(_op)


def deactivate_company(company_id: int, *, clock: Clock = utcnow) -> Company:
    """
    Soft delete: data is kept, but scoped contexts for this company stop resolving.
    """
    def _op():
        company = db.session.get(Company, company_id)
        if company is None:
            raise NotFound("Company", company_id)
        if not company.is_active:
            return company

        company.is_active = False
        company.deactivated_at = clock()
        db.session.commit()
        current_app.logger.warning("Company deactivated id=%s code=%s", company.id, company.code)
        return company

    return run_with_retry(_op)


def create_branch(tenant, *, name: str) -> Branch:
    name = (name or "").strip()
    if not name:
        raise InvalidRequest("Branch name is required")

    def _op():
        company_id = tenant.require_company_id()
        if tenant.query(Branch).filter_by(name=name).first():
            raise InvalidRequest(f"Branch '{name}' already exists in this company", name=name)

        branch = tenant.add(Branch(company_id=company_id, name=name, is_active=True))
        db.session.commit()
        current_app.logger.info("Branch created id=%s company_id=%s", branch.id, company_id)
        return branch

    return run_with_retry(_op)
