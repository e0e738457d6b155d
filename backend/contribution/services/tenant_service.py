"""
Multi-Tenant Service: Tenant Context and Scoping Helpers

WHY: Every read and write touching company-owned rows must be confined to
one company. Instead of ambient global state, callers build a TenantContext
once per unit of work and pass it into every service call.

CONTEXT VARIANTS:
1. TenantContext.scoped(company_id) - queries filtered by company_id,
   new rows stamped with it
2. TenantContext.unscoped("console") - trusted batch/CLI execution, no filter
3. TenantContext.unscoped("super_admin") - platform operator querying across tenants

An unresolved context (no company, no bypass) refuses every query and write
with MissingTenantContext rather than silently returning all rows.

USAGE:
    tenant = TenantContext.resolve(current_company_resolver)
    card = tenant.require(CustomerCard, customer_card_id)
    tenant.add(BoxPayment(...))
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from flask import current_app

from ..extensions import db
from ..models import Company
from .errors import MissingTenantContext, NotFound, TenantAccessError, Unauthorized

BYPASS_CONSOLE = "console"
BYPASS_SUPER_ADMIN = "super_admin"
VALID_BYPASS_REASONS = (BYPASS_CONSOLE, BYPASS_SUPER_ADMIN)

ROLE_CEO = "ceo"
ROLE_SECRETARY = "secretary"
ROLE_WORKER = "worker"
ROLE_SUPER_ADMIN = "super_admin"

# Roles allowed to reverse or adjust recorded box payments
ELEVATED_ROLES = frozenset({ROLE_CEO, ROLE_SECRETARY, ROLE_SUPER_ADMIN})


@dataclass(frozen=True)
class TenantContext:
    company_id: Optional[int] = None
    bypass: Optional[str] = None

    @classmethod
    def scoped(cls, company_id: int) -> "TenantContext":
        if company_id is None:
            raise MissingTenantContext("Tenant context not established")
        return cls(company_id=company_id)

    @classmethod
    def unscoped(cls, reason: str = BYPASS_CONSOLE) -> "TenantContext":
        if reason not in VALID_BYPASS_REASONS:
            raise ValueError(f"Unknown tenant bypass reason: {reason}")
        return cls(company_id=None, bypass=reason)

    @classmethod
    def resolve(
        cls,
        resolver: Callable[[], Optional[int]] | None,
        *,
        console: bool = False,
        super_admin: bool = False,
    ) -> "TenantContext":
        """
        Build the context for one unit of work from an injected resolver.

        Console and super-admin execution bypass scoping. Otherwise the
        resolver's company must exist and be active; if the resolver yields
        nothing, an unresolved context is returned and fails on first use.
        """
        if console:
            return cls.unscoped(BYPASS_CONSOLE)
        if super_admin:
            return cls.unscoped(BYPASS_SUPER_ADMIN)

        company_id = resolver() if resolver else None
        if company_id is None:
            return cls()

        validate_company_active(company_id)
        return cls.scoped(company_id)

    @property
    def is_scoped(self) -> bool:
        return self.bypass is None and self.company_id is not None

    @property
    def is_unscoped(self) -> bool:
        return self.bypass is not None

    def require_company_id(self) -> int:
        if self.company_id is None:
            raise MissingTenantContext("Tenant context not established")
        return self.company_id

    def _ensure_usable(self) -> None:
        if not self.is_scoped and not self.is_unscoped:
            raise MissingTenantContext("Tenant context not established")

    def query(self, model):
        """
        Base query for a company-owned model, filtered to this tenant.

        Usage:
            cards = tenant.query(CustomerCard).filter_by(status="active").all()
        """
        self._ensure_usable()
        query = db.session.query(model)
        if self.is_scoped:
            query = query.filter(model.company_id == self.company_id)
        return query

    def get(self, model, row_id: int, *, lock: bool = False):
        query = self.query(model).filter(model.id == row_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    def require(self, model, row_id: int, *, lock: bool = False):
        """Like get(), but a missing (or other-tenant) row raises NotFound without revealing which."""
        row = self.get(model, row_id, lock=lock)
        if row is None:
            raise NotFound(model.__name__, row_id)
        return row

    def stamp(self, row):
        """
        Populate company_id on a new row.

        Scoped contexts fill it in and refuse rows owned by another company.
        Unscoped contexts cannot infer an owner, so the row must already carry one.
        """
        self._ensure_usable()
        if self.is_scoped:
            if row.company_id is None:
                row.company_id = self.company_id
            elif row.company_id != self.company_id:
                _log_cross_tenant_attempt(
                    f"{type(row).__name__} stamped for company {row.company_id}",
                    company_id=self.company_id,
                )
                raise TenantAccessError("Row belongs to another company")
        elif row.company_id is None:
            raise MissingTenantContext(
                f"Unscoped context cannot infer company for new {type(row).__name__}"
            )
        return row

    def add(self, row):
        self.stamp(row)
        db.session.add(row)
        return row


@dataclass(frozen=True)
class Actor:
    """The authenticated caller as resolved by the calling layer."""
    id: int
    role: str

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES

    def require_elevated(self, action: str) -> None:
        if not self.is_elevated:
            raise Unauthorized(
                f"Only CEO, secretary or super admin can {action}",
                action=action,
                role=self.role,
            )


def validate_company_active(company_id: int) -> Company:
    """
    Validate that a company exists and is active.

    Raises:
        MissingTenantContext if company doesn't exist or is deactivated
    """
    company = db.session.get(Company, company_id)

    if not company:
        raise MissingTenantContext("Company not found")

    if not company.is_active:
        raise MissingTenantContext("Company is not active")

    return company


def _log_cross_tenant_attempt(reason: str, company_id: int | None = None) -> None:
    current_app.logger.warning(
        "CROSS_TENANT_ACCESS_DENIED company_id=%s reason=%s", company_id, reason
    )
