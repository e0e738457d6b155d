# Overview: Error taxonomy shared by every ledger service.

"""
Ledger Errors

Business-rule failures (InvalidRequest, InvalidPricing, OverpaymentRejected,
NotFound, Unauthorized, MissingTenantContext) are expected and carry enough
structured detail in to_dict() for the caller to render an actionable message.

LedgerCorruption and InternalError are never recovered locally: the
transaction is rolled back and the caller shows a generic failure.
"""

from __future__ import annotations

from decimal import Decimal

from contribution.money import to_money_str


class LedgerError(Exception):
    """Base class for all core ledger failures."""
    code = "ledger_error"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        payload.update(self.details)
        return payload


class MissingTenantContext(LedgerError):
    """Raised when a tenant-scoped operation has no resolvable company."""
    code = "missing_tenant_context"


class InvalidRequest(LedgerError):
    """Malformed input: non-positive box counts, unknown payment method, etc."""
    code = "invalid_request"


class InvalidPricing(LedgerError):
    """Card or customer pricing cannot produce a positive per-box price (includes division by zero)."""
    code = "invalid_pricing"


# Division by zero on box price is an InvalidPricing failure
DivisionByZero = InvalidPricing


class OverpaymentRejected(LedgerError):
    """Payment would fill more boxes than remain. Carries the maximum permissible payment."""
    code = "overpayment_rejected"

    def __init__(self, message: str, *, max_boxes, max_amount: Decimal):
        super().__init__(message, max_boxes=str(max_boxes), max_amount=to_money_str(max_amount))
        self.max_boxes = max_boxes
        self.max_amount = max_amount


class NotFound(LedgerError):
    code = "not_found"

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class Unauthorized(LedgerError):
    """Reversal/adjustment attempted without an elevated role."""
    code = "unauthorized"


class LedgerCorruption(LedgerError):
    """A ledger invariant does not hold after a mutation. Always escalated."""
    code = "ledger_corruption"

    def to_dict(self) -> dict:
        # Internals are not leaked to the caller
        return {"error": self.code, "message": "Operation failed, please try again."}


class InternalError(LedgerError):
    """Storage failure wrapped so callers never see driver exceptions."""
    code = "internal_error"

    def to_dict(self) -> dict:
        return {"error": self.code, "message": "Operation failed, please try again."}


class TenantAccessError(LedgerError):
    """Raised when a write targets a row owned by another company."""
    code = "tenant_access_denied"
