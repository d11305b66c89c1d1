"""
Typed Exception Hierarchy for the Settlement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the HTTP boundary, the sweeper, scripts) must react to failures by
type, never by parsing messages.  Every exception therefore carries:

  1. A TYPED class (catch by type, not message)
  2. A ``code`` attribute (machine-readable, API-safe)
  3. An ``http_status`` attribute (what the request boundary answers with)
  4. Structured DATA (ids, amounts) instead of only a message string

Example:
    try:
        engine.create(tenant_id, payment, targets)
    except OverAllocationError as e:
        logger.warning("over_allocation", extra={"installment_id": e.installment_id})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SettlementError (base)
    |
    +-- InvalidArgumentError                     400
    |   +-- AmbiguousSettlementError             400
    |   +-- IdempotencyKeyMissingError           400
    |
    +-- AmountMismatchError                      400
    |
    +-- NotFoundError                            404
    |
    +-- InvalidStateError                        409
    |   +-- OverAllocationError                  409
    |
    +-- IdempotencyConflictError                 409
    |
    +-- TenantRequiredError                      401

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                     | When Raised
-------------------------|------------------------------------------------------
INVALID_ARGUMENT         | Malformed amount/date/count, empty target list
AMBIGUOUS_SETTLEMENT     | Quick settle on an obligation with several installments
IDEMPOTENCY_KEY_MISSING  | Mutating request without an idempotency-key header
AMOUNT_MISMATCH          | Allocation amounts do not sum to the payment amount
NOT_FOUND                | Entity missing or owned by another tenant
INVALID_STATE            | Target is PAID/CANCELLED, edit of a settled schedule
OVER_ALLOCATION          | Allocation exceeds an installment's outstanding balance
IDEMPOTENCY_CONFLICT     | Identical request still in flight after the wait window
TENANT_REQUIRED          | Tenant-scoped handler called without tenant context
"""

from decimal import Decimal


class SettlementError(Exception):
    """
    Base exception for all settlement kernel errors.

    All subclasses must define ``code`` and ``http_status`` class attributes.
    """

    code: str = "SETTLEMENT_ERROR"
    http_status: int = 500


class InvalidArgumentError(SettlementError):
    """Request input is malformed or out of range."""

    code: str = "INVALID_ARGUMENT"
    http_status: int = 400

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class AmbiguousSettlementError(InvalidArgumentError):
    """Quick settle could not pick a single installment to settle."""

    code: str = "AMBIGUOUS_SETTLEMENT"

    def __init__(self, account_id: str, open_installment_ids: list[str]):
        self.account_id = str(account_id)
        self.open_installment_ids = [str(i) for i in open_installment_ids]
        super().__init__(
            f"Obligation {account_id} has {len(self.open_installment_ids)} "
            "installments; target one installment explicitly",
            field="accountId",
        )


class IdempotencyKeyMissingError(InvalidArgumentError):
    """A guarded request arrived without an idempotency key."""

    code: str = "IDEMPOTENCY_KEY_MISSING"

    def __init__(self, header_name: str):
        self.header_name = header_name
        super().__init__(
            f"Header '{header_name}' is required for this request",
            field=header_name,
        )


class AmountMismatchError(SettlementError):
    """Sum of allocation amounts differs from the payment amount."""

    code: str = "AMOUNT_MISMATCH"
    http_status: int = 400

    def __init__(self, payment_amount: Decimal, allocated_amount: Decimal):
        self.payment_amount = payment_amount
        self.allocated_amount = allocated_amount
        super().__init__(
            f"Allocations total {allocated_amount} but payment amount is "
            f"{payment_amount}"
        )


class NotFoundError(SettlementError):
    """Entity does not exist for the requesting tenant."""

    code: str = "NOT_FOUND"
    http_status: int = 404

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = str(entity_id)
        super().__init__(f"{entity} not found: {entity_id}")


class InvalidStateError(SettlementError):
    """Entity is in a state that forbids the requested operation."""

    code: str = "INVALID_STATE"
    http_status: int = 409

    def __init__(
        self,
        message: str,
        entity: str | None = None,
        entity_id: str | None = None,
        status: str | None = None,
    ):
        self.entity = entity
        self.entity_id = str(entity_id) if entity_id is not None else None
        self.status = status
        super().__init__(message)


class OverAllocationError(InvalidStateError):
    """Allocation amount exceeds the installment's outstanding balance."""

    code: str = "OVER_ALLOCATION"

    def __init__(self, installment_id: str, outstanding: Decimal, requested: Decimal):
        self.outstanding = outstanding
        self.requested = requested
        super().__init__(
            f"Installment {installment_id} has {outstanding} outstanding; "
            f"cannot allocate {requested}",
            entity="Installment",
            entity_id=installment_id,
        )

    @property
    def installment_id(self) -> str | None:
        return self.entity_id


class IdempotencyConflictError(SettlementError):
    """An identical request is still being processed."""

    code: str = "IDEMPOTENCY_CONFLICT"
    http_status: int = 409

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(
            f"Request with idempotency key '{idempotency_key}' is still in progress"
        )


class TenantRequiredError(SettlementError):
    """Request reached a tenant-scoped handler without tenant context."""

    code: str = "TENANT_REQUIRED"
    http_status: int = 401

    def __init__(self):
        super().__init__("Tenant context is required")
