"""Payment routes: create, quick settle, read, metadata edit, reversal."""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from settlement_modules.payments.models import AllocationTarget, PaymentRequest
from settlement_modules.payments.selector import PaymentSelector
from settlement_modules.payments.service import AllocationEngine
from settlement_services.dependencies import (
    get_actor_id,
    get_allocation_engine,
    get_payment_selector,
    get_tenant_id,
)
from settlement_services.schemas import (
    PaymentCreate,
    PaymentOut,
    PaymentUpdate,
    QuickSettleCreate,
    ReversalOut,
)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/quick", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def quick_settle(
    body: QuickSettleCreate,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: UUID | None = Depends(get_actor_id),
    engine: AllocationEngine = Depends(get_allocation_engine),
):
    return engine.quick_settle(
        tenant_id,
        kind=body.kind,
        account_id=body.account_id,
        amount=body.amount,
        payment_date=body.payment_date,
        method=body.method,
        notes=body.notes,
        reference=body.reference,
        actor_id=actor_id,
    )


@router.post("", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def create_payment(
    body: PaymentCreate,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: UUID | None = Depends(get_actor_id),
    engine: AllocationEngine = Depends(get_allocation_engine),
):
    request = PaymentRequest(
        amount=body.amount,
        payment_date=body.payment_date,
        method=body.method,
        reference=body.reference,
        notes=body.notes,
    )
    targets = [AllocationTarget(a.installment_id, a.amount) for a in body.allocations]
    return engine.create(tenant_id, request, targets, actor_id=actor_id)


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(
    payment_id: UUID,
    tenant_id: UUID = Depends(get_tenant_id),
    selector: PaymentSelector = Depends(get_payment_selector),
):
    return selector.get_payment(tenant_id, payment_id)


@router.patch("/{payment_id}", response_model=PaymentOut)
def update_payment(
    payment_id: UUID,
    body: PaymentUpdate,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: UUID | None = Depends(get_actor_id),
    engine: AllocationEngine = Depends(get_allocation_engine),
):
    return engine.update_metadata(
        tenant_id,
        payment_id,
        payment_date=body.payment_date,
        method=body.method,
        reference=body.reference,
        notes=body.notes,
        actor_id=actor_id,
    )


@router.delete("/{payment_id}", response_model=ReversalOut)
def reverse_payment(
    payment_id: UUID,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: UUID | None = Depends(get_actor_id),
    engine: AllocationEngine = Depends(get_allocation_engine),
):
    return engine.reverse(tenant_id, payment_id, actor_id=actor_id)
