"""
Payable and receivable routes.

Both kinds share one set of handlers; ``build_router(kind)`` mounts them
under ``/payables`` or ``/receivables`` with the kind bound, so an id of
the other kind answers 404.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from settlement_kernel.domain.values import ObligationKind
from settlement_kernel.exceptions import InvalidArgumentError
from settlement_modules.obligations.service import ObligationChanges, ObligationService
from settlement_modules.payments.selector import PaymentSelector
from settlement_services.dependencies import (
    get_actor_id,
    get_obligation_service,
    get_payment_selector,
    get_tenant_id,
)
from settlement_services.schemas import (
    InstallmentUpdate,
    ObligationCreate,
    ObligationOut,
    ObligationUpdate,
    PaymentHistoryOut,
)


def build_router(kind: ObligationKind) -> APIRouter:
    segment = f"{kind.value.lower()}s"
    router = APIRouter(prefix=f"/{segment}", tags=[segment])

    @router.post("", response_model=ObligationOut, status_code=status.HTTP_201_CREATED)
    def create_obligation(
        body: ObligationCreate,
        tenant_id: UUID = Depends(get_tenant_id),
        actor_id: UUID | None = Depends(get_actor_id),
        service: ObligationService = Depends(get_obligation_service),
    ):
        first_due = body.due_date
        if first_due is None and body.due_dates:
            first_due = body.due_dates[0]
        if first_due is None:
            raise InvalidArgumentError("dueDate is required", field="dueDate")
        count = body.installment_count
        if count is None:
            count = len(body.due_dates) if body.due_dates else 1

        return service.create_obligation(
            tenant_id,
            kind,
            body.counterparty_id,
            body.amount,
            first_due,
            installment_count=count,
            due_dates=body.due_dates or None,
            category_id=body.category_id,
            document_number=body.document_number,
            payment_method=body.payment_method,
            notes=body.notes,
            tag_ids=body.tag_ids,
            actor_id=actor_id,
        )

    @router.get("/{obligation_id}", response_model=ObligationOut)
    def get_obligation(
        obligation_id: UUID,
        tenant_id: UUID = Depends(get_tenant_id),
        service: ObligationService = Depends(get_obligation_service),
    ):
        return service.get_obligation(tenant_id, obligation_id, kind)

    @router.patch("/{obligation_id}", response_model=ObligationOut)
    def update_obligation(
        obligation_id: UUID,
        body: ObligationUpdate,
        tenant_id: UUID = Depends(get_tenant_id),
        actor_id: UUID | None = Depends(get_actor_id),
        service: ObligationService = Depends(get_obligation_service),
    ):
        changes = ObligationChanges(
            counterparty_id=body.counterparty_id,
            category_id=body.category_id,
            document_number=body.document_number,
            payment_method=body.payment_method,
            notes=body.notes,
            tag_ids=body.tag_ids,
        )
        return service.update_obligation(
            tenant_id, obligation_id, changes, kind=kind, actor_id=actor_id
        )

    @router.post("/{obligation_id}/cancel", response_model=ObligationOut)
    def cancel_obligation(
        obligation_id: UUID,
        tenant_id: UUID = Depends(get_tenant_id),
        actor_id: UUID | None = Depends(get_actor_id),
        service: ObligationService = Depends(get_obligation_service),
    ):
        return service.cancel_obligation(tenant_id, obligation_id, kind=kind, actor_id=actor_id)

    @router.get("/{obligation_id}/payments", response_model=PaymentHistoryOut)
    def obligation_payments(
        obligation_id: UUID,
        tenant_id: UUID = Depends(get_tenant_id),
        selector: PaymentSelector = Depends(get_payment_selector),
    ):
        return {"data": list(selector.payments_for_obligation(tenant_id, obligation_id, kind))}

    @router.patch(
        "/{obligation_id}/installments/{installment_id}", response_model=ObligationOut
    )
    def edit_installment(
        obligation_id: UUID,
        installment_id: UUID,
        body: InstallmentUpdate,
        tenant_id: UUID = Depends(get_tenant_id),
        actor_id: UUID | None = Depends(get_actor_id),
        service: ObligationService = Depends(get_obligation_service),
    ):
        return service.edit_installment(
            tenant_id,
            obligation_id,
            installment_id,
            amount=body.amount,
            due_date=body.due_date,
            notes=body.notes,
            tag_ids=body.tag_ids,
            kind=kind,
            actor_id=actor_id,
        )

    @router.delete(
        "/{obligation_id}/installments/{installment_id}", response_model=ObligationOut
    )
    def delete_installment(
        obligation_id: UUID,
        installment_id: UUID,
        tenant_id: UUID = Depends(get_tenant_id),
        actor_id: UUID | None = Depends(get_actor_id),
        service: ObligationService = Depends(get_obligation_service),
    ):
        return service.delete_installment(
            tenant_id, obligation_id, installment_id, kind=kind, actor_id=actor_id
        )

    return router
