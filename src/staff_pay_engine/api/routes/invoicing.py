"""Invoicing API endpoints."""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from staff_pay_engine.api.dependencies import Coordinator, Invoices
from staff_pay_engine.api.schemas import (
    CommitRequest,
    CommitResponse,
    ErrorResponse,
    InvoiceLineResponse,
    InvoiceListResponse,
    PreviewResponse,
    StatusResponse,
)
from staff_pay_engine.services.coordinator import CommitOutcome, PreviewHandle
from staff_pay_engine.services.invoice_store import DEFAULT_DAYS_BACK

router = APIRouter(prefix="/invoicing", tags=["invoicing"])


def _with_payment_list(data: dict) -> dict:
    data["payments"] = list(data["payments"].values())
    return data


@router.get(
    "/preview",
    response_model=PreviewResponse,
    responses={503: {"model": ErrorResponse}},
)
def preview_invoices(
    coordinator: Coordinator,
    item_ids: Annotated[list[int] | None, Query(alias="item_id")] = None,
) -> PreviewResponse:
    """Preview payments and the draft invoice batch. Does not touch the ledger."""
    result = coordinator.preview(only_item_ids=item_ids)
    return PreviewResponse.model_validate(_with_payment_list(result.to_dict()))


@router.post(
    "/commit",
    response_model=CommitResponse,
    responses={409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def commit_invoices(
    coordinator: Coordinator,
    payload: CommitRequest | None = None,
) -> CommitResponse:
    """Invoice eligible work and mark it as invoiced.

    Items already invoiced by another run are reported as skipped; items
    whose write failed are reported as failed and can be retried.
    """
    handle = None
    if payload is not None and payload.handle is not None:
        handle = PreviewHandle.from_dict(payload.handle.model_dump())

    result = coordinator.commit(handle)
    if result.outcome == CommitOutcome.STALE_PREVIEW:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=result.message,
        )
    return CommitResponse.model_validate(_with_payment_list(result.to_dict()))


@router.get("/status", response_model=StatusResponse)
def ledger_status(coordinator: Coordinator) -> StatusResponse:
    """Count work that is done but not yet paid or invoiced."""
    return StatusResponse.model_validate(coordinator.status().to_dict())


@router.get("/invoices", response_model=InvoiceListResponse)
def list_invoices(
    invoice_store: Invoices,
    invoice_number: str | None = None,
    days_back: Annotated[int, Query(ge=1, le=3650)] = DEFAULT_DAYS_BACK,
) -> InvoiceListResponse:
    """Invoice lines by invoice number, or issued within the last N days."""
    lines = invoice_store.find_lines(invoice_number=invoice_number, days_back=days_back)
    return InvoiceListResponse(
        invoice_number=invoice_number,
        days_back=None if invoice_number else days_back,
        total_amount=sum((line.total_amount for line in lines), Decimal("0")),
        lines=[InvoiceLineResponse.model_validate(line.to_dict()) for line in lines],
    )


@router.get(
    "/invoices/latest",
    response_model=InvoiceListResponse,
    responses={404: {"model": ErrorResponse}},
)
def latest_invoice(invoice_store: Invoices) -> InvoiceListResponse:
    """Lines of the most recently issued invoice."""
    invoice_number = invoice_store.latest_invoice_number()
    if invoice_number is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No invoices found",
        )

    lines = invoice_store.find_lines(invoice_number=invoice_number)
    return InvoiceListResponse(
        invoice_number=invoice_number,
        total_amount=sum((line.total_amount for line in lines), Decimal("0")),
        lines=[InvoiceLineResponse.model_validate(line.to_dict()) for line in lines],
    )
