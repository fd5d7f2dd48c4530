"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str | None = None


# ============================================================================
# Preview handle schemas
# ============================================================================


class ObservedItem(BaseModel):
    """A work item pinned by a preview, with the paid_state seen at preview."""

    item_id: int
    paid_state: str = ""


class PreviewHandleSchema(BaseModel):
    """Token returned by preview and passed back to commit."""

    handle_id: UUID
    created_at: datetime
    config_fingerprint: str
    items: list[ObservedItem] = Field(default_factory=list)


# ============================================================================
# Payment schemas
# ============================================================================


class TaskResponse(BaseModel):
    """Schema for one resolved task."""

    item_id: int
    staff_key: str
    task_type: str
    league: str
    round: str
    team1: str
    team2: str
    evidence_link: str
    completion_date: str
    rate: Decimal
    rate_source: str
    has_valid_rate: bool


class PaymentResponse(BaseModel):
    """Schema for the payment owed to one legal payee."""

    staff_key: str
    legal_name: str
    has_mapping: bool
    total_amount: Decimal
    task_count: int
    tasks: list[TaskResponse]


class NoRateTaskResponse(BaseModel):
    """Schema for a task whose type has no rate entry."""

    item_id: int
    staff_key: str
    task_type: str
    league: str
    round: str
    teams: str


class SummaryResponse(BaseModel):
    """Schema for the run summary."""

    total_tasks: int
    total_staff: int
    grand_total: Decimal
    unmatched_task_types: list[str]
    unmatched_staff_keys: list[str]
    tasks_with_no_rate: list[NoRateTaskResponse]


# ============================================================================
# Invoice schemas
# ============================================================================


class InvoiceLineResponse(BaseModel):
    """Schema for one payee line of an invoice."""

    invoice_number: str
    issued_at: datetime
    legal_name: str
    staff_key: str
    work_summary: str
    total_amount: Decimal
    evidence_links: str
    task_count: int
    item_ids: list[int]


class InvoiceBatchResponse(BaseModel):
    """Schema for an invoice batch."""

    invoice_number: str
    issued_at: datetime
    total_amount: Decimal
    lines: list[InvoiceLineResponse]


class InvoiceListResponse(BaseModel):
    """Schema for invoice lookups."""

    invoice_number: str | None = None
    days_back: int | None = None
    total_amount: Decimal
    lines: list[InvoiceLineResponse]


# ============================================================================
# Preview / commit schemas
# ============================================================================


class PreviewResponse(BaseModel):
    """Schema for preview response."""

    nothing_to_do: bool
    status: str
    handle: PreviewHandleSchema
    summary: SummaryResponse
    payments: list[PaymentResponse]
    batch: InvoiceBatchResponse


class CommitRequest(BaseModel):
    """Schema for commit request. Without a handle all eligible work is invoiced."""

    handle: PreviewHandleSchema | None = None


class CommitResponse(BaseModel):
    """Schema for commit response."""

    outcome: str
    status: str
    message: str
    invoice_batch: InvoiceBatchResponse | None = None
    summary: SummaryResponse
    payments: list[PaymentResponse]
    claimed_item_ids: list[int]
    skipped_item_ids: list[int]
    failed_item_ids: list[int]


class StatusResponse(BaseModel):
    """Schema for ledger status."""

    unpaid_tasks: int
    last_check: datetime
