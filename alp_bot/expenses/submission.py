"""Turns a finished draft into an invoice on the backend.

Validation happens before any network call. On success the draft is reset
for the next invoice; on failure it is left exactly as it was so the user
can fix it and try again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from alp_bot.expenses.draft import InvoiceDraft
from alp_bot.expenses.errors import (
    DraftValidationError,
    ExpenseError,
    SubmissionError,
    SubmissionInProgressError,
)
from alp_bot.expenses.models import InvoicePayload, PositionPayload
from alp_bot.services.api import APIError, ExpenseBackend
from alp_bot.services.notifier import LogNotifier, Notifier, Severity
from alp_bot.services.users import UserContext

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Expense saved successfully!"
GENERIC_FAILURE_MESSAGE = "Could not save the expense"


class SubmissionState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"


@dataclass
class SubmissionResult:
    ok: bool
    invoice_id: str | None = None
    error: ExpenseError | None = None
    payload: InvoicePayload | None = None

    @property
    def message(self) -> str:
        if self.ok:
            return SUCCESS_MESSAGE
        return str(self.error) if self.error else GENERIC_FAILURE_MESSAGE


def build_payload(draft: InvoiceDraft, technician_id: str | None) -> InvoicePayload:
    """Wire record for a ready draft. Does not modify the draft.

    Under whole-invoice allocation the chosen object is stamped on each
    payload row only; per-line selections stored on the positions stay as
    they were.
    """
    draft.ensure_ready()
    rows = []
    for position, cost_object_id in draft.allocation.resolve(draft.valid_positions):
        rows.append(PositionPayload(
            description=position.description.strip(),
            quantity=position.quantity,
            unit_price=position.unit_price,
            line_total=position.line_total,
            cost_object_id=cost_object_id,
        ))
    header = draft.header
    return InvoicePayload(
        date=header.date,
        vendor=header.vendor,
        payment_method=header.payment_method,
        technician_id=technician_id,
        positions=tuple(rows),
        total_amount=sum((r.line_total for r in rows), Decimal(0)),
        invoice_number=header.invoice_number,
        notes=header.notes,
    )


class SubmissionPipeline:
    """Submits drafts for one user. One submission at a time."""

    def __init__(self, backend: ExpenseBackend, user: UserContext, notifier: Notifier | None = None):
        self.backend = backend
        self.user = user
        self.notifier = notifier or LogNotifier()
        self.state = SubmissionState.IDLE

    @property
    def is_submitting(self) -> bool:
        return self.state == SubmissionState.SUBMITTING

    async def submit(self, draft: InvoiceDraft) -> SubmissionResult:
        if self.is_submitting:
            logger.info(f"Ignoring submit from {self.user.user_id}: already submitting")
            return SubmissionResult(ok=False, error=SubmissionInProgressError())

        try:
            payload = build_payload(draft, self.user.current_technician_id)
        except DraftValidationError as e:
            await self.notifier.notify(e.message, Severity.ERROR)
            return SubmissionResult(ok=False, error=e)

        self.state = SubmissionState.SUBMITTING
        try:
            response = await self.backend.create_invoice(payload.to_dict())
        except APIError as e:
            logger.error(f"Invoice submission failed ({e.status}): {e.message}")
            error = SubmissionError(e.message or GENERIC_FAILURE_MESSAGE, e.status)
            await self.notifier.notify(error.message, Severity.ERROR)
            return SubmissionResult(ok=False, error=error, payload=payload)
        finally:
            self.state = SubmissionState.IDLE

        invoice_id = None
        if isinstance(response, dict) and response.get("id") is not None:
            invoice_id = str(response["id"])
        logger.info(
            f"Invoice {invoice_id} created by {self.user.user_id}: "
            f"{len(payload.positions)} positions, total {payload.total_amount}"
        )
        draft.reset()
        await self.notifier.notify(SUCCESS_MESSAGE, Severity.SUCCESS)
        return SubmissionResult(ok=True, invoice_id=invoice_id, payload=payload)
