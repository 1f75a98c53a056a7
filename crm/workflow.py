"""
crm/workflow.py

Status writes for tickets, tasks and invoices.

These are direct field writes, not a guarded state machine:
any listed status can be written from any other. The only side effects are timestamps:
- Ticket  -> closed     stamps closed_at, any other status clears it (reopen)
- Task    -> completed  stamps completed_at, any other status clears it
- Invoice -> paid       stamps paid_at (kept if already set), any other status clears it
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from .models import INVOICE_STATUSES, TASK_STATUSES, TICKET_STATUSES


class WorkflowError(ValueError):
    """Raised for an unknown status or an out-of-range progress value."""


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.utcnow()


def _check(status: str, allowed: tuple[str, ...], kind: str) -> str:
    status = (status or "").strip()
    if status not in allowed:
        raise WorkflowError(f"Unknown {kind} status: {status!r}")
    return status


def set_ticket_status(ticket: Any, status: str, now: Optional[datetime] = None) -> bool:
    """Write ticket status. Returns True if the status changed."""
    status = _check(status, TICKET_STATUSES, "ticket")
    changed = ticket.status != status
    ticket.status = status

    if status == "closed":
        if changed or ticket.closed_at is None:
            ticket.closed_at = _now(now)
    else:
        ticket.closed_at = None
    return changed


def set_task_status(task: Any, status: str, now: Optional[datetime] = None) -> bool:
    """Write task status. Progress is left untouched."""
    status = _check(status, TASK_STATUSES, "task")
    changed = task.status != status
    task.status = status

    if status == "completed":
        if changed or task.completed_at is None:
            task.completed_at = _now(now)
    else:
        task.completed_at = None
    return changed


def set_task_progress(task: Any, progress: Any) -> int:
    """Write task progress (integer percent, 0-100)."""
    try:
        value = int(str(progress).strip()) if progress not in (None, "") else 0
    except (TypeError, ValueError) as exc:
        raise WorkflowError(f"Invalid progress: {progress!r}") from exc

    if value < 0 or value > 100:
        raise WorkflowError("Progress must be between 0 and 100.")
    task.progress = value
    return value


def set_invoice_status(invoice: Any, status: str, now: Optional[datetime] = None) -> bool:
    """Write invoice status; paid_at follows the paid status."""
    status = _check(status, INVOICE_STATUSES, "invoice")
    changed = invoice.status != status
    invoice.status = status

    if status == "paid":
        if invoice.paid_at is None:
            invoice.paid_at = _now(now)
    else:
        invoice.paid_at = None
    return changed
