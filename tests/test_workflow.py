"""
Unit tests for status transitions and their timestamps
"""
from datetime import datetime
from types import SimpleNamespace

import pytest

from crm.workflow import (
    WorkflowError,
    set_invoice_status,
    set_task_progress,
    set_task_status,
    set_ticket_status,
)

NOW = datetime(2026, 3, 1, 9, 30)
LATER = datetime(2026, 3, 2, 10, 0)


def ticket(status="open", closed_at=None):
    return SimpleNamespace(status=status, closed_at=closed_at)


def task(status="pending", completed_at=None, progress=0):
    return SimpleNamespace(status=status, completed_at=completed_at, progress=progress)


def invoice(status="draft", paid_at=None):
    return SimpleNamespace(status=status, paid_at=paid_at)


class TestTicketStatus:
    def test_closing_stamps_closed_at(self):
        t = ticket()
        assert set_ticket_status(t, "closed", now=NOW) is True
        assert t.status == "closed"
        assert t.closed_at == NOW

    def test_reopening_clears_closed_at(self):
        t = ticket("closed", NOW)
        set_ticket_status(t, "open")
        assert t.closed_at is None

    def test_any_status_reachable(self):
        t = ticket("closed", NOW)
        set_ticket_status(t, "in_progress")
        assert t.status == "in_progress"

    def test_same_status_reports_unchanged(self):
        t = ticket("closed", NOW)
        assert set_ticket_status(t, "closed", now=LATER) is False
        assert t.closed_at == NOW

    def test_unknown_status(self):
        with pytest.raises(WorkflowError):
            set_ticket_status(ticket(), "archived")


class TestTaskStatus:
    def test_completing_stamps_completed_at(self):
        t = task()
        set_task_status(t, "completed", now=NOW)
        assert t.completed_at == NOW

    def test_leaving_completed_clears_timestamp(self):
        t = task("completed", NOW)
        set_task_status(t, "in_progress")
        assert t.completed_at is None

    def test_progress_untouched(self):
        t = task(progress=40)
        set_task_status(t, "completed", now=NOW)
        assert t.progress == 40

    def test_unknown_status(self):
        with pytest.raises(WorkflowError):
            set_task_status(task(), "done")


class TestTaskProgress:
    @pytest.mark.parametrize("raw,expected", [("0", 0), ("55", 55), (100, 100), ("", 0), (None, 0)])
    def test_valid_values(self, raw, expected):
        t = task()
        assert set_task_progress(t, raw) == expected
        assert t.progress == expected

    @pytest.mark.parametrize("raw", ["-1", "101", "abc", "12.5"])
    def test_invalid_values(self, raw):
        t = task(progress=10)
        with pytest.raises(WorkflowError):
            set_task_progress(t, raw)
        assert t.progress == 10


class TestInvoiceStatus:
    def test_paid_sets_paid_at(self):
        inv = invoice("sent")
        set_invoice_status(inv, "paid", now=NOW)
        assert inv.paid_at == NOW

    def test_paid_keeps_existing_paid_at(self):
        inv = invoice("paid", NOW)
        set_invoice_status(inv, "paid", now=LATER)
        assert inv.paid_at == NOW

    def test_leaving_paid_clears_paid_at(self):
        inv = invoice("paid", NOW)
        set_invoice_status(inv, "sent")
        assert inv.paid_at is None

    def test_overdue_is_not_a_status(self):
        with pytest.raises(WorkflowError):
            set_invoice_status(invoice(), "overdue")
