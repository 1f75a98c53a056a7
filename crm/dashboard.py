"""
crm/dashboard.py

Dashboard aggregation: summary counts, status breakdowns, six-month revenue and
recent activity.

Inputs are plain record lists (already scoped to the user's role by the caller),
so the computation is independent of the database and of "now" (today is a parameter).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from .billing import is_overdue, to_decimal
from .models import INVOICE_STATUSES, TASK_STATUSES

MONTHS_OF_REVENUE = 6
RECENT_PER_KIND = 3
RECENT_LIMIT = 6

TASK_STATUS_LABELS = {
    "pending": "Pending",
    "in_progress": "In progress",
    "completed": "Completed",
    "cancelled": "Cancelled",
}
INVOICE_STATUS_LABELS = {
    "draft": "Draft",
    "sent": "Sent",
    "paid": "Paid",
    "cancelled": "Cancelled",
}
STATUS_COLORS = {
    "pending": "#fbbf24",
    "in_progress": "#3b82f6",
    "completed": "#10b981",
    "cancelled": "#ef4444",
    "draft": "#6b7280",
    "sent": "#3b82f6",
    "paid": "#10b981",
}


@dataclass
class DashboardStats:
    total_users: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0
    active_tasks: int = 0
    total_tickets: int = 0
    open_tickets: int = 0
    total_invoices: int = 0
    paid_invoices: int = 0
    total_revenue: Decimal = Decimal("0")
    overdue_invoices: int = 0


@dataclass
class ChartPoint:
    name: str
    value: Any
    color: Optional[str] = None


@dataclass
class Activity:
    kind: str
    title: str
    status: str
    time: Optional[datetime]


@dataclass
class Dashboard:
    stats: DashboardStats
    task_status_breakdown: List[ChartPoint] = field(default_factory=list)
    invoice_status_breakdown: List[ChartPoint] = field(default_factory=list)
    monthly_revenue: List[ChartPoint] = field(default_factory=list)
    recent_activity: List[Activity] = field(default_factory=list)


def _month_shift(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def invoice_overdue(invoice: Any, today: date) -> bool:
    return is_overdue(invoice.due_date, invoice.status, today)


def compute_stats(profiles: list, tasks: list, tickets: list, invoices: list, today: date) -> DashboardStats:
    completed = sum(1 for t in tasks if t.status == "completed")
    paid = [i for i in invoices if i.status == "paid"]

    return DashboardStats(
        total_users=len(profiles),
        total_tasks=len(tasks),
        completed_tasks=completed,
        active_tasks=len(tasks) - completed,
        total_tickets=len(tickets),
        open_tickets=sum(1 for t in tickets if t.status == "open"),
        total_invoices=len(invoices),
        paid_invoices=len(paid),
        total_revenue=sum((to_decimal(i.total_amount) for i in paid), Decimal("0")),
        overdue_invoices=sum(1 for i in invoices if invoice_overdue(i, today)),
    )


def status_breakdown(records: Iterable[Any], statuses: Iterable[str], labels: dict) -> List[ChartPoint]:
    records = list(records)
    return [
        ChartPoint(
            name=labels.get(status, status),
            value=sum(1 for r in records if r.status == status),
            color=STATUS_COLORS.get(status),
        )
        for status in statuses
    ]


def monthly_revenue(invoices: Iterable[Any], today: date, months: int = MONTHS_OF_REVENUE) -> List[ChartPoint]:
    """Paid totals per calendar month (by paid_at), oldest first, ending with today's month."""
    buckets = []
    for offset in range(months - 1, -1, -1):
        year, month = _month_shift(today.year, today.month, -offset)
        buckets.append(((year, month), Decimal("0")))
    totals = dict(buckets)

    for invoice in invoices:
        if invoice.status != "paid" or invoice.paid_at is None:
            continue
        key = (invoice.paid_at.year, invoice.paid_at.month)
        if key in totals:
            totals[key] += to_decimal(invoice.total_amount)

    return [
        ChartPoint(name=date(year, month, 1).strftime("%b %Y"), value=totals[(year, month)])
        for (year, month), _ in buckets
    ]


def _newest_first(records: Iterable[Any]) -> list:
    return sorted(records, key=lambda r: r.created_at or datetime.min, reverse=True)


def recent_activity(tasks: Iterable[Any], invoices: Iterable[Any]) -> List[Activity]:
    activities = [
        Activity(kind="task", title=f"Task: {t.title}", status=t.status, time=t.created_at)
        for t in _newest_first(tasks)[:RECENT_PER_KIND]
    ]
    activities += [
        Activity(kind="invoice", title=f"Invoice: {i.invoice_number}", status=i.status, time=i.created_at)
        for i in _newest_first(invoices)[:RECENT_PER_KIND]
    ]
    activities.sort(key=lambda a: a.time or datetime.min, reverse=True)
    return activities[:RECENT_LIMIT]


def build_dashboard(profiles: list, tasks: list, tickets: list, invoices: list, today: Optional[date] = None) -> Dashboard:
    today = today or date.today()
    return Dashboard(
        stats=compute_stats(profiles, tasks, tickets, invoices, today),
        task_status_breakdown=status_breakdown(tasks, TASK_STATUSES, TASK_STATUS_LABELS),
        invoice_status_breakdown=status_breakdown(invoices, INVOICE_STATUSES, INVOICE_STATUS_LABELS),
        monthly_revenue=monthly_revenue(invoices, today),
        recent_activity=recent_activity(tasks, invoices),
    )
