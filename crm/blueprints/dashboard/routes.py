"""
Dashboard: summary statistics over the records visible to the current user.
"""

from __future__ import annotations

from datetime import date

from flask import Blueprint, render_template
from flask_login import current_user, login_required

from ...dashboard import build_dashboard
from ...models import Invoice, Profile, Task, Ticket
from ...security import is_client, permission_required, scope_query
from ...settings_store import GROUP_INVOICE, load_settings

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")


def _visible_profiles():
    if is_client():
        return [current_user]
    return Profile.query.all()


@dashboard_bp.route("/")
@login_required
@permission_required("dashboard")
def index():
    tasks = scope_query(Task.query, Task).order_by(Task.created_at.desc()).all()
    tickets = scope_query(Ticket.query, Ticket).all()
    invoices = scope_query(Invoice.query, Invoice).order_by(Invoice.created_at.desc()).all()

    dashboard = build_dashboard(_visible_profiles(), tasks, tickets, invoices, today=date.today())

    return render_template(
        "dashboard/index.html",
        dashboard=dashboard,
        stats=dashboard.stats,
        currency=load_settings(GROUP_INVOICE)["default_currency"],
    )
