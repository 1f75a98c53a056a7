"""
crm/blueprints/tickets/routes.py

Ticket routes.

Includes:
- List with search (title / description / number) + status and priority filters
- Create / edit (admin + worker)
- Quick status change (closing stamps closed_at, reopening clears it)
- Detail view (clients: own tickets only)

IMPORTANT:
- UI is never trusted. Access control and validations are server-side.
- Ticket number is generated in the same transaction as the insert.
"""

from __future__ import annotations

import logging

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import login_required
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import TICKET_PRIORITIES, TICKET_STATUSES, Service, Ticket
from ...numbering import next_ticket_number
from ...search import filter_exact, filter_records
from ...security import WRITE, can, permission_required, record_access_required, scope_query
from ...utils import (
    active_clients,
    active_workers,
    form_bool,
    form_str,
    parse_decimal,
    parse_optional_int,
    safe_next_url,
    valid_profile_id,
    with_current,
)
from ...workflow import WorkflowError, set_ticket_status

logger = logging.getLogger(__name__)

tickets_bp = Blueprint("tickets", __name__, url_prefix="/tickets")

SEARCH_FIELDS = ("title", "description", "ticket_number")


def _load_ticket(ticket_id: int, **_: object) -> Ticket:
    """Loader for decorator factories."""
    return Ticket.query.get_or_404(ticket_id)


def _active_services():
    return Service.query.filter_by(is_active=True).order_by(Service.name.asc()).all()


def _apply_form(ticket: Ticket) -> str | None:
    """
    Copy form fields onto the ticket.

    Returns an error message (nothing applied is committed) or None.
    """
    title = form_str("title")
    if not title:
        return "Title is required."

    priority = form_str("priority") or "medium"
    if priority not in TICKET_PRIORITIES:
        return "Invalid priority."

    client_id = parse_optional_int(request.form.get("client_id"))
    if not valid_profile_id(client_id, with_current(active_clients(), ticket.client)):
        return "Invalid client."

    worker_id = parse_optional_int(request.form.get("assigned_worker_id"))
    if not valid_profile_id(worker_id, with_current(active_workers(), ticket.assigned_worker)):
        return "Invalid assigned worker."

    service_id = parse_optional_int(request.form.get("service_id"))
    if service_id is not None and service_id not in {s.id for s in with_current(_active_services(), ticket.service)}:
        return "Invalid service."

    ticket.title = title
    ticket.description = form_str("description")
    ticket.category = form_str("category")
    ticket.priority = priority
    ticket.client_id = client_id
    ticket.assigned_worker_id = worker_id
    ticket.service_id = service_id
    ticket.estimated_hours = parse_decimal(request.form.get("estimated_hours"))
    ticket.hours_worked = parse_decimal(request.form.get("hours_worked"))
    ticket.is_billable = form_bool("is_billable")
    return None


def _form_context(ticket: Ticket | None):
    return {
        "ticket": ticket,
        "clients": with_current(active_clients(), ticket.client if ticket else None),
        "workers": with_current(active_workers(), ticket.assigned_worker if ticket else None),
        "services": with_current(_active_services(), ticket.service if ticket else None),
        "priorities": TICKET_PRIORITIES,
        "statuses": TICKET_STATUSES,
    }


# ---------------------------------------------------------------------
# List
# ---------------------------------------------------------------------
@tickets_bp.route("/")
@login_required
@permission_required("tickets")
def list_tickets():
    q = (request.args.get("q") or "").strip()
    status = (request.args.get("status") or "all").strip()
    priority = (request.args.get("priority") or "all").strip()

    tickets = scope_query(Ticket.query, Ticket).order_by(Ticket.created_at.desc(), Ticket.id.desc()).all()
    tickets = filter_records(tickets, q, SEARCH_FIELDS)
    tickets = filter_exact(tickets, "status", status)
    tickets = filter_exact(tickets, "priority", priority)

    return render_template(
        "tickets/list.html",
        tickets=tickets,
        q=q,
        status_filter=status,
        priority_filter=priority,
        statuses=TICKET_STATUSES,
        priorities=TICKET_PRIORITIES,
        allow_edit=can("tickets", WRITE),
    )


# ---------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------
@tickets_bp.route("/new", methods=["GET", "POST"])
@login_required
@permission_required("tickets", WRITE)
def create_ticket():
    if request.method == "POST":
        ticket = Ticket(status="open")
        error = _apply_form(ticket)
        if error:
            flash(error, "danger")
            return render_template("tickets/form.html", **_form_context(None)), 400

        try:
            ticket.ticket_number = next_ticket_number()
            db.session.add(ticket)
            db.session.flush()
            log_action(ticket, "CREATE", after=serialize_model(ticket))
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.warning("Ticket number collision, insert rejected")
            flash("Failed to create ticket (number already taken). Please submit again.", "danger")
            return redirect(url_for("tickets.create_ticket"))
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to create ticket")
            flash("Failed to create ticket.", "danger")
            return redirect(url_for("tickets.create_ticket"))

        flash(f"Ticket {ticket.ticket_number} created.", "success")
        return redirect(url_for("tickets.view_ticket", ticket_id=ticket.id))

    return render_template("tickets/form.html", **_form_context(None))


# ---------------------------------------------------------------------
# View
# ---------------------------------------------------------------------
@tickets_bp.route("/<int:ticket_id>")
@login_required
@permission_required("tickets")
@record_access_required(_load_ticket)
def view_ticket(ticket_id: int):
    ticket = Ticket.query.get_or_404(ticket_id)
    return render_template(
        "tickets/view.html",
        ticket=ticket,
        statuses=TICKET_STATUSES,
        allow_edit=can("tickets", WRITE),
    )


# ---------------------------------------------------------------------
# Edit
# ---------------------------------------------------------------------
@tickets_bp.route("/<int:ticket_id>/edit", methods=["GET", "POST"])
@login_required
@permission_required("tickets", WRITE)
def edit_ticket(ticket_id: int):
    ticket = Ticket.query.get_or_404(ticket_id)

    if request.method == "POST":
        before_snapshot = serialize_model(ticket)

        error = _apply_form(ticket)
        if not error:
            try:
                set_ticket_status(ticket, request.form.get("status") or ticket.status)
            except WorkflowError as exc:
                error = str(exc)

        if error:
            db.session.rollback()
            flash(error, "danger")
            return redirect(url_for("tickets.edit_ticket", ticket_id=ticket_id))

        try:
            db.session.flush()
            log_action(ticket, "UPDATE", before=before_snapshot, after=serialize_model(ticket))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to update ticket %s", ticket_id)
            flash("Failed to update ticket.", "danger")
            return redirect(url_for("tickets.edit_ticket", ticket_id=ticket_id))

        flash("Ticket updated.", "success")
        return redirect(url_for("tickets.view_ticket", ticket_id=ticket.id))

    return render_template("tickets/form.html", **_form_context(ticket))


# ---------------------------------------------------------------------
# Quick status change
# ---------------------------------------------------------------------
@tickets_bp.route("/<int:ticket_id>/status", methods=["POST"])
@login_required
@permission_required("tickets", WRITE)
def update_status(ticket_id: int):
    ticket = Ticket.query.get_or_404(ticket_id)
    next_url = safe_next_url(request.form.get("next"), "tickets.list_tickets")
    before_snapshot = serialize_model(ticket)

    try:
        changed = set_ticket_status(ticket, request.form.get("status"))
    except WorkflowError as exc:
        flash(str(exc), "danger")
        return redirect(next_url)

    if not changed:
        return redirect(next_url)

    try:
        db.session.flush()
        log_action(ticket, "STATUS", before=before_snapshot, after=serialize_model(ticket))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to update status of ticket %s", ticket_id)
        flash("Failed to update ticket status.", "danger")
        return redirect(next_url)

    flash("Ticket status updated.", "success")
    return redirect(next_url)
