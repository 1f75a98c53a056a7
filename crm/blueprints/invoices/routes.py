"""
crm/blueprints/invoices/routes.py

Invoice routes.

Includes:
- List with search (number / client name / company) + status filter
  ("overdue" is a computed filter, not a stored status)
- Create / edit (admin only); defaults from the invoice settings group
- Line items add / delete (draft invoices only)
- Quick status change (paid stamps paid_at)
- Printable document + fiscalization stub

IMPORTANT:
- tax_amount / total_amount are never read from the form.
  Invoice.recalc_totals() runs on every write.
- Invoice number is generated in the same transaction as the insert.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import login_required
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ...audit import log_action, serialize_model
from ...billing import BillingError, to_decimal
from ...extensions import db
from ...models import INVOICE_STATUSES, Invoice, InvoiceItem, Service, Task, Ticket
from ...numbering import next_invoice_number
from ...printing import render_invoice_document
from ...search import filter_exact, filter_records
from ...security import WRITE, can, permission_required, record_access_required, scope_query
from ...settings_store import GROUP_INVOICE, invoice_defaults, load_settings
from ...utils import (
    active_clients,
    form_str,
    parse_date,
    parse_decimal,
    parse_optional_int,
    safe_next_url,
    valid_profile_id,
    with_current,
)
from ...workflow import WorkflowError, set_invoice_status

logger = logging.getLogger(__name__)

invoices_bp = Blueprint("invoices", __name__, url_prefix="/invoices")

SEARCH_FIELDS = ("invoice_number", "client.first_name", "client.last_name", "client.company")

OVERDUE = "overdue"


def _load_invoice(invoice_id: int, **_: object) -> Invoice:
    return Invoice.query.get_or_404(invoice_id)


def _form_context(invoice: Invoice | None, defaults=None):
    return {
        "invoice": invoice,
        "defaults": defaults or invoice_defaults(),
        "clients": with_current(active_clients(), invoice.client if invoice else None),
        "statuses": INVOICE_STATUSES,
    }


def _apply_form(invoice: Invoice) -> str | None:
    """
    Copy form fields onto the invoice and recompute totals.

    Returns an error message or None.
    """
    client_id = parse_optional_int(request.form.get("client_id"))
    if client_id is None or not valid_profile_id(client_id, with_current(active_clients(), invoice.client)):
        return "Please select a valid client."

    raw_due = request.form.get("due_date")
    due_date = parse_date(raw_due)
    if raw_due and due_date is None:
        return "Invalid due date."

    currency = (form_str("currency") or invoice.currency or "").upper()
    if not currency:
        return "Currency is required."

    try:
        tax_rate = to_decimal(request.form.get("tax_rate"), default=invoice.tax_rate or Decimal("0"))
        # Subtotal comes from the line items when there are any.
        if not invoice.items:
            invoice.subtotal = to_decimal(request.form.get("subtotal"))
        invoice.tax_rate = tax_rate
        invoice.recalc_totals()
        set_invoice_status(invoice, request.form.get("status") or invoice.status or "draft")
    except (BillingError, WorkflowError) as exc:
        return str(exc)

    invoice.client_id = client_id
    invoice.due_date = due_date
    invoice.currency = currency
    invoice.notes = form_str("notes")
    return None


# ---------------------------------------------------------------------
# List
# ---------------------------------------------------------------------
@invoices_bp.route("/")
@login_required
@permission_required("invoices")
def list_invoices():
    q = (request.args.get("q") or "").strip()
    status = (request.args.get("status") or "all").strip()
    today = date.today()

    invoices = scope_query(Invoice.query, Invoice).order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
    invoices = filter_records(invoices, q, SEARCH_FIELDS)
    if status == OVERDUE:
        invoices = [inv for inv in invoices if inv.is_overdue(today)]
    else:
        invoices = filter_exact(invoices, "status", status)

    return render_template(
        "invoices/list.html",
        invoices=invoices,
        q=q,
        status_filter=status,
        statuses=INVOICE_STATUSES + (OVERDUE,),
        today=today,
        allow_edit=can("invoices", WRITE),
    )


# ---------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------
@invoices_bp.route("/new", methods=["GET", "POST"])
@login_required
@permission_required("invoices", WRITE)
def create_invoice():
    defaults = invoice_defaults()

    if request.method == "POST":
        invoice = Invoice(status="draft", currency=defaults["currency"], tax_rate=defaults["tax_rate"])
        error = _apply_form(invoice)
        if error:
            flash(error, "danger")
            return render_template("invoices/form.html", **_form_context(None, defaults)), 400

        try:
            invoice.invoice_number = next_invoice_number()
            db.session.add(invoice)
            db.session.flush()
            log_action(invoice, "CREATE", after=serialize_model(invoice))
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.warning("Invoice number collision, insert rejected")
            flash("Failed to create invoice (number already taken). Please submit again.", "danger")
            return redirect(url_for("invoices.create_invoice"))
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to create invoice")
            flash("Failed to create invoice.", "danger")
            return redirect(url_for("invoices.create_invoice"))

        flash(f"Invoice {invoice.invoice_number} created.", "success")
        return redirect(url_for("invoices.view_invoice", invoice_id=invoice.id))

    return render_template("invoices/form.html", **_form_context(None, defaults))


# ---------------------------------------------------------------------
# View
# ---------------------------------------------------------------------
@invoices_bp.route("/<int:invoice_id>")
@login_required
@permission_required("invoices")
@record_access_required(_load_invoice)
def view_invoice(invoice_id: int):
    invoice = Invoice.query.get_or_404(invoice_id)
    return render_template(
        "invoices/view.html",
        invoice=invoice,
        overdue=invoice.is_overdue(),
        statuses=INVOICE_STATUSES,
        services=Service.query.filter_by(is_active=True).order_by(Service.name.asc()).all(),
        allow_edit=can("invoices", WRITE),
        fiscalization_enabled=bool(load_settings(GROUP_INVOICE)["enable_fiscalization"]),
    )


# ---------------------------------------------------------------------
# Edit
# ---------------------------------------------------------------------
@invoices_bp.route("/<int:invoice_id>/edit", methods=["GET", "POST"])
@login_required
@permission_required("invoices", WRITE)
def edit_invoice(invoice_id: int):
    invoice = Invoice.query.get_or_404(invoice_id)

    if request.method == "POST":
        before_snapshot = serialize_model(invoice)

        error = _apply_form(invoice)
        if error:
            db.session.rollback()
            flash(error, "danger")
            return redirect(url_for("invoices.edit_invoice", invoice_id=invoice_id))

        try:
            db.session.flush()
            log_action(invoice, "UPDATE", before=before_snapshot, after=serialize_model(invoice))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to update invoice %s", invoice_id)
            flash("Failed to update invoice.", "danger")
            return redirect(url_for("invoices.edit_invoice", invoice_id=invoice_id))

        flash("Invoice updated.", "success")
        return redirect(url_for("invoices.view_invoice", invoice_id=invoice.id))

    return render_template("invoices/form.html", **_form_context(invoice))


# ---------------------------------------------------------------------
# Quick status change
# ---------------------------------------------------------------------
@invoices_bp.route("/<int:invoice_id>/status", methods=["POST"])
@login_required
@permission_required("invoices", WRITE)
def update_status(invoice_id: int):
    invoice = Invoice.query.get_or_404(invoice_id)
    next_url = safe_next_url(request.form.get("next"), "invoices.list_invoices")
    before_snapshot = serialize_model(invoice)

    try:
        changed = set_invoice_status(invoice, request.form.get("status"))
    except WorkflowError as exc:
        flash(str(exc), "danger")
        return redirect(next_url)

    if not changed:
        return redirect(next_url)

    try:
        db.session.flush()
        log_action(invoice, "STATUS", before=before_snapshot, after=serialize_model(invoice))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to update status of invoice %s", invoice_id)
        flash("Failed to update invoice status.", "danger")
        return redirect(next_url)

    flash("Invoice status updated.", "success")
    return redirect(next_url)


# ---------------------------------------------------------------------
# Line items (draft only)
# ---------------------------------------------------------------------
@invoices_bp.route("/<int:invoice_id>/items/add", methods=["POST"])
@login_required
@permission_required("invoices", WRITE)
def add_item(invoice_id: int):
    invoice = Invoice.query.get_or_404(invoice_id)
    back = url_for("invoices.view_invoice", invoice_id=invoice.id)

    if invoice.status != "draft":
        flash("Line items can only be changed on draft invoices.", "warning")
        return redirect(back)

    description = form_str("description")
    service_id = parse_optional_int(request.form.get("service_id"))
    service = db.session.get(Service, service_id) if service_id is not None else None
    if service_id is not None and service is None:
        flash("Invalid service.", "danger")
        return redirect(back)

    if not description and service is not None:
        description = service.name
    if not description:
        flash("Line description is required.", "danger")
        return redirect(back)

    raw_quantity = (request.form.get("quantity") or "").strip()
    raw_price = (request.form.get("unit_price") or "").strip()
    quantity = parse_decimal(raw_quantity)
    unit_price = parse_decimal(raw_price)
    if (raw_quantity and quantity is None) or (raw_price and unit_price is None):
        flash("Invalid quantity or unit price.", "danger")
        return redirect(back)
    if unit_price is None and service is not None:
        unit_price = to_decimal(service.price)

    task_id = parse_optional_int(request.form.get("task_id"))
    ticket_id = parse_optional_int(request.form.get("ticket_id"))
    if task_id is not None and db.session.get(Task, task_id) is None:
        task_id = None
    if ticket_id is not None and db.session.get(Ticket, ticket_id) is None:
        ticket_id = None

    before_snapshot = serialize_model(invoice)
    item = InvoiceItem(
        description=description,
        quantity=quantity if quantity is not None else Decimal("1"),
        unit_price=unit_price if unit_price is not None else Decimal("0"),
        service_id=service.id if service is not None else None,
        task_id=task_id,
        ticket_id=ticket_id,
    )

    try:
        invoice.items.append(item)
        invoice.recalc_totals()
    except BillingError as exc:
        db.session.rollback()
        flash(str(exc), "danger")
        return redirect(back)

    try:
        db.session.flush()
        log_action(item, "CREATE", after=serialize_model(item))
        log_action(invoice, "UPDATE", before=before_snapshot, after=serialize_model(invoice))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to add line to invoice %s", invoice_id)
        flash("Failed to add line item.", "danger")
        return redirect(back)

    flash("Line item added.", "success")
    return redirect(back)


@invoices_bp.route("/<int:invoice_id>/items/<int:item_id>/delete", methods=["POST"])
@login_required
@permission_required("invoices", WRITE)
def delete_item(invoice_id: int, item_id: int):
    invoice = Invoice.query.get_or_404(invoice_id)
    back = url_for("invoices.view_invoice", invoice_id=invoice.id)

    if invoice.status != "draft":
        flash("Line items can only be changed on draft invoices.", "warning")
        return redirect(back)

    item = InvoiceItem.query.filter_by(id=item_id, invoice_id=invoice.id).first_or_404()
    item_snapshot = serialize_model(item)
    before_snapshot = serialize_model(invoice)

    try:
        invoice.items.remove(item)
        invoice.recalc_totals()
        db.session.flush()
        log_action(item, "DELETE", before=item_snapshot)
        log_action(invoice, "UPDATE", before=before_snapshot, after=serialize_model(invoice))
        db.session.commit()
    except (BillingError, SQLAlchemyError):
        db.session.rollback()
        logger.exception("Failed to delete line %s of invoice %s", item_id, invoice_id)
        flash("Failed to delete line item.", "danger")
        return redirect(back)

    flash("Line item deleted.", "success")
    return redirect(back)


# ---------------------------------------------------------------------
# Print / fiscalize
# ---------------------------------------------------------------------
@invoices_bp.route("/<int:invoice_id>/print")
@login_required
@permission_required("invoices")
@record_access_required(_load_invoice)
def print_invoice(invoice_id: int):
    """Standalone print-ready document (?auto_print=0 disables the print dialog)."""
    invoice = Invoice.query.get_or_404(invoice_id)
    auto_print = request.args.get("auto_print", "1") != "0"
    return render_invoice_document(invoice, auto_print=auto_print)


@invoices_bp.route("/<int:invoice_id>/fiscalize", methods=["POST"])
@login_required
@permission_required("invoices", WRITE)
def fiscalize(invoice_id: int):
    """
    Fiscalization stub.

    No fiscal device is contacted. When enabled in settings, the request is
    recorded in the audit log.
    """
    invoice = Invoice.query.get_or_404(invoice_id)
    back = url_for("invoices.view_invoice", invoice_id=invoice.id)
    settings = load_settings(GROUP_INVOICE)

    if not settings["enable_fiscalization"]:
        flash("Fiscalization is disabled in settings.", "warning")
        return redirect(back)

    try:
        log_action(
            invoice,
            "FISCALIZE",
            after={"invoice_number": invoice.invoice_number, "fiscal_device": settings["fiscal_device"] or None},
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to record fiscalization of invoice %s", invoice_id)
        flash("Fiscalization failed.", "danger")
        return redirect(back)

    flash(f"Invoice {invoice.invoice_number} sent for fiscalization.", "success")
    return redirect(back)
