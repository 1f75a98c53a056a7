"""
Service catalogue: readable by everyone, maintained by admins.
"""

import logging

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import SERVICE_TYPES, Service
from ...search import filter_exact, filter_records
from ...security import WRITE, can, is_client, permission_required
from ...utils import form_bool, form_str, parse_decimal

logger = logging.getLogger(__name__)

services_bp = Blueprint("services", __name__, url_prefix="/services")

SEARCH_FIELDS = ("name", "description")


def _apply_form(service: Service) -> str | None:
    name = form_str("name")
    if not name:
        return "Name is required."

    service_type = form_str("service_type") or "hourly"
    if service_type not in SERVICE_TYPES:
        return "Invalid service type."

    price = parse_decimal(request.form.get("price"))
    if price is None or price < 0:
        return "Price must be a non-negative number."

    service.name = name
    service.description = form_str("description")
    service.service_type = service_type
    service.price = price
    service.is_billable = form_bool("is_billable")
    service.is_active = form_bool("is_active") if service.id is not None else True
    return None


@services_bp.route("/")
@login_required
@permission_required("services")
def list_services():
    q = (request.args.get("q") or "").strip()
    service_type = (request.args.get("type") or "all").strip()

    query = Service.query
    if is_client():
        query = query.filter(Service.is_active.is_(True))
    services = query.order_by(Service.name.asc()).all()

    services = filter_records(services, q, SEARCH_FIELDS)
    services = filter_exact(services, "service_type", service_type)

    return render_template(
        "services/list.html",
        services=services,
        q=q,
        type_filter=service_type,
        service_types=SERVICE_TYPES,
        allow_edit=can("services", WRITE),
    )


@services_bp.route("/new", methods=["GET", "POST"])
@login_required
@permission_required("services", WRITE)
def create_service():
    if request.method == "POST":
        service = Service()
        error = _apply_form(service)
        if error:
            flash(error, "danger")
            return render_template("services/form.html", service=None, service_types=SERVICE_TYPES), 400

        try:
            db.session.add(service)
            db.session.flush()
            log_action(service, "CREATE", after=serialize_model(service))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to create service")
            flash("Failed to create service.", "danger")
            return redirect(url_for("services.create_service"))

        flash("Service created.", "success")
        return redirect(url_for("services.list_services"))

    return render_template("services/form.html", service=None, service_types=SERVICE_TYPES)


@services_bp.route("/<int:service_id>/edit", methods=["GET", "POST"])
@login_required
@permission_required("services", WRITE)
def edit_service(service_id: int):
    service = Service.query.get_or_404(service_id)

    if request.method == "POST":
        before_snapshot = serialize_model(service)

        error = _apply_form(service)
        if error:
            db.session.rollback()
            flash(error, "danger")
            return redirect(url_for("services.edit_service", service_id=service_id))

        try:
            db.session.flush()
            log_action(service, "UPDATE", before=before_snapshot, after=serialize_model(service))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to update service %s", service_id)
            flash("Failed to update service.", "danger")
            return redirect(url_for("services.edit_service", service_id=service_id))

        flash("Service updated.", "success")
        return redirect(url_for("services.list_services"))

    return render_template("services/form.html", service=service, service_types=SERVICE_TYPES)
