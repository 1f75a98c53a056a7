"""
Workers directory (admin only): the staff subset of profiles (admins + workers),
with position and hourly rate.
"""

import logging

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import Profile, ROLE_ADMIN, ROLE_WORKER
from ...search import filter_exact, filter_records
from ...security import WRITE, permission_required
from ..users.routes import apply_profile_form

logger = logging.getLogger(__name__)

workers_bp = Blueprint("workers", __name__, url_prefix="/workers")

STAFF_ROLES = (ROLE_WORKER, ROLE_ADMIN)
SEARCH_FIELDS = ("first_name", "last_name", "email", "company", "position")


@workers_bp.route("/")
@login_required
@permission_required("workers")
def list_workers():
    q = (request.args.get("q") or "").strip()
    role = (request.args.get("role") or "all").strip()

    workers = (
        Profile.query.filter(Profile.role.in_(STAFF_ROLES))
        .order_by(Profile.last_name.asc(), Profile.first_name.asc())
        .all()
    )
    workers = filter_records(workers, q, SEARCH_FIELDS)
    workers = filter_exact(workers, "role", role)

    return render_template(
        "workers/list.html",
        workers=workers,
        q=q,
        role_filter=role,
        roles=STAFF_ROLES,
    )


@workers_bp.route("/new", methods=["GET", "POST"])
@login_required
@permission_required("workers", WRITE)
def create_worker():
    if request.method == "POST":
        worker = Profile(role=ROLE_WORKER)
        error = apply_profile_form(worker, STAFF_ROLES)
        if error:
            flash(error, "danger")
            return render_template("workers/form.html", worker=None, roles=STAFF_ROLES), 400

        try:
            db.session.add(worker)
            db.session.flush()
            log_action(worker, "CREATE", after=serialize_model(worker))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to create worker %s", worker.email)
            flash("Failed to create worker.", "danger")
            return redirect(url_for("workers.create_worker"))

        flash("Worker created.", "success")
        return redirect(url_for("workers.list_workers"))

    return render_template("workers/form.html", worker=None, roles=STAFF_ROLES)


@workers_bp.route("/<int:worker_id>/edit", methods=["GET", "POST"])
@login_required
@permission_required("workers", WRITE)
def edit_worker(worker_id: int):
    worker = Profile.query.filter(Profile.id == worker_id, Profile.role.in_(STAFF_ROLES)).first_or_404()

    if request.method == "POST":
        before_snapshot = serialize_model(worker)

        error = apply_profile_form(worker, STAFF_ROLES)
        if error:
            db.session.rollback()
            flash(error, "danger")
            return redirect(url_for("workers.edit_worker", worker_id=worker_id))

        try:
            db.session.flush()
            log_action(worker, "UPDATE", before=before_snapshot, after=serialize_model(worker))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to update worker %s", worker_id)
            flash("Failed to update worker.", "danger")
            return redirect(url_for("workers.edit_worker", worker_id=worker_id))

        flash("Worker updated.", "success")
        return redirect(url_for("workers.list_workers"))

    return render_template("workers/form.html", worker=worker, roles=STAFF_ROLES)
