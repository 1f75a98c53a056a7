"""
crm/blueprints/tasks/routes.py

Task routes.

Includes:
- List with search (title / description / worker / client) + status filter
- Create / edit (admin + worker), progress 0-100
- Quick status change (completing stamps completed_at)

Clients see only tasks where they are the client.
"""

from __future__ import annotations

import logging

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import TASK_STATUSES, Service, Task, Ticket
from ...search import filter_exact, filter_records
from ...security import WRITE, can, permission_required, record_access_required, scope_query
from ...utils import (
    active_clients,
    active_workers,
    form_bool,
    form_str,
    parse_date,
    parse_decimal,
    parse_optional_int,
    safe_next_url,
    valid_profile_id,
    with_current,
)
from ...workflow import WorkflowError, set_task_progress, set_task_status

logger = logging.getLogger(__name__)

tasks_bp = Blueprint("tasks", __name__, url_prefix="/tasks")

SEARCH_FIELDS = (
    "title",
    "description",
    "assigned_worker.first_name",
    "assigned_worker.last_name",
    "client.first_name",
    "client.last_name",
)


def _load_task(task_id: int, **_: object) -> Task:
    return Task.query.get_or_404(task_id)


def _form_context(task: Task | None):
    return {
        "task": task,
        "clients": with_current(active_clients(), task.client if task else None),
        "workers": with_current(active_workers(), task.assigned_worker if task else None),
        "services": with_current(
            Service.query.filter_by(is_active=True).order_by(Service.name.asc()).all(),
            task.service if task else None,
        ),
        "tickets": Ticket.query.order_by(Ticket.created_at.desc()).all(),
        "statuses": TASK_STATUSES,
    }


def _apply_form(task: Task) -> str | None:
    """Copy form fields onto the task. Returns an error message or None."""
    title = form_str("title")
    if not title:
        return "Title is required."

    client_id = parse_optional_int(request.form.get("client_id"))
    if not valid_profile_id(client_id, with_current(active_clients(), task.client)):
        return "Invalid client."

    worker_id = parse_optional_int(request.form.get("assigned_worker_id"))
    if not valid_profile_id(worker_id, with_current(active_workers(), task.assigned_worker)):
        return "Invalid assigned worker."

    service_id = parse_optional_int(request.form.get("service_id"))
    if service_id is not None and db.session.get(Service, service_id) is None:
        return "Invalid service."

    ticket_id = parse_optional_int(request.form.get("ticket_id"))
    if ticket_id is not None and db.session.get(Ticket, ticket_id) is None:
        return "Invalid ticket."

    raw_due = request.form.get("due_date")
    due_date = parse_date(raw_due)
    if raw_due and due_date is None:
        return "Invalid due date."

    try:
        set_task_progress(task, request.form.get("progress"))
        set_task_status(task, request.form.get("status") or task.status or "pending")
    except WorkflowError as exc:
        return str(exc)

    task.title = title
    task.description = form_str("description")
    task.client_id = client_id
    task.assigned_worker_id = worker_id
    task.service_id = service_id
    task.ticket_id = ticket_id
    task.estimated_hours = parse_decimal(request.form.get("estimated_hours"))
    task.hours_worked = parse_decimal(request.form.get("hours_worked"))
    task.is_billable = form_bool("is_billable")
    task.is_internal = form_bool("is_internal")
    task.due_date = due_date
    return None


@tasks_bp.route("/")
@login_required
@permission_required("tasks")
def list_tasks():
    q = (request.args.get("q") or "").strip()
    status = (request.args.get("status") or "all").strip()

    tasks = scope_query(Task.query, Task).order_by(Task.created_at.desc(), Task.id.desc()).all()
    tasks = filter_records(tasks, q, SEARCH_FIELDS)
    tasks = filter_exact(tasks, "status", status)

    return render_template(
        "tasks/list.html",
        tasks=tasks,
        q=q,
        status_filter=status,
        statuses=TASK_STATUSES,
        allow_edit=can("tasks", WRITE),
    )


@tasks_bp.route("/new", methods=["GET", "POST"])
@login_required
@permission_required("tasks", WRITE)
def create_task():
    if request.method == "POST":
        task = Task(status="pending", progress=0)
        error = _apply_form(task)
        if error:
            flash(error, "danger")
            return render_template("tasks/form.html", **_form_context(None)), 400

        try:
            db.session.add(task)
            db.session.flush()
            log_action(task, "CREATE", after=serialize_model(task))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to create task")
            flash("Failed to create task.", "danger")
            return redirect(url_for("tasks.create_task"))

        flash("Task created.", "success")
        return redirect(url_for("tasks.view_task", task_id=task.id))

    return render_template("tasks/form.html", **_form_context(None))


@tasks_bp.route("/<int:task_id>")
@login_required
@permission_required("tasks")
@record_access_required(_load_task)
def view_task(task_id: int):
    task = Task.query.get_or_404(task_id)
    return render_template(
        "tasks/view.html",
        task=task,
        statuses=TASK_STATUSES,
        allow_edit=can("tasks", WRITE),
    )


@tasks_bp.route("/<int:task_id>/edit", methods=["GET", "POST"])
@login_required
@permission_required("tasks", WRITE)
def edit_task(task_id: int):
    task = Task.query.get_or_404(task_id)

    if request.method == "POST":
        before_snapshot = serialize_model(task)

        error = _apply_form(task)
        if error:
            db.session.rollback()
            flash(error, "danger")
            return redirect(url_for("tasks.edit_task", task_id=task_id))

        try:
            db.session.flush()
            log_action(task, "UPDATE", before=before_snapshot, after=serialize_model(task))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to update task %s", task_id)
            flash("Failed to update task.", "danger")
            return redirect(url_for("tasks.edit_task", task_id=task_id))

        flash("Task updated.", "success")
        return redirect(url_for("tasks.view_task", task_id=task.id))

    return render_template("tasks/form.html", **_form_context(task))


@tasks_bp.route("/<int:task_id>/status", methods=["POST"])
@login_required
@permission_required("tasks", WRITE)
def update_status(task_id: int):
    task = Task.query.get_or_404(task_id)
    next_url = safe_next_url(request.form.get("next"), "tasks.list_tasks")
    before_snapshot = serialize_model(task)

    try:
        changed = set_task_status(task, request.form.get("status"))
    except WorkflowError as exc:
        flash(str(exc), "danger")
        return redirect(next_url)

    if not changed:
        return redirect(next_url)

    try:
        db.session.flush()
        log_action(task, "STATUS", before=before_snapshot, after=serialize_model(task))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to update status of task %s", task_id)
        flash("Failed to update task status.", "danger")
        return redirect(next_url)

    flash("Task status updated.", "success")
    return redirect(next_url)
