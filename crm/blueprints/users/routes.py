"""
User Management (Admin Only).

Rules enforced:
- Every person in the system is a Profile (admin, worker or client).
- Profiles created here without a password are directory-only (cannot log in).
- An admin cannot demote or deactivate their own profile.
- UI never trusted: we validate server-side.

Audit:
- CREATE / UPDATE logged
"""

import logging

from flask import (
    Blueprint,
    render_template,
    request,
    redirect,
    url_for,
    flash,
)
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import Profile, ROLES, ROLE_ADMIN, ROLE_CLIENT
from ...search import filter_exact, filter_records
from ...security import WRITE, permission_required
from ...utils import form_bool, form_str, parse_decimal

logger = logging.getLogger(__name__)

users_bp = Blueprint(
    "users",
    __name__,
    url_prefix="/users",
)

SEARCH_FIELDS = ("first_name", "last_name", "email", "company")

MIN_PASSWORD_LENGTH = 6


def apply_profile_form(profile: Profile, allowed_roles) -> str | None:
    """
    Copy the shared profile form onto `profile`.

    Used by the users and workers pages. Returns an error message or None.
    Password is only changed when a new one is submitted.
    """
    email = (request.form.get("email") or "").strip().lower()
    first_name = form_str("first_name")
    last_name = form_str("last_name")
    role = form_str("role") or profile.role or allowed_roles[0]
    password = request.form.get("password") or ""

    if not email or not first_name or not last_name:
        return "Email, first name and last name are required."

    if role not in allowed_roles:
        return "Invalid role."

    existing = Profile.query.filter_by(email=email).first()
    if existing is not None and existing.id != profile.id:
        return "A profile with this email already exists."

    if password and len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must have at least {MIN_PASSWORD_LENGTH} characters."

    raw_rate = request.form.get("hourly_rate")
    hourly_rate = parse_decimal(raw_rate)
    if (raw_rate or "").strip() and (hourly_rate is None or hourly_rate < 0):
        return "Invalid hourly rate."

    is_active = form_bool("is_active") if profile.id is not None else True

    # Self-protection: an admin must not lock themselves out.
    if profile.id is not None and profile.id == current_user.id:
        if role != ROLE_ADMIN or not is_active:
            return "You cannot remove your own admin role or deactivate yourself."

    profile.email = email
    profile.first_name = first_name
    profile.last_name = last_name
    profile.role = role
    profile.company = form_str("company")
    profile.phone = form_str("phone")
    profile.position = form_str("position")
    profile.hourly_rate = hourly_rate
    profile.is_active = is_active

    if password:
        profile.set_password(password)
    return None


# ---------------------------------------------------------------------
# LIST USERS
# ---------------------------------------------------------------------

@users_bp.route("/")
@login_required
@permission_required("users")
def list_users():
    """Admin view: list all profiles with search + role filter."""
    q = (request.args.get("q") or "").strip()
    role = (request.args.get("role") or "all").strip()

    users = Profile.query.order_by(Profile.last_name.asc(), Profile.first_name.asc()).all()
    users = filter_records(users, q, SEARCH_FIELDS)
    users = filter_exact(users, "role", role)

    return render_template(
        "users/list.html",
        users=users,
        q=q,
        role_filter=role,
        roles=ROLES,
    )


# ---------------------------------------------------------------------
# CREATE USER
# ---------------------------------------------------------------------

@users_bp.route("/new", methods=["GET", "POST"])
@login_required
@permission_required("users", WRITE)
def create_user():
    """Create a profile (any role). Without a password it is directory-only."""
    if request.method == "POST":
        profile = Profile(role=ROLE_CLIENT)
        error = apply_profile_form(profile, ROLES)
        if error:
            flash(error, "danger")
            return render_template("users/form.html", user=None, roles=ROLES), 400

        try:
            db.session.add(profile)
            db.session.flush()
            log_action(profile, "CREATE", after=serialize_model(profile))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to create profile %s", profile.email)
            flash("Failed to create user.", "danger")
            return redirect(url_for("users.create_user"))

        flash("User created.", "success")
        return redirect(url_for("users.list_users"))

    return render_template("users/form.html", user=None, roles=ROLES)


# ---------------------------------------------------------------------
# EDIT USER
# ---------------------------------------------------------------------

@users_bp.route("/<int:user_id>/edit", methods=["GET", "POST"])
@login_required
@permission_required("users", WRITE)
def edit_user(user_id):
    """
    Edit an existing profile.

    Admin can:
    - change names, contact data, role, hourly rate
    - activate/deactivate
    - reset password
    """
    user = Profile.query.get_or_404(user_id)

    if request.method == "POST":
        before_snapshot = serialize_model(user)

        error = apply_profile_form(user, ROLES)
        if error:
            db.session.rollback()
            flash(error, "danger")
            return redirect(url_for("users.edit_user", user_id=user_id))

        try:
            db.session.flush()
            log_action(user, "UPDATE", before=before_snapshot, after=serialize_model(user))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to update profile %s", user_id)
            flash("Failed to update user.", "danger")
            return redirect(url_for("users.edit_user", user_id=user_id))

        flash("User updated.", "success")
        return redirect(url_for("users.list_users"))

    return render_template("users/form.html", user=user, roles=ROLES)
