"""
Authentication Routes

Provides:
- /auth/login
- /auth/logout
- /auth/register (self sign-up, always as client)
- /auth/seed-admin (first system bootstrap)

Rules:
- Only active profiles with a password may log in.
- Self sign-up never grants worker/admin; an admin promotes users on the Users page.
"""

import logging

from flask import (
    Blueprint,
    render_template,
    redirect,
    url_for,
    flash,
    request,
)
from flask_login import (
    login_user,
    logout_user,
    login_required,
    current_user,
)
from sqlalchemy.exc import SQLAlchemyError

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import Profile, ROLE_ADMIN, ROLE_CLIENT
from ...utils import safe_next_url

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

MIN_PASSWORD_LENGTH = 6


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    """Authenticate a profile by email + password."""

    if current_user.is_authenticated:
        return redirect(url_for("dashboard.index"))

    if request.method == "POST":
        email = (request.form.get("email") or "").strip().lower()
        password = request.form.get("password", "")

        profile = Profile.query.filter_by(email=email).first()

        if not profile or not profile.check_password(password):
            logger.warning("Failed login for %s", email or "<empty>")
            flash("Invalid email or password.", "danger")
            return render_template("auth/login.html"), 401

        if not profile.is_active:
            flash("This account is inactive.", "danger")
            return render_template("auth/login.html"), 403

        login_user(profile)
        logger.info("Profile %s logged in", profile.email)
        flash("Welcome!", "success")

        return redirect(safe_next_url(request.args.get("next"), "dashboard.index"))

    return render_template("auth/login.html")


# ============================================================
# LOGOUT
# ============================================================

@auth_bp.route("/logout", methods=["GET", "POST"])
@login_required
def logout():
    """Log out the current profile."""
    logout_user()
    flash("You have been logged out.", "info")
    return redirect(url_for("auth.login"))


# ============================================================
# REGISTER (self sign-up)
# ============================================================

@auth_bp.route("/register", methods=["GET", "POST"])
def register():
    """Create a client profile that can log in."""
    if current_user.is_authenticated:
        return redirect(url_for("dashboard.index"))

    if request.method == "POST":
        email = (request.form.get("email") or "").strip().lower()
        password = request.form.get("password") or ""
        first_name = (request.form.get("first_name") or "").strip()
        last_name = (request.form.get("last_name") or "").strip()

        if not email or not first_name or not last_name:
            flash("Email, first name and last name are required.", "danger")
            return render_template("auth/register.html"), 400

        if len(password) < MIN_PASSWORD_LENGTH:
            flash(f"Password must have at least {MIN_PASSWORD_LENGTH} characters.", "danger")
            return render_template("auth/register.html"), 400

        if Profile.query.filter_by(email=email).first():
            flash("An account with this email already exists.", "danger")
            return render_template("auth/register.html"), 400

        profile = Profile(
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=ROLE_CLIENT,
            is_active=True,
        )
        profile.set_password(password)

        try:
            db.session.add(profile)
            db.session.flush()
            log_action(profile, "CREATE", after=serialize_model(profile))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Registration failed for %s", email)
            flash("Registration failed.", "danger")
            return render_template("auth/register.html"), 500

        flash("Account created. Please log in.", "success")
        return redirect(url_for("auth.login"))

    return render_template("auth/register.html")


# ============================================================
# SEED FIRST ADMIN (BOOTSTRAP)
# ============================================================

@auth_bp.route("/seed-admin", methods=["GET", "POST"])
def seed_admin():
    """
    Bootstrap the FIRST admin of the system.

    Safety Rules:
    - If ANY profile already exists → block
    """

    if Profile.query.count() > 0:
        flash("The system already has users.", "warning")
        return redirect(url_for("auth.login"))

    if request.method == "POST":
        email = (request.form.get("email") or "").strip().lower()
        password = request.form.get("password", "")

        if not email or not password:
            flash("Email and password are required.", "danger")
            return render_template("auth/seed_admin.html")

        admin = Profile(
            email=email,
            first_name="System",
            last_name="Administrator",
            role=ROLE_ADMIN,
            is_active=True,
        )
        admin.set_password(password)

        db.session.add(admin)
        db.session.commit()
        logger.info("Bootstrap admin %s created", email)

        flash("Admin created. Please log in.", "success")
        return redirect(url_for("auth.login"))

    return render_template("auth/seed_admin.html")
