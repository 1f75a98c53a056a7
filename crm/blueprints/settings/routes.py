"""
crm/blueprints/settings/routes.py

Settings routes.

Scope:
- Application settings (admin-only): company letterhead, invoice defaults and
  fiscalization, notifications, user preference defaults.
  One form per group; each group is stored as one AppSetting row.
- Personal preferences (all logged-in users): theme.

SECURITY:
- UI is never trusted. All permissions are enforced here server-side.
- settings.preferences is on the client mutation allow-list (see crm/security.py).

AUDIT:
- Settings group updates are audited via crm/audit.py.
"""

from __future__ import annotations

import logging

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import AppSetting
from ...security import WRITE, permission_required
from ...settings_store import DEFAULTS, GROUP_LABELS, THEMES, load_settings, save_settings

logger = logging.getLogger(__name__)

settings_bp = Blueprint("settings", __name__, url_prefix="/settings")


# ----------------------------------------------------------------------
# APPLICATION SETTINGS (admin-only)
# ----------------------------------------------------------------------
@settings_bp.route("/", methods=["GET"])
@login_required
@permission_required("settings")
def index():
    groups = {group: load_settings(group) for group in DEFAULTS}
    return render_template(
        "settings/index.html",
        groups=groups,
        group_labels=GROUP_LABELS,
        defaults=DEFAULTS,
        themes=THEMES,
    )


@settings_bp.route("/groups/<group>", methods=["POST"])
@login_required
@permission_required("settings", WRITE)
def save_group(group: str):
    """Save one settings group (form fields named after the group's keys)."""
    if group not in DEFAULTS:
        flash("Unknown settings group.", "danger")
        return redirect(url_for("settings.index"))

    before_row = AppSetting.query.filter_by(key=group).first()
    before_snapshot = serialize_model(before_row) if before_row else None

    try:
        save_settings(group, request.form)
    except ValueError as exc:
        db.session.rollback()
        flash(str(exc), "danger")
        return redirect(url_for("settings.index"))

    try:
        db.session.flush()
        row = AppSetting.query.filter_by(key=group).first()
        log_action(row, "UPDATE", before=before_snapshot, after=serialize_model(row))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to save settings group %s", group)
        flash("Failed to save settings.", "danger")
        return redirect(url_for("settings.index"))

    flash(f"{GROUP_LABELS[group]} settings saved.", "success")
    return redirect(url_for("settings.index"))


# ----------------------------------------------------------------------
# PERSONAL PREFERENCES (all users)
# ----------------------------------------------------------------------
@settings_bp.route("/preferences", methods=["GET", "POST"])
@login_required
def preferences():
    """Allow any logged-in user to select their theme."""
    if request.method == "POST":
        selected = request.form.get("theme")
        if selected not in THEMES:
            flash("Invalid theme.", "danger")
            return redirect(url_for("settings.preferences"))

        try:
            current_user.theme = selected
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to save theme for %s", current_user.id)
            flash("Failed to save preferences.", "danger")
            return redirect(url_for("settings.preferences"))

        flash("Theme updated.", "success")
        return redirect(url_for("settings.preferences"))

    return render_template("settings/preferences.html", themes=THEMES)
