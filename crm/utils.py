"""
Utility functions shared across the blueprints. This includes:
- form parsing helpers (optional int / decimal / date / bool / text)
- profile dropdown queries (clients, workers)
- safe next= redirects
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import urlparse

from flask import request, url_for

from .billing import is_valid_amount
from .models import ROLE_ADMIN, ROLE_CLIENT, ROLE_WORKER, Profile


# ---------------------------------------------------------------------
# Form parsing
# ---------------------------------------------------------------------
def form_str(name: str) -> Optional[str]:
    """Stripped form value, None if empty."""
    return (request.form.get(name) or "").strip() or None


def form_bool(name: str) -> bool:
    """Checkbox value (absent when unchecked)."""
    return bool(request.form.get(name))


def parse_optional_int(value: Optional[str]) -> Optional[int]:
    """Parse optional int from form/query. Returns None if empty/invalid."""
    if value is None:
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse decimal from user input (accepts comma or dot).

    None if empty, invalid, NaN/Infinity or too large to store (see billing.MAX_AMOUNT).
    """
    if value is None:
        return None
    raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        value = Decimal(raw)
    except (InvalidOperation, ValueError):
        return None
    return value if is_valid_amount(value) else None


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse an ISO date (YYYY-MM-DD, time part ignored). None if empty/invalid."""
    if not value:
        return None
    raw = str(value).strip().split("T")[0]
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        return None


# ---------------------------------------------------------------------
# Dropdown data
# ---------------------------------------------------------------------
def active_clients():
    return (
        Profile.query.filter_by(role=ROLE_CLIENT, is_active=True)
        .order_by(Profile.first_name.asc(), Profile.last_name.asc())
        .all()
    )


def active_workers():
    """Profiles that can be assigned work (workers and admins)."""
    return (
        Profile.query.filter(Profile.role.in_((ROLE_ADMIN, ROLE_WORKER)), Profile.is_active.is_(True))
        .order_by(Profile.first_name.asc(), Profile.last_name.asc())
        .all()
    )


def with_current(choices, current):
    """
    Dropdown choices plus the record's current value when it is no longer offered
    (e.g. a deactivated client), so re-saving a form keeps the existing link.
    """
    if current is None or current.id in {c.id for c in choices}:
        return choices
    return [current] + list(choices)


def valid_profile_id(profile_id: Optional[int], candidates) -> bool:
    """True if profile_id is None or among the candidate profiles (forged ids are rejected)."""
    if profile_id is None:
        return True
    return profile_id in {p.id for p in candidates}


# ---------------------------------------------------------------------
# Redirects
# ---------------------------------------------------------------------
def safe_next_url(raw_next: Optional[str], fallback_endpoint: str) -> str:
    """
    Return a safe local next URL.

    Rules:
    - Only allow relative URLs (no scheme/netloc).
    - Fall back to an internal endpoint if invalid/empty.
    """
    if not raw_next:
        return url_for(fallback_endpoint)

    parsed = urlparse(raw_next)
    if parsed.scheme or parsed.netloc or not raw_next.startswith("/") or raw_next.startswith("//"):
        return url_for(fallback_endpoint)

    return raw_next
