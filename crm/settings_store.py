"""
crm/settings_store.py

Server-side application settings (company letterhead, invoice defaults,
notifications, user preferences).

Each group is one AppSetting row holding a JSON object.
- load_settings(group): stored values merged over DEFAULTS[group]
- save_settings(group, values): persists only keys known in DEFAULTS[group],
  coerced to the default's type and checked against RANGES

NOTE:
- save_settings adds to the session; the caller commits (same rule as audit).
"""

from __future__ import annotations

import copy
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, Mapping

from .extensions import db
from .models import AppSetting

GROUP_COMPANY = "company"
GROUP_INVOICE = "invoice"
GROUP_NOTIFICATIONS = "notifications"
GROUP_USER = "user"

DEFAULTS: Dict[str, Dict[str, Any]] = {
    GROUP_COMPANY: {
        "company_name": "Vaša Kompanija d.o.o.",
        "address": "Adresa kompanije",
        "city": "Grad",
        "postal_code": "12345",
        "country": "Bosna i Hercegovina",
        "tax_number": "PIB: 123456789",
        "registration_number": "MB: 987654321",
        "phone": "+387 XX XXX XXX",
        "email": "info@vasaKompanija.ba",
        "website": "www.vasaKompanija.ba",
    },
    GROUP_INVOICE: {
        "default_currency": "BAM",
        "default_tax_rate": 17,
        "payment_terms": 30,
        "late_fee_percentage": 5,
        "bank_account": "IBAN: BA39 1234 5678 9012 3456",
        "swift_code": "BANKBAHB",
        "enable_fiscalization": False,
        "fiscal_device": "",
        "certification_path": "",
    },
    GROUP_NOTIFICATIONS: {
        "email_notifications": True,
        "task_reminders": True,
        "invoice_reminders": True,
        "overdue_notifications": True,
        "daily_summary": False,
    },
    GROUP_USER: {
        "theme": "system",
        "language": "sr-RS",
        "timezone": "Europe/Sarajevo",
        "date_format": "dd.MM.yyyy",
        "time_format": "24h",
    },
}

GROUP_LABELS = {
    GROUP_COMPANY: "Company",
    GROUP_INVOICE: "Invoices & fiscalization",
    GROUP_NOTIFICATIONS: "Notifications",
    GROUP_USER: "User preferences",
}

THEMES = ("system", "light", "dark")

# Inclusive bounds for numeric settings.
RANGES: Dict[str, tuple] = {
    "default_tax_rate": (0, 100),
    "late_fee_percentage": (0, 100),
    "payment_terms": (0, 3650),
}


def _check_group(group: str) -> None:
    if group not in DEFAULTS:
        raise KeyError(f"Unknown settings group: {group}")


def _coerce(default: Any, raw: Any) -> Any:
    """Coerce a submitted value to the type of its default."""
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in ("1", "true", "on", "yes")
    if isinstance(default, int):
        try:
            return int(str(raw).strip())
        except (TypeError, ValueError):
            raise ValueError(f"Expected a whole number, got {raw!r}")
    if raw is None:
        return ""
    return str(raw).strip()


def _check_range(key: str, value: Any) -> None:
    if key not in RANGES:
        return
    low, high = RANGES[key]
    if not low <= value <= high:
        raise ValueError(f"{key} must be between {low} and {high}.")


def load_settings(group: str) -> Dict[str, Any]:
    """Stored values merged over defaults (unknown stored keys are dropped)."""
    _check_group(group)
    values = copy.deepcopy(DEFAULTS[group])

    row = AppSetting.query.filter_by(key=group).first()
    if row and isinstance(row.value, dict):
        for key, value in row.value.items():
            if key in values:
                values[key] = value
    return values


def save_settings(group: str, submitted: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Persist a settings group.

    Keys missing from `submitted` keep their current value, except booleans:
    an HTML checkbox that is unchecked is simply absent from the form.
    """
    _check_group(group)
    current = load_settings(group)

    for key, default in DEFAULTS[group].items():
        if key in submitted:
            current[key] = _coerce(default, submitted[key])
            _check_range(key, current[key])
        elif isinstance(default, bool):
            current[key] = False

    row = AppSetting.query.filter_by(key=group).first()
    if row is None:
        row = AppSetting(key=group, value=current)
        db.session.add(row)
    else:
        # JSON columns do not track in-place mutation; assign a new dict.
        row.value = dict(current)
    return current


def seed_default_settings() -> int:
    """Create missing settings rows with defaults. Returns the number of rows created."""
    created = 0
    for group, defaults in DEFAULTS.items():
        if AppSetting.query.filter_by(key=group).first():
            continue
        db.session.add(AppSetting(key=group, value=copy.deepcopy(defaults)))
        created += 1
    db.session.commit()
    return created


# ---------------------------------------------------------------------
# Invoice defaults
# ---------------------------------------------------------------------
def invoice_defaults(today: date | None = None) -> Dict[str, Any]:
    """Currency, tax rate and due date for a new invoice."""
    settings = load_settings(GROUP_INVOICE)
    today = today or date.today()
    return {
        "currency": settings["default_currency"] or "BAM",
        "tax_rate": Decimal(str(settings["default_tax_rate"])),
        "due_date": today + timedelta(days=int(settings["payment_terms"] or 0)),
    }
