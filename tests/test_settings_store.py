"""
Tests for the server-side settings store
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from crm.extensions import db
from crm.models import AppSetting
from crm.settings_store import (
    DEFAULTS,
    GROUP_COMPANY,
    GROUP_INVOICE,
    GROUP_NOTIFICATIONS,
    invoice_defaults,
    load_settings,
    save_settings,
    seed_default_settings,
)


def test_defaults_when_nothing_stored(app_ctx):
    settings = load_settings(GROUP_INVOICE)
    assert settings["default_currency"] == "BAM"
    assert settings["default_tax_rate"] == 17
    assert settings["payment_terms"] == 30


def test_unknown_group(app_ctx):
    with pytest.raises(KeyError):
        load_settings("billing")


def test_save_coerces_and_ignores_unknown_keys(app_ctx):
    save_settings(GROUP_INVOICE, {"default_tax_rate": "20", "payment_terms": "14", "hacker": "x"})
    db.session.commit()

    settings = load_settings(GROUP_INVOICE)
    assert settings["default_tax_rate"] == 20
    assert settings["payment_terms"] == 14
    assert "hacker" not in settings

    row = AppSetting.query.filter_by(key=GROUP_INVOICE).one()
    assert "hacker" not in row.value


def test_missing_checkbox_saves_false(app_ctx):
    save_settings(GROUP_NOTIFICATIONS, {"daily_summary": "1"})
    db.session.commit()

    settings = load_settings(GROUP_NOTIFICATIONS)
    assert settings["daily_summary"] is True
    assert settings["email_notifications"] is False


def test_second_save_updates_row(app_ctx):
    save_settings(GROUP_COMPANY, {"company_name": "First"})
    db.session.commit()
    save_settings(GROUP_COMPANY, {"company_name": "Second"})
    db.session.commit()

    assert AppSetting.query.filter_by(key=GROUP_COMPANY).count() == 1
    assert load_settings(GROUP_COMPANY)["company_name"] == "Second"


def test_invalid_number_rejected(app_ctx):
    with pytest.raises(ValueError):
        save_settings(GROUP_INVOICE, {"payment_terms": "soon"})


def test_seed_is_idempotent(app_ctx):
    assert seed_default_settings() == len(DEFAULTS)
    assert seed_default_settings() == 0


def test_invoice_defaults(app_ctx):
    save_settings(GROUP_INVOICE, {"default_currency": "EUR", "default_tax_rate": "21", "payment_terms": "10"})
    db.session.commit()

    today = date(2026, 6, 1)
    defaults = invoice_defaults(today)
    assert defaults["currency"] == "EUR"
    assert defaults["tax_rate"] == Decimal("21")
    assert defaults["due_date"] == today + timedelta(days=10)


@pytest.mark.parametrize("value", ["150", "-1"])
def test_tax_rate_out_of_range_rejected(app_ctx, value):
    with pytest.raises(ValueError):
        save_settings(GROUP_INVOICE, {"default_tax_rate": value})
    db.session.rollback()
    assert load_settings(GROUP_INVOICE)["default_tax_rate"] == 17


def test_range_bounds_are_inclusive(app_ctx):
    save_settings(GROUP_INVOICE, {"default_tax_rate": "100", "late_fee_percentage": "0"})
    db.session.commit()
    assert load_settings(GROUP_INVOICE)["default_tax_rate"] == 100
