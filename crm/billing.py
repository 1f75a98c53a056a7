"""
crm/billing.py

Invoice billing computation.

Rules:
- tax_amount = subtotal * tax_rate / 100
- total_amount = subtotal + tax_amount
- Values are computed and stored at full Decimal precision.
  Rounding to two decimals happens for display only (format_money).
- Currency is a label copied from settings. It is never converted.

IMPORTANT:
- The form is never trusted for tax/total. Invoice.recalc_totals() calls
  compute_totals() on every write.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

HUNDRED = Decimal("100")
ZERO = Decimal("0")
CENT = Decimal("0.01")
# Amounts, rates and quantities must stay strictly below this magnitude.
MAX_AMOUNT = Decimal("1000000000000")


class BillingError(ValueError):
    """Raised for billing inputs outside their allowed range."""


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Convert Numeric/float/str/None to Decimal.

    NaN, Infinity and amounts of MAX_AMOUNT or more raise BillingError.

    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.
    """
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip().replace(",", "."))
        except (InvalidOperation, ValueError) as exc:
            raise BillingError(f"Invalid amount: {value!r}") from exc
    return _bounded(result)


def is_valid_amount(value: Decimal) -> bool:
    """Finite and below MAX_AMOUNT in magnitude."""
    return value.is_finite() and abs(value) < MAX_AMOUNT


def _bounded(value: Decimal) -> Decimal:
    if not value.is_finite():
        raise BillingError(f"Invalid amount: {value}")
    if abs(value) >= MAX_AMOUNT:
        raise BillingError("Amount is too large.")
    return value


def compute_totals(subtotal: Any, tax_rate: Any) -> InvoiceTotals:
    """
    Compute tax amount and total from a subtotal and a percent tax rate.

    >>> compute_totals(1000, 17).total_amount
    Decimal('1170')
    """
    base = to_decimal(subtotal)
    rate = to_decimal(tax_rate)

    if base < ZERO:
        raise BillingError("Subtotal must not be negative.")
    if rate < ZERO or rate > HUNDRED:
        raise BillingError("Tax rate must be between 0 and 100.")

    tax_amount = base * rate / HUNDRED
    return InvoiceTotals(
        subtotal=base,
        tax_rate=rate,
        tax_amount=tax_amount,
        total_amount=_bounded(base + tax_amount),
    )


def line_total(quantity: Any, unit_price: Any) -> Decimal:
    """Total of one invoice line (quantity * unit_price)."""
    qty = to_decimal(quantity)
    price = to_decimal(unit_price)
    if qty < ZERO or price < ZERO:
        raise BillingError("Quantity and unit price must not be negative.")
    return _bounded(qty * price)


def items_subtotal(items: Iterable[Any]) -> Decimal:
    """Sum of line totals for objects exposing quantity and unit_price."""
    total = ZERO
    for item in items:
        total += line_total(item.quantity, item.unit_price)
    return _bounded(total)


def round_money(amount: Any) -> Decimal:
    # Sums (dashboard revenue) may exceed MAX_AMOUNT; only parse non-Decimals.
    value = amount if isinstance(amount, Decimal) else to_decimal(amount)
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount: Any, currency: Optional[str] = None) -> str:
    """Display an amount with two decimals and an optional currency label."""
    text = f"{round_money(amount):,.2f}"
    return f"{text} {currency}" if currency else text


def is_overdue(due_date: Any, status: Optional[str], today: date) -> bool:
    """
    Overdue is computed, never stored: due date in the past and the invoice
    neither paid nor cancelled.
    """
    if due_date is None or status in ("paid", "cancelled"):
        return False
    if isinstance(due_date, datetime):
        due_date = due_date.date()
    return due_date < today
