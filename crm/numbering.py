"""
Human-readable document numbers: PREFIX-YYYY-NNNN (e.g. TKT-2026-0007).

The next number is one above the highest existing number of the year. It must be
generated in the same transaction as the insert; the unique constraint on the
number column catches the remaining race (IntegrityError at flush).
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from .extensions import db
from .models import Invoice, Ticket

TICKET_PREFIX = "TKT"
INVOICE_PREFIX = "INV"

SEQUENCE_WIDTH = 4


def format_number(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{sequence:0{SEQUENCE_WIDTH}d}"


def parse_sequence(number: Optional[str]) -> Optional[int]:
    """Sequence part of PREFIX-YYYY-NNNN, or None for anything else."""
    if not number:
        return None
    parts = number.rsplit("-", 1)
    if len(parts) != 2 or not parts[1].isdigit():
        return None
    return int(parts[1])


def next_number(prefix: str, column, today: Optional[date] = None) -> str:
    """
    Next number for `column` (a mapped String column, e.g. Ticket.ticket_number).

    Existing numbers of the year are scanned in Python so that numbers which
    outgrew the zero padding still sort correctly.
    """
    year = (today or date.today()).year
    stem = f"{prefix}-{year}-"

    rows = db.session.query(column).filter(column.like(f"{stem}%")).all()
    highest = 0
    for (number,) in rows:
        seq = parse_sequence(number)
        if seq is not None and seq > highest:
            highest = seq

    return format_number(prefix, year, highest + 1)


def next_ticket_number(today: Optional[date] = None) -> str:
    return next_number(TICKET_PREFIX, Ticket.ticket_number, today)


def next_invoice_number(today: Optional[date] = None) -> str:
    return next_number(INVOICE_PREFIX, Invoice.invoice_number, today)
