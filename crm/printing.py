"""
Printable invoice document.

The document is a standalone HTML page (no app chrome) that the browser prints
to paper or PDF. Letterhead and bank data come from the settings store.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from flask import render_template

from .billing import format_money, to_decimal
from .settings_store import GROUP_COMPANY, GROUP_INVOICE, load_settings


def document_lines(invoice: Any) -> List[Dict[str, Any]]:
    """Line items for the document; a single subtotal line when the invoice has none."""
    if invoice.items:
        return [
            {
                "description": item.description,
                "quantity": to_decimal(item.quantity),
                "unit_price": to_decimal(item.unit_price),
                "total": to_decimal(item.total_price),
            }
            for item in invoice.items
        ]
    return [
        {
            "description": (invoice.notes or "").strip() or "Services rendered",
            "quantity": to_decimal(1),
            "unit_price": to_decimal(invoice.subtotal),
            "total": to_decimal(invoice.subtotal),
        }
    ]


def render_invoice_document(invoice: Any, auto_print: bool = True, today: Optional[date] = None) -> str:
    """Render the invoice as a print-ready HTML document."""
    return render_template(
        "invoices/print.html",
        invoice=invoice,
        lines=document_lines(invoice),
        company=load_settings(GROUP_COMPANY),
        invoice_settings=load_settings(GROUP_INVOICE),
        money=lambda amount: format_money(amount, invoice.currency),
        auto_print=auto_print,
        issued_on=(invoice.created_at.date() if invoice.created_at else (today or date.today())),
    )
