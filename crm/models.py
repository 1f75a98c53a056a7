"""
CRM Domain Models

Entities:
- Profile (directory person + login identity, role admin/worker/client)
- Service, Ticket, Task
- Invoice + InvoiceItem (billing)
- ChatMessage, WikiArticle
- AppSetting (key -> JSON settings group)
- AuditLog

IMPORTANT:
- UI is never trusted. Totals are recomputed server-side (Invoice.recalc_totals).
- No entity is hard-deleted by the application; only invoice line items are removable.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from flask_login import UserMixin
from sqlalchemy.types import String, TypeDecorator
from werkzeug.security import check_password_hash, generate_password_hash

from .billing import compute_totals, is_overdue, items_subtotal, line_total, to_decimal
from .extensions import db


# ---------------------------------------------------------------------
# Enumerations (stored as plain strings)
# ---------------------------------------------------------------------
ROLE_ADMIN = "admin"
ROLE_WORKER = "worker"
ROLE_CLIENT = "client"
ROLES = (ROLE_ADMIN, ROLE_WORKER, ROLE_CLIENT)

TICKET_STATUSES = ("open", "in_progress", "closed")
TICKET_PRIORITIES = ("low", "medium", "high", "urgent")
TASK_STATUSES = ("pending", "in_progress", "completed", "cancelled")
INVOICE_STATUSES = ("draft", "sent", "paid", "cancelled")
SERVICE_TYPES = ("hourly", "fixed")

class ExactDecimal(TypeDecorator):
    """Decimal stored as its exact text form (no scale cut, no float round-trip)."""

    impl = String
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(to_decimal(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


# Money, tax rates and quantities are stored at full Decimal precision.
MONEY = ExactDecimal(64)


# ---------------------------------------------------------------------
# Directory & users
# ---------------------------------------------------------------------
class Profile(UserMixin, db.Model):
    """Application user record (admin, worker or client)."""

    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    # Directory-only profiles (e.g. clients added by admin) have no password and cannot log in.
    password_hash = db.Column(db.String(255), nullable=True)

    first_name = db.Column(db.String(120), nullable=False)
    last_name = db.Column(db.String(120), nullable=False)

    role = db.Column(db.String(20), nullable=False, default=ROLE_CLIENT, index=True)

    company = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    position = db.Column(db.String(120), nullable=True)
    hourly_rate = db.Column(MONEY, nullable=True, default=Decimal("0"))

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    theme = db.Column(db.String(20), nullable=True, default="system")

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_worker(self) -> bool:
        return self.role == ROLE_WORKER

    @property
    def is_client(self) -> bool:
        return self.role == ROLE_CLIENT

    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def display_name(self) -> str:
        if self.company:
            return f"{self.full_name()} ({self.company})"
        return self.full_name()

    def __repr__(self):
        return f"<Profile {self.email} ({self.role})>"


class Service(db.Model):
    """Billable service offered to clients."""

    __tablename__ = "services"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(MONEY, nullable=False, default=Decimal("0"))
    service_type = db.Column(db.String(20), nullable=False, default="hourly")

    is_billable = db.Column(db.Boolean, default=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Service {self.name}>"


# ---------------------------------------------------------------------
# Work items
# ---------------------------------------------------------------------
class Ticket(db.Model):
    __tablename__ = "tickets"

    id = db.Column(db.Integer, primary_key=True)

    ticket_number = db.Column(db.String(30), unique=True, nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False, default="open", index=True)
    priority = db.Column(db.String(20), nullable=False, default="medium", index=True)

    client_id = db.Column(db.Integer, db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_worker_id = db.Column(
        db.Integer, db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True
    )
    service_id = db.Column(db.Integer, db.ForeignKey("services.id", ondelete="SET NULL"), nullable=True, index=True)

    is_billable = db.Column(db.Boolean, default=False, nullable=False)
    estimated_hours = db.Column(db.Numeric(8, 2), nullable=True)
    hours_worked = db.Column(db.Numeric(8, 2), nullable=True)

    closed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = db.relationship("Profile", foreign_keys=[client_id])
    assigned_worker = db.relationship("Profile", foreign_keys=[assigned_worker_id])
    service = db.relationship("Service")

    def __repr__(self):
        return f"<Ticket {self.ticket_number}>"


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    # 0-100, independent of status
    progress = db.Column(db.Integer, nullable=False, default=0)

    client_id = db.Column(db.Integer, db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_worker_id = db.Column(
        db.Integer, db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True
    )
    service_id = db.Column(db.Integer, db.ForeignKey("services.id", ondelete="SET NULL"), nullable=True, index=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True, index=True)

    estimated_hours = db.Column(db.Numeric(8, 2), nullable=True)
    hours_worked = db.Column(db.Numeric(8, 2), nullable=True)
    is_billable = db.Column(db.Boolean, default=False, nullable=False)
    is_internal = db.Column(db.Boolean, default=False, nullable=False)

    due_date = db.Column(db.Date, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = db.relationship("Profile", foreign_keys=[client_id])
    assigned_worker = db.relationship("Profile", foreign_keys=[assigned_worker_id])
    service = db.relationship("Service")
    ticket = db.relationship("Ticket", backref=db.backref("tasks", lazy=True))

    def __repr__(self):
        return f"<Task {self.title}>"


# ---------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------
class Invoice(db.Model):
    __tablename__ = "invoices"

    id = db.Column(db.Integer, primary_key=True)

    invoice_number = db.Column(db.String(30), unique=True, nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False, default="draft", index=True)

    subtotal = db.Column(MONEY, nullable=False, default=Decimal("0"))
    tax_rate = db.Column(MONEY, nullable=False, default=Decimal("17"))
    tax_amount = db.Column(MONEY, nullable=False, default=Decimal("0"))
    total_amount = db.Column(MONEY, nullable=False, default=Decimal("0"))
    currency = db.Column(db.String(10), nullable=False, default="BAM")

    due_date = db.Column(db.Date, nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = db.relationship("Profile", foreign_keys=[client_id])

    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )

    def recalc_totals(self):
        """
        Recompute subtotal (from line items, when present), tax and total.

        Raises BillingError for a negative subtotal or a tax rate outside 0-100.
        """
        if self.items:
            for item in self.items:
                item.recalc_total()
            self.subtotal = items_subtotal(self.items)

        totals = compute_totals(self.subtotal, self.tax_rate)
        self.subtotal = totals.subtotal
        self.tax_rate = totals.tax_rate
        self.tax_amount = totals.tax_amount
        self.total_amount = totals.total_amount
        return totals

    def is_overdue(self, today: date | None = None) -> bool:
        return is_overdue(self.due_date, self.status, today or date.today())

    def __repr__(self):
        return f"<Invoice {self.invoice_number}>"


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"

    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)

    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(MONEY, nullable=False, default=Decimal("1"))
    unit_price = db.Column(MONEY, nullable=False, default=Decimal("0"))
    total_price = db.Column(MONEY, nullable=False, default=Decimal("0"))

    service_id = db.Column(db.Integer, db.ForeignKey("services.id", ondelete="SET NULL"), nullable=True)
    task_id = db.Column(db.Integer, db.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    invoice = db.relationship("Invoice", back_populates="items")
    service = db.relationship("Service")

    def recalc_total(self):
        self.total_price = line_total(self.quantity, self.unit_price)
        return self.total_price


# ---------------------------------------------------------------------
# Messaging & knowledge base
# ---------------------------------------------------------------------
class ChatMessage(db.Model):
    __tablename__ = "chat_messages"

    id = db.Column(db.Integer, primary_key=True)

    sender_id = db.Column(db.Integer, db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    # NULL receiver => group (broadcast) message
    receiver_id = db.Column(db.Integer, db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)

    message = db.Column(db.Text, nullable=False)
    is_group_message = db.Column(db.Boolean, default=False, nullable=False, index=True)

    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True)
    task_id = db.Column(db.Integer, db.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    sender = db.relationship("Profile", foreign_keys=[sender_id])
    receiver = db.relationship("Profile", foreign_keys=[receiver_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "sender": self.sender.full_name() if self.sender else None,
            "receiver_id": self.receiver_id,
            "receiver": self.receiver.full_name() if self.receiver else None,
            "message": self.message,
            "is_group_message": self.is_group_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class WikiArticle(db.Model):
    __tablename__ = "wiki_articles"

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(255), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(120), nullable=True, index=True)
    is_published = db.Column(db.Boolean, default=False, nullable=False, index=True)

    author_id = db.Column(db.Integer, db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)

    author = db.relationship("Profile")


# ---------------------------------------------------------------------
# Settings & audit
# ---------------------------------------------------------------------
class AppSetting(db.Model):
    """One settings group (company, invoice, notifications, user) stored as JSON."""

    __tablename__ = "app_settings"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(80), unique=True, nullable=False, index=True)
    value = db.Column(db.JSON, nullable=False, default=dict)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AuditLog(db.Model):
    """Audit trail of mutations."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    email_snapshot = db.Column(db.String(255), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    profile = db.relationship("Profile", backref=db.backref("audit_entries", lazy=True))
