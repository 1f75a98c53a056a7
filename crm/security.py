"""
crm/security.py

Role-based access control for the CRM.

Key rules:
- UI is never trusted; all permission checks are server-side.
- Roles: admin (full access), worker (tickets/tasks/wiki, no user management),
  client (read-only, own tickets/tasks/invoices, published wiki only).
- POLICIES maps resource -> action -> roles allowed.

This module also provides a global safety net:
- client_readonly_guard() blocks POST/PUT/PATCH/DELETE for clients,
  except an allow-list of self-service endpoints.
  Wire it via app.before_request in app factory.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional, Tuple

from flask import render_template, request
from flask_login import current_user

from .models import ROLE_ADMIN, ROLE_CLIENT, ROLE_WORKER, Invoice, Task, Ticket, WikiArticle

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

READ = "read"
WRITE = "write"

_ALL = frozenset({ROLE_ADMIN, ROLE_WORKER, ROLE_CLIENT})
_STAFF = frozenset({ROLE_ADMIN, ROLE_WORKER})
_ADMIN = frozenset({ROLE_ADMIN})

POLICIES = {
    "dashboard": {READ: _ALL, WRITE: frozenset()},
    "tickets": {READ: _ALL, WRITE: _STAFF},
    "tasks": {READ: _ALL, WRITE: _STAFF},
    "invoices": {READ: _ALL, WRITE: _ADMIN},
    "services": {READ: _ALL, WRITE: _ADMIN},
    "wiki": {READ: _ALL, WRITE: _STAFF},
    "chat": {READ: _ALL, WRITE: _ALL},
    "users": {READ: _ADMIN, WRITE: _ADMIN},
    "workers": {READ: _ADMIN, WRITE: _ADMIN},
    "settings": {READ: _ADMIN, WRITE: _ADMIN},
}

# Models whose rows a client may only see when client_id is their own profile.
CLIENT_OWNED_MODELS = (Ticket, Task, Invoice)

# Mutating endpoints a client may still call.
CLIENT_ALLOWED_MUTATIONS = {"chat.send_message", "auth.logout", "settings.preferences"}


def _forbidden() -> Tuple[str, int]:
    """Render a consistent 403 page."""
    return render_template("errors/403.html"), 403


def effective_role() -> Optional[str]:
    """Role of the signed-in, active profile (None if anonymous or inactive)."""
    if not current_user.is_authenticated:
        return None
    if not getattr(current_user, "is_active", False):
        return None
    role = getattr(current_user, "role", None)
    return role if role in _ALL else None


def can(resource: str, action: str = READ, role: Optional[str] = None) -> bool:
    """Return True if `role` (default: current user's role) may perform action on resource."""
    if role is None:
        role = effective_role()
    if role is None:
        return False
    return role in POLICIES.get(resource, {}).get(action, frozenset())


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return effective_role() == ROLE_ADMIN


def is_client() -> bool:
    return effective_role() == ROLE_CLIENT


def client_readonly_guard() -> Optional[Tuple[str, int]]:
    """
    Global guard: clients cannot mutate data.

    Allow-list for safe self-service mutating endpoints:
    - chat.send_message
    - settings.preferences
    - auth.logout
    """
    if request.method not in MUTATING_METHODS:
        return None

    if effective_role() != ROLE_CLIENT:
        return None

    endpoint = (request.endpoint or "").strip()
    if endpoint in CLIENT_ALLOWED_MUTATIONS:
        return None

    return _forbidden()


def permission_required(resource: str, action: str = READ) -> Callable[..., Any]:
    """
    Decorator factory: require a POLICIES permission.

    Usage:
        @permission_required("tickets", WRITE)
        def create_ticket(): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            if not can(resource, action):
                return _forbidden()
            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_admin():
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper


def scope_query(query, model):
    """
    Restrict a query to the rows the current user may see.

    - Clients: own rows for client-owned models, published wiki articles.
    - Admin/worker: unchanged.
    """
    if effective_role() != ROLE_CLIENT:
        return query
    if model in CLIENT_OWNED_MODELS:
        return query.filter(model.client_id == current_user.id)
    if model is WikiArticle:
        return query.filter(WikiArticle.is_published.is_(True))
    return query


def record_visible(record: Any) -> bool:
    """Single-record counterpart of scope_query()."""
    role = effective_role()
    if role is None:
        return False
    if role != ROLE_CLIENT:
        return True
    if isinstance(record, CLIENT_OWNED_MODELS):
        return record.client_id == current_user.id
    if isinstance(record, WikiArticle):
        return bool(record.is_published)
    return True


def record_access_required(get_record_func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Decorator factory: VIEW permission for one record (client scoping).

    Usage:
        @record_access_required(lambda ticket_id: Ticket.query.get_or_404(ticket_id))
        def view(ticket_id): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            record = get_record_func(**kwargs)
            if not record_visible(record):
                return _forbidden()
            return view_func(*args, **kwargs)

        return wrapper

    return decorator
