"""
Tickets blueprint package.

Exposes the Blueprint object for app factory registration.
The actual routes and logic are in routes.py.
"""

from .routes import tickets_bp  # noqa: F401
