"""Users blueprint."""

from .routes import users_bp  # noqa: F401
