"""Workers blueprint."""

from .routes import workers_bp  # noqa: F401
