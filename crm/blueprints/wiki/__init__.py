"""Wiki blueprint."""

from .routes import wiki_bp  # noqa: F401
