from .routes import chat_bp  # noqa: F401
