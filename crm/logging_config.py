"""
Centralized logging configuration.

Console output always; a rotating log file when LOG_FILE is set.
"""
import logging
import logging.handlers
from pathlib import Path


def setup_logging(app):
    """
    Setup application-wide logging with file rotation and console output.

    Args:
        app: Flask application instance
    """
    log_level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    log_format = app.config.get("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    log_file = app.config.get("LOG_FILE") or ""

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers (create_app may run more than once per process, e.g. in tests)
    root_logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(console_handler)

    log_path = None
    if log_file:
        log_dir = Path(app.config.get("LOG_DIR") or "logs")
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / log_file

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        root_logger.addHandler(file_handler)

    # Set specific loggers for third-party libraries
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    app.logger.info("Logging initialized at %s level", logging.getLevelName(log_level))
    if log_path:
        app.logger.info("Log file: %s", log_path)

    return root_logger
