"""
Application configuration.
This module defines the configuration settings for the Flask application, including database connection, secret key,
logging and other settings. It uses environment variables for sensitive information and defaults for development. In
production, make sure to set the appropriate environment variables and secure the secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'crm.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection for forms
    WTF_CSRF_ENABLED = True

    # Logging (empty LOG_FILE disables the rotating file handler)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE = os.environ.get("LOG_FILE", "crm.log")
    LOG_DIR = os.environ.get("LOG_DIR", str(BASE_DIR / "logs"))

    # App UI name (used in templates)
    APP_NAME = os.environ.get("APP_NAME", "Business CRM")


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = "DEBUG"


class TestingConfig(Config):
    """Testing configuration: in-memory database, no CSRF, console logging only."""
    DEBUG = True
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    LOG_FILE = ""
    LOG_LEVEL = "WARNING"


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    PREFERRED_URL_SCHEME = "https"

    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config():
    """Return the config class selected by FLASK_ENV (development if unset)."""
    env = os.environ.get("FLASK_ENV", "development")
    return config_by_name.get(env, config_by_name["default"])
