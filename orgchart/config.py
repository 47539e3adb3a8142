"""
Application configuration classes.

Each class represents a deployment environment. The factory function
``create_app`` in ``orgchart/__init__.py`` selects the appropriate config
based on the FLASK_ENV environment variable.

Positions and departments are owned by the remote org-structure API;
the local database only stores the audit trail of hierarchy mutations,
so the default connection string is a local SQLite file.
"""

import logging
import os

# Module-level logger for startup warnings emitted by config classes.
_logger = logging.getLogger(__name__)

# Sentinel for detecting unset SECRET_KEY in production.
_DEFAULT_SECRET_KEY = "dev-secret-change-me"


class BaseConfig:
    """
    Shared configuration values inherited by all environments.

    Secrets and connection strings are loaded from environment variables
    so they never appear in source control.
    """

    # -- Flask core --------------------------------------------------------
    SECRET_KEY: str = os.environ.get("SECRET_KEY", _DEFAULT_SECRET_KEY)

    # -- SQLAlchemy --------------------------------------------------------
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "DATABASE_URL", "sqlite:///orgchart.db"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
    SQLALCHEMY_ECHO: bool = False

    # -- Org-structure API -------------------------------------------------
    ORG_API_BASE_URL: str = os.environ.get(
        "ORG_API_BASE_URL", "http://localhost:3000/organization-structure"
    )
    ORG_API_TOKEN: str = os.environ.get("ORG_API_TOKEN", "")

    # Records requested per page when listing departments.
    ORG_API_PAGE_SIZE: int = int(os.environ.get("ORG_API_PAGE_SIZE", "100"))

    # -- Audit log ---------------------------------------------------------
    AUDIT_PAGE_SIZE: int = int(os.environ.get("AUDIT_PAGE_SIZE", "50"))

    # -- Logging -----------------------------------------------------------
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    # =====================================================================
    # Production validation helpers
    # =====================================================================

    @classmethod
    def validate_production_secrets(cls, app_config: dict) -> None:
        """
        Verify that all required settings are present for production.

        Called by ``create_app()`` when ``config_name == 'production'``.
        Raises ``RuntimeError`` for hard requirements and logs warnings
        for soft requirements.

        Args:
            app_config: The ``app.config`` dict after loading the
                        config class.

        Raises:
            RuntimeError: If any critical setting is missing or still
                          set to its insecure default value.
        """
        errors: list[str] = []

        if app_config.get("SECRET_KEY") == _DEFAULT_SECRET_KEY:
            errors.append(
                "SECRET_KEY is still the insecure default. "
                "Generate one with: python -c "
                '"import secrets; print(secrets.token_hex(32))"'
            )

        # The bearer token travels with every request to the API.
        base_url = app_config.get("ORG_API_BASE_URL", "")
        if not base_url.startswith("https://"):
            errors.append(
                f"ORG_API_BASE_URL ({base_url}) must use HTTPS in production."
            )

        if errors:
            combined = "\n  - ".join(errors)
            raise RuntimeError(f"Production configuration errors:\n  - {combined}")

        # -- Soft warnings -------------------------------------------------
        if not app_config.get("ORG_API_TOKEN"):
            _logger.warning(
                "ORG_API_TOKEN is not set; the org-structure API will "
                "likely reject every request."
            )

        if app_config.get("LOG_LEVEL", "").upper() == "DEBUG":
            _logger.warning(
                "LOG_LEVEL=DEBUG is not recommended in production; "
                "API payloads may appear in logs."
            )


class DevelopmentConfig(BaseConfig):
    """Development environment: verbose logging, SQL echo enabled."""

    DEBUG: bool = True
    SQLALCHEMY_ECHO: bool = True
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "DEBUG")


class TestingConfig(BaseConfig):
    """
    Testing environment: in-memory SQLite and a dummy API endpoint.

    Tests replace the API client with an in-memory fake, so the base URL
    is never contacted.
    """

    TESTING: bool = True
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "TEST_DATABASE_URL", "sqlite:///:memory:"
    )
    ORG_API_BASE_URL: str = "http://org-api.test/organization-structure"
    ORG_API_TOKEN: str = "test-token"
    LOG_LEVEL: str = "DEBUG"


class ProductionConfig(BaseConfig):
    """
    Production environment: strict settings, no debug output.

    The application factory calls ``validate_production_secrets()`` at
    startup and refuses to launch if critical values are missing.
    """

    DEBUG: bool = False
    SQLALCHEMY_ECHO: bool = False
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "WARNING")


# Lookup dict used by the application factory.
config_by_name: dict[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}
