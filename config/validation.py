# config/validation.py

"""
Startup validation of the environment a production deployment needs:
Flask secrets, the database, and the Wicket credentials used to sign
API tokens.
"""

import os
import sys
from typing import List, Tuple

WICKET_REQUIRED_ENV_VARS = ("WICKET_TENANT", "WICKET_API_SECRET_KEY", "WICKET_ADMIN_USER_UUID")
PLACEHOLDER_SECRETS = {"your-secret-key", "your_secret_key", "changeme"}
NUMERIC_ENV_VARS = ("WICKET_ORG_PAGE_SIZE", "WICKET_BULK_BATCH_SIZE", "WICKET_BULK_LEASE_SECONDS")


def _flask_errors() -> List[str]:
    errors = []
    secret_key = os.environ.get("SECRET_KEY", "")
    if not secret_key or secret_key in PLACEHOLDER_SECRETS:
        errors.append(
            "SECRET_KEY is required in production and must not be the default value. "
            'Generate a secure key: python -c "import secrets; print(secrets.token_hex(32))"'
        )
    if not os.environ.get("DATABASE_URL"):
        errors.append("DATABASE_URL is required in production. Set it to your PostgreSQL connection string.")
    return errors


def _wicket_errors() -> List[str]:
    """Credential checks only apply while the sync feature is switched on"""
    if os.environ.get("WICKET_SYNC_ENABLED", "true").strip().lower() in {"0", "false", "no", "off"}:
        return []

    errors = [
        f"{name} is required when WICKET_SYNC_ENABLED=true"
        for name in WICKET_REQUIRED_ENV_VARS
        if not os.environ.get(name, "").strip()
    ]

    site_url = os.environ.get("WICKET_SITE_URL", "")
    if site_url and not site_url.startswith(("http://", "https://")):
        errors.append("WICKET_SITE_URL must be an absolute http(s) URL")

    for name in NUMERIC_ENV_VARS:
        value = os.environ.get(name)
        if value is not None and value.strip() and not value.strip().isdigit():
            errors.append(f"{name} must be a positive integer, got '{value}'")
    return errors


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Args:
        flask_env: Flask environment (development, production, testing).
                   If None, reads from FLASK_ENV.

    Returns:
        Tuple of (is_valid, list_of_errors). Non-production environments
        always validate.
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")
    if flask_env != "production":
        return True, []

    errors = _flask_errors() + _wicket_errors()
    return not errors, errors


def validate_and_exit(flask_env: str = None) -> None:
    """Print every validation problem to stderr and exit(1) if there are any."""
    is_valid, errors = validate_environment(flask_env)
    if is_valid:
        return

    banner = "=" * 80
    print(banner, file=sys.stderr)
    print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
    print(banner, file=sys.stderr)
    print("\nThe following environment variables are missing or invalid:\n", file=sys.stderr)
    for i, error in enumerate(errors, 1):
        print(f"{i}. {error}", file=sys.stderr)
    print("\n" + banner, file=sys.stderr)
    print("Please check your .env file or environment variables.", file=sys.stderr)
    print(banner, file=sys.stderr)
    sys.exit(1)
