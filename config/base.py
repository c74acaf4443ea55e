# config.py
import os
from datetime import timedelta


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value, default, *, minimum=None, maximum=None):
    """
    Parse an integer setting, clamping to optional bounds.

    Returns ``default`` when the value is missing or not a number.
    """
    if value is None or str(value).strip() == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if minimum is not None and number < minimum:
        number = minimum
    if maximum is not None and number > maximum:
        number = maximum
    return number


def _coerce_float(value, default):
    if value is None or str(value).strip() == "":
        return default
    try:
        return float(str(value).strip())
    except ValueError:
        return default


class Config:
    # SECRET_KEY must be set via environment variable for security
    # Generate with: python -c "import secrets; print(secrets.token_hex(32))"
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _is_testing = _flask_env == "testing"
    _is_production = _flask_env == "production"

    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Only require SECRET_KEY in production mode
    if not SECRET_KEY and _is_production:
        raise ValueError(
            "SECRET_KEY environment variable is required in production. "
            'Generate with: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not SECRET_KEY and not _is_testing:
        import warnings

        warnings.warn(
            "SECRET_KEY not set. Using default for development only. "
            "Set SECRET_KEY environment variable before deploying.",
            UserWarning,
        )
        SECRET_KEY = "dev-secret-key-change-in-production"

    if not SECRET_KEY:
        SECRET_KEY = "test-secret-key-placeholder"

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Wicket sync feature flag
    WICKET_SYNC_ENABLED = _coerce_bool(os.environ.get("WICKET_SYNC_ENABLED"), default=True)

    # Wicket API credentials
    WICKET_TENANT = os.environ.get("WICKET_TENANT", "")
    WICKET_API_SECRET_KEY = os.environ.get("WICKET_API_SECRET_KEY", "")
    WICKET_ADMIN_USER_UUID = os.environ.get("WICKET_ADMIN_USER_UUID", "")
    WICKET_STAGING = _coerce_bool(os.environ.get("WICKET_STAGING"), default=False)
    WICKET_SITE_URL = os.environ.get("WICKET_SITE_URL", "http://localhost:5000")
    WICKET_API_TIMEOUT = _coerce_float(os.environ.get("WICKET_API_TIMEOUT"), 30.0)
    WICKET_ORG_PAGE_TIMEOUT = _coerce_float(os.environ.get("WICKET_ORG_PAGE_TIMEOUT"), 60.0)

    # Organization catalog sync
    WICKET_ORG_PAGE_SIZE = _coerce_int(os.environ.get("WICKET_ORG_PAGE_SIZE"), 100, minimum=1, maximum=500)
    WICKET_ORG_MAX_PAGES = _coerce_int(os.environ.get("WICKET_ORG_MAX_PAGES"), 1000, minimum=1)
    WICKET_ORG_MAX_RETRIES = _coerce_int(os.environ.get("WICKET_ORG_MAX_RETRIES"), 3, minimum=0, maximum=10)
    WICKET_ORG_BACKOFF_BASE = _coerce_float(os.environ.get("WICKET_ORG_BACKOFF_BASE"), 1.0)
    WICKET_WEEKLY_SYNC_ENABLED = _coerce_bool(os.environ.get("WICKET_WEEKLY_SYNC_ENABLED"), default=True)

    # Bulk user sync
    WICKET_BULK_BATCH_SIZE = _coerce_int(os.environ.get("WICKET_BULK_BATCH_SIZE"), 10, minimum=1, maximum=200)
    WICKET_BULK_LEASE_SECONDS = _coerce_int(os.environ.get("WICKET_BULK_LEASE_SECONDS"), 300, minimum=30)

    # Celery worker
    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND")
    CELERY_SQLITE_PATH = os.environ.get("CELERY_SQLITE_PATH")
    CELERY_CONFIG = os.environ.get("CELERY_CONFIG")

    # Session configuration
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)
    SESSION_COOKIE_SECURE = False  # Set to True in production with HTTPS
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"


class DevelopmentConfig(Config):
    DEBUG = True
    # Get the project root directory (parent of config directory)
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # SQLite URI format: sqlite:///absolute/path (3 slashes for absolute path)
    db_path_normalized = os.path.join(instance_path, "wicket_sync_dev.db").replace("\\", "/")
    db_uri = f"sqlite:///{db_path_normalized}"

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", db_uri)
    SQLALCHEMY_ECHO = False
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 5,
            }
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {}


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"  # In-memory database for testing
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {
            "check_same_thread": False,
            "timeout": 5,
        }
    }
    WICKET_TENANT = "acme"
    WICKET_API_SECRET_KEY = "test-wicket-secret"
    WICKET_ADMIN_USER_UUID = "00000000-0000-0000-0000-000000000001"
    WICKET_ORG_BACKOFF_BASE = 0.0
    WICKET_WEEKLY_SYNC_ENABLED = False
    CELERY_BROKER_URL = "memory://"
    CELERY_RESULT_BACKEND = "cache+memory://"
    CELERY_CONFIG = {"task_always_eager": True, "task_eager_propagates": True}


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
    SESSION_COOKIE_SECURE = True  # Secure cookies in production
