# app.py

import logging
import os

from dotenv import load_dotenv
from flask import Flask, current_app, jsonify
from flask_login import LoginManager
from sqlalchemy import event

# .env must be loaded before config classes read os.environ
load_dotenv()

from config import DevelopmentConfig, ProductionConfig, TestingConfig  # noqa: E402
from config.monitoring import (  # noqa: E402
    DevelopmentMonitoringConfig,
    ProductionMonitoringConfig,
    TestingMonitoringConfig,
)
from config.validation import validate_and_exit  # noqa: E402
from wicket_sync.models import User, db  # noqa: E402
from wicket_sync.routes import init_routes  # noqa: E402
from wicket_sync.sync import init_wicket_sync  # noqa: E402
from wicket_sync.utils.logging_config import setup_logging  # noqa: E402
from wicket_sync.utils.monitoring import init_monitoring  # noqa: E402

logger = logging.getLogger(__name__)

CONFIG_BY_ENV = {
    "production": (ProductionConfig, ProductionMonitoringConfig),
    "testing": (TestingConfig, TestingMonitoringConfig),
    "development": (DevelopmentConfig, DevelopmentMonitoringConfig),
}

flask_env = os.environ.get("FLASK_ENV", "development")
if flask_env == "production":
    validate_and_exit(flask_env)

app = Flask(__name__)
for config_object in CONFIG_BY_ENV.get(flask_env, CONFIG_BY_ENV["development"]):
    app.config.from_object(config_object)

db.init_app(app)
login_manager = LoginManager()
login_manager.init_app(app)
app.extensions["login_manager"] = login_manager

setup_logging(app)
init_monitoring(app)


@login_manager.unauthorized_handler
def unauthorized():
    # API-only service: no login view to redirect to
    return jsonify({"success": False, "error": "Authentication required."}), 401


@login_manager.user_loader
def load_user(user_id):
    try:
        return db.session.get(User, int(user_id))
    except (ValueError, TypeError):
        return None
    except Exception as e:
        current_app.logger.error(f"Error loading user {user_id}: {str(e)}")
        return None


def _sqlite_pragma_hook(*, enable_foreign_keys: bool):
    """Connection hook so the web process and the Celery worker can share one SQLite file."""

    def _apply(dbapi_connection, connection_record):  # pragma: no cover - instrumentation
        try:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            if enable_foreign_keys:
                cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
        except Exception as exc:
            logger.warning("Failed to apply SQLite PRAGMAs: %s", exc)

    return _apply


with app.app_context():
    engine = db.engine
    if engine.url.drivername.startswith("sqlite") and not getattr(engine, "_wicket_pragmas", False):
        event.listen(engine, "connect", _sqlite_pragma_hook(enable_foreign_keys=not app.config.get("TESTING")))
        engine._wicket_pragmas = True  # type: ignore[attr-defined]
    # Tests build and drop their own schema per test
    if not app.config.get("TESTING", False):
        db.create_all()

init_wicket_sync(app)
init_routes(app)


@app.errorhandler(404)
def not_found_error(error):
    return jsonify({"success": False, "error": "Not found"}), 404


@app.errorhandler(500)
def internal_error(error):
    db.session.rollback()
    return jsonify({"success": False, "error": "Internal server error"}), 500


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port)
