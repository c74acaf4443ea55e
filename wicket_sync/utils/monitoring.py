# wicket_sync/utils/monitoring.py

"""
Prometheus exposition for the sync counters recorded in wicket_sync.sync.metrics
"""

from flask import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest


def metrics_view():
    return Response(generate_latest(REGISTRY), mimetype=CONTENT_TYPE_LATEST)


def init_monitoring(app):
    """Expose the metrics endpoint when MONITORING_ENABLED is set"""
    if not app.config.get("MONITORING_ENABLED", False):
        app.logger.debug("Monitoring disabled; metrics endpoint not registered")
        return False

    endpoint = app.config.get("METRICS_ENDPOINT", "/metrics")
    if "wicket_metrics" not in app.view_functions:
        app.add_url_rule(endpoint, endpoint="wicket_metrics", view_func=metrics_view, methods=["GET"])
    app.logger.info(f"Prometheus metrics exposed at {endpoint}")
    return True
