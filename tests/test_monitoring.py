from flask import Flask

from wicket_sync.sync.metrics import record_connection_sync
from wicket_sync.utils.monitoring import init_monitoring


def test_metrics_endpoint_disabled_by_default(client):
    assert client.get("/metrics").status_code == 404


def test_metrics_endpoint_exposes_sync_counters():
    flask_app = Flask("monitoring-test")
    flask_app.config.update(MONITORING_ENABLED=True, METRICS_ENDPOINT="/internal/metrics")

    assert init_monitoring(flask_app) is True
    assert init_monitoring(flask_app) is True

    record_connection_sync("success")
    response = flask_app.test_client().get("/internal/metrics")

    assert response.status_code == 200
    assert b"wicket_connection_syncs_total" in response.data
