"""
Prometheus metrics blueprint.

Exposes /metrics with per-route HTTP metrics and the sale-engine counters
(sales created, sales reversed by status, stock conflicts).
The endpoint is unauthenticated; restrict it at the network level.
"""
import os
import time

from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share metrics through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    _metric_registry = None
else:
    registry = REGISTRY
    _metric_registry = REGISTRY

# HTTP, labelled by route template (/sales/<int:sale_id>) to bound cardinality
http_requests_total = Counter(
    'pos_http_requests_total',
    'HTTP requests by route and status',
    ['method', 'route', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'pos_http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'route'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

http_requests_in_flight = Gauge(
    'pos_http_requests_in_flight',
    'Requests currently being handled',
    registry=_metric_registry,
    multiprocess_mode='livesum'
)

# Sale engine
sales_created_total = Counter(
    'pos_sales_created_total',
    'Sales committed',
    registry=_metric_registry
)

sales_reversed_total = Counter(
    'pos_sales_reversed_total',
    'Sales moved out of COMPLETED',
    ['status'],
    registry=_metric_registry
)

stock_conflicts_total = Counter(
    'pos_stock_conflicts_total',
    'Stock writes rejected because the precondition no longer held',
    registry=_metric_registry
)


def _route_label():
    rule = request.url_rule
    return rule.rule if rule is not None else 'unmatched'


def setup_metrics_instrumentation(app):
    """Register request hooks that feed the HTTP metrics."""

    @app.before_request
    def start_request_timer():
        g._metrics_started = time.perf_counter()
        http_requests_in_flight.inc()

    @app.after_request
    def record_request_metrics(response):
        started = g.get('_metrics_started')
        if started is None or request.endpoint == 'metrics.metrics':
            return response

        route = _route_label()
        http_request_duration_seconds.labels(method=request.method, route=route).observe(
            time.perf_counter() - started
        )
        http_requests_total.labels(method=request.method, route=route, http_status=response.status_code).inc()
        return response

    @app.teardown_request
    def finish_request(exception=None):
        # Runs even when the response could not be built
        if g.pop('_metrics_started', None) is not None:
            http_requests_in_flight.dec()


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus scrape endpoint (text exposition format)."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
