"""
Prometheus metrics for the storefront: request traffic plus pricing engine counters.

Under Gunicorn set PROMETHEUS_MULTIPROC_DIR so every worker's samples are
aggregated on scrape. /metrics is unauthenticated; keep it off the public network.
"""
import os
import time

from flask import Blueprint, Response, g, request
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, Counter, Histogram
from prometheus_client import generate_latest, multiprocess

metrics_bp = Blueprint('metrics', __name__)

MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

# Metric objects register nowhere in multiprocess mode; samples go to files
_metric_registry = None if MULTIPROCESS_MODE else REGISTRY

http_requests_total = Counter(
    'http_requests_total', 'HTTP responses by endpoint and status',
    ['method', 'endpoint', 'http_status'], registry=_metric_registry
)
http_request_duration_seconds = Histogram(
    'http_request_duration_seconds', 'Time spent serving a request',
    ['endpoint'], registry=_metric_registry
)

orders_created_total = Counter(
    'orders_created_total', 'Orders persisted with a committed pricing breakdown',
    registry=_metric_registry
)
pricing_calculations_total = Counter(
    'pricing_calculations_total', 'Pricing engine runs',
    ['mode'],  # preview | commit | reprice
    registry=_metric_registry
)
coupon_rejections_total = Counter(
    'coupon_rejections_total', 'Coupon codes rejected by the pricing engine',
    ['kind'], registry=_metric_registry
)


def _scrape_registry():
    if not MULTIPROCESS_MODE:
        return REGISTRY
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    return registry


def setup_metrics_instrumentation(app):
    """Time every request and count responses by endpoint."""

    @app.before_request
    def _start_timer():
        g._request_started = time.perf_counter()

    @app.after_request
    def _record_request(response):
        started = g.pop('_request_started', None)
        if started is not None:
            endpoint = request.endpoint or 'unknown'
            http_request_duration_seconds.labels(endpoint=endpoint).observe(time.perf_counter() - started)
            http_requests_total.labels(
                method=request.method, endpoint=endpoint, http_status=response.status_code
            ).inc()
        return response


@metrics_bp.route('/metrics')
def metrics():
    return Response(generate_latest(_scrape_registry()), mimetype=CONTENT_TYPE_LATEST)
