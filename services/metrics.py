# services/metrics.py
from __future__ import annotations
import os

os.environ.setdefault("PROMETHEUS_DISABLE_CREATED_SERIES", "1")

from prometheus_client import (  # noqa: E402
    Counter, Histogram, CollectorRegistry,
    generate_latest, CONTENT_TYPE_LATEST,
)

# Use a DEDICATED registry so only our app metrics show up
APP_REGISTRY = CollectorRegistry(auto_describe=True)

# --- Generic HTTP metrics (bind to our registry) ---
REQUEST_COUNT = Counter(
    "http_requests_total", "HTTP requests total",
    ["method", "endpoint", "status"], registry=APP_REGISTRY
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds", "Request latency (seconds)",
    ["endpoint", "method"], registry=APP_REGISTRY,
)

# --- Payments / Webhook ---
CHECKOUT_ATTEMPTS = Counter(
    "payments_checkout_total", "Checkout initiations", ["gateway", "outcome"], registry=APP_REGISTRY
)
WEBHOOK_EVENTS = Counter(
    "payments_webhook_events_total", "Webhook events", ["gateway", "outcome"], registry=APP_REGISTRY
)
PAYMENTS_COMPLETED = Counter(
    "payments_completed_total", "Payments transitioned to completed", ["gateway"], registry=APP_REGISTRY
)
LOOKUP_FAILURES = Counter(
    "payments_lookup_failures_total", "Processor payment lookups that did not confirm", ["gateway"], registry=APP_REGISTRY
)


def init_app(app):
    @app.get("/metrics")
    def metrics():
        data = generate_latest(APP_REGISTRY)
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    # --- pre-warm labeled series so dashboards don't say "No data" ---
    for outcome in ("redirect", "failed"):
        CHECKOUT_ATTEMPTS.labels(gateway="MercadoPagoGateway", outcome=outcome).inc(0)
    for outcome in ("invalid_action", "not_live", "invalid_secret", "completed",
                    "duplicate", "lookup_failed"):
        WEBHOOK_EVENTS.labels(gateway="MercadoPagoGateway", outcome=outcome).inc(0)
    PAYMENTS_COMPLETED.labels(gateway="MercadoPagoGateway").inc(0)
    LOOKUP_FAILURES.labels(gateway="MercadoPagoGateway").inc(0)
