"""
Prometheus metrics for the storefront API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Outcome counters for registration, theme activation, WhatsApp traffic
  and message-list reads

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# result: created, rejected, validation_error, error
registrations_total = Counter(
    "registrations_total",
    "Registration outcomes",
    labelnames=["result"]
)

# result: activated, not_found, failed, partial
theme_activations_total = Counter(
    "theme_activations_total",
    "Theme activation outcomes",
    labelnames=["result"]
)

# direction: incoming, outgoing; result: sent, recorded, duplicate, failed, record_failed
whatsapp_messages_total = Counter(
    "whatsapp_messages_total",
    "WhatsApp message outcomes",
    labelnames=["direction", "result"]
)

# result: ok, degraded
message_list_reads_total = Counter(
    "message_list_reads_total",
    "Message list reads by outcome",
    labelnames=["result"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    # Normalize path to avoid high-cardinality labels
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_registration(result: str) -> None:
    registrations_total.labels(result=result).inc()


def record_theme_activation(result: str) -> None:
    theme_activations_total.labels(result=result).inc()


def record_whatsapp_message(direction: str, result: str) -> None:
    whatsapp_messages_total.labels(direction=direction, result=result).inc()


def record_message_list_read(degraded: bool) -> None:
    message_list_reads_total.labels(result="degraded" if degraded else "ok").inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
