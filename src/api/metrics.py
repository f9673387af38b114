from prometheus_client import Counter, Histogram, REGISTRY


# we check if they are already registered to avoid errors during hot reloads or test runs
def get_or_create_metric(name, documentation, metric_type, **kwargs):
    try:
        # Try to create it
        return metric_type(name, documentation, **kwargs)
    except ValueError:
        # If it already exists, retrieve it from the registry
        return REGISTRY._names_to_collectors[name]


REQUESTS_TOTAL = get_or_create_metric(
    "astra_requests_total",
    "Total requests",
    Counter,
    labelnames=["endpoint", "status"],
)

REQUEST_LATENCY_SECONDS = get_or_create_metric(
    "astra_request_latency_seconds",
    "Request latency",
    Histogram,
    labelnames=["endpoint"],
)

TASK_MOVES_TOTAL = get_or_create_metric(
    "astra_task_moves_total",
    "Board moves by outcome",
    Counter,
    labelnames=["outcome"],
)

RECONCILIATIONS_TOTAL = get_or_create_metric(
    "astra_reconciliations_total",
    "Board reloads triggered by a failed move",
    Counter,
)

CHAT_MESSAGES_TOTAL = get_or_create_metric(
    "astra_chat_messages_total",
    "Chat messages by reply route",
    Counter,
    labelnames=["route"],
)


def observe(endpoint: str, status: str, started: float, now: float) -> None:
    """Record one request (best-effort)."""
    try:
        REQUESTS_TOTAL.labels(endpoint=endpoint, status=status).inc()
        REQUEST_LATENCY_SECONDS.labels(endpoint=endpoint).observe(now - started)
    except Exception:
        pass
