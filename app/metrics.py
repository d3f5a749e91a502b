from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path", "status"],
)

BILLS_GENERATED = Counter(
    "billing_bills_generated_total",
    "Bills created by generation runs",
)
BILL_GENERATION_FAILURES = Counter(
    "billing_bill_generation_failures_total",
    "Per-customer bill creation failures",
    ["code"],
)
GENERATION_DURATION = Histogram(
    "billing_generation_duration_seconds",
    "Duration of a bill generation run",
)
PAYMENTS_RECORDED = Counter(
    "billing_payments_recorded_total",
    "Payments applied to bills",
    ["method"],
)
PAYMENTS_REJECTED = Counter(
    "billing_payments_rejected_total",
    "Payments rejected before being applied",
    ["code"],
)
SEQUENCE_COLLISIONS = Counter(
    "billing_sequence_collisions_total",
    "Unique-constraint collisions while allocating document numbers",
    ["prefix"],
)
NOTIFICATIONS_SENT = Counter(
    "billing_notifications_total",
    "Outbound billing notifications",
    ["kind", "result"],
)


def observe_request(method: str, path: str, status: str, duration: float) -> None:
    REQUEST_COUNT.labels(method=method, path=path, status=status).inc()
    REQUEST_LATENCY.labels(method=method, path=path, status=status).observe(duration)
