from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter("request_count", "Total requests", ["method", "endpoint"])
REQUEST_LATENCY = Histogram(
    "request_latency_seconds", "Request latency", ["endpoint"]
)
WORKFLOW_TRANSITIONS = Counter(
    "workflow_transitions_total", "Committed content workflow transitions", ["kind", "action"]
)
NOTIFICATIONS_CREATED = Counter(
    "notifications_created_total", "Notification rows inserted by fan-out", ["type"]
)
