# File: metrics.py

from prometheus_client import Counter, Gauge, Histogram

# Endpoint label for requests no route matched (404s, static files)
UNMATCHED_ENDPOINT = "unmatched"

METRICS = {
    "goals_total": Gauge("goals_app_goals_total", "Total count of stored goals"),
    "api_requests": Counter(
        "goals_app_api_requests_total",
        "Total REST API requests",
        ["method", "endpoint", "status"],
    ),
    "request_latency": Histogram(
        "goals_app_request_duration_ms",
        "Time taken to serve a request in milliseconds",
        ["method", "endpoint"],
        buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500),
    ),
    "proxy_requests": Counter(
        "goals_app_proxy_requests_total",
        "Requests forwarded by the frontend to the business logic tier",
        ["method", "status"],
    ),
    "proxy_errors": Counter(
        "goals_app_proxy_errors_total",
        "Forwarded requests that never got an upstream response",
        ["reason"],
    ),
}
