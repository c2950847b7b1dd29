"""
Metrics definitions for Sovereign Skies.

This module defines Prometheus metrics for monitoring
the alert fetch / normalize / match pipeline.
"""

from prometheus_client import Counter, Histogram, Gauge

# 카운터 메트릭
alerts_received = Counter(
    "alerts_received_total",
    "Number of raw alerts parsed from an upstream feed",
    ["source"]
)

alerts_valid = Counter(
    "alerts_valid_total",
    "Number of alerts that survived normalization, by unified severity",
    ["severity"]
)

batch_item_failures = Counter(
    "batch_item_failures_total",
    "Number of items dropped by the safe batch processor",
    ["context"]
)

fetch_retries = Counter(
    "fetch_retries_total",
    "Upstream fetch retries",
    ["context"]
)

circuit_rejections = Counter(
    "circuit_breaker_rejections_total",
    "Calls rejected because the dependency circuit was open",
    ["dependency"]
)

poll_failures = Counter(
    "poll_failures_total",
    "Feed failures per poll cycle (source=all when the whole cycle failed)",
    ["source"]
)

# 히스토그램 메트릭
poll_seconds = Histogram(
    "poll_cycle_duration_seconds",
    "Total poll cycle latency",
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0]
)

match_seconds = Histogram(
    "match_duration_seconds",
    "Time spent matching alerts against boundaries",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0]
)

# 게이지 메트릭
circuit_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half-open, 2=open)",
    ["dependency"]
)

boundaries_alerted = Gauge(
    "boundaries_alerted",
    "Number of boundaries with at least one matching alert"
)

active_alerts = Gauge(
    "active_alerts",
    "Number of alerts in the latest snapshot"
)
