"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Gauge, Histogram

# Like metrics
likes_submitted_total = Counter("likes_submitted_total", "Total number of like submissions", ["outcome"])

# Match metrics
matches_created_total = Counter("matches_created_total", "Total number of match resolutions", ["outcome"])

match_resolve_duration = Histogram("match_resolve_duration_seconds", "Time spent resolving reciprocity for a pair")

matches_reconciled_total = Counter(
    "matches_reconciled_total", "Matches created by the reconciliation worker for orphaned reciprocal likes"
)

# Conversation metrics
messages_sent_total = Counter("messages_sent_total", "Total number of messages appended")

messages_marked_read_total = Counter("messages_marked_read_total", "Total number of messages flipped to read")

# Realtime metrics
events_published_total = Counter("realtime_events_published_total", "Total number of published events", ["kind"])

active_subscriptions = Gauge("realtime_active_subscriptions", "Number of open realtime subscriptions")

# Errors
transient_errors_total = Counter("transient_errors_total", "Storage outages surfaced to callers", ["operation"])

# Response time metrics
api_request_duration = Histogram(
    "api_request_duration_seconds", "API request duration in seconds", ["method", "endpoint", "status"]
)
