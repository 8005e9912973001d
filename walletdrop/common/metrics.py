"""Prometheus metric definitions shared across services."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


mentions_received_total = Counter("mentions_received_total", "Mentions fetched from the feed", ["service"])
stale_mentions_skipped_total = Counter(
    "stale_mentions_skipped_total",
    "Mentions older than the freshness window",
    ["service"],
)
duplicate_events_skipped_total = Counter(
    "duplicate_events_skipped_total",
    "Mentions already present in the processed-event ledger",
    ["service"],
)
mention_outcomes_total = Counter(
    "mention_outcomes_total",
    "Recorded outcome per handled mention",
    ["service", "outcome"],
)
wallets_created_total = Counter("wallets_created_total", "Wallets provisioned", ["service", "mode"])
ledger_failures_total = Counter("ledger_failures_total", "Ledger account creation failures", ["service"])
provisioning_latency_seconds = Histogram(
    "provisioning_latency_seconds",
    "Seconds from mention dispatch to first DM outcome",
    ["service"],
)
direct_messages_total = Counter(
    "direct_messages_total",
    "Direct messages attempted",
    ["service", "kind", "result"],
)
claim_requests_total = Counter("claim_requests_total", "Claim link retrievals", ["service", "result"])
campaign_messages_total = Counter(
    "campaign_messages_total",
    "Campaign direct messages attempted",
    ["service", "campaign", "result"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["service", "route", "method"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
