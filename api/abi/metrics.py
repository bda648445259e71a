from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi.responses import Response

# HTTP request metrics (from middleware)
http_requests = Counter(
    "abi_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration = Histogram(
    "abi_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# Community domain metrics
votes_cast = Counter(
    "abi_votes_total",
    "Vote state transitions",
    ["target_type", "transition"],  # transition: cast | undo | switch
)

reputation_entries = Counter(
    "abi_reputation_entries_total",
    "Reputation ledger rows written",
    ["reason"],
)

badges_awarded = Counter(
    "abi_badges_awarded_total",
    "Badges awarded to users",
    ["slug", "tier"],
)

badge_check_failures = Counter(
    "abi_badge_check_failures_total",
    "Badge evaluations that raised and were skipped",
)

guardrail_blocks = Counter(
    "abi_guardrail_blocks_total",
    "Submissions rejected by a guardrail",
    ["kind", "severity"],  # kind: profanity | secret
)

approval_transitions = Counter(
    "abi_approval_transitions_total",
    "Upgrade request status transitions",
    ["event_type", "approval_level"],
)

reconciliation_repairs = Counter(
    "abi_reconciliation_repairs_total",
    "Counter caches repaired by the reconciliation worker",
    ["counter"],
)


async def metrics_endpoint():
    """FastAPI endpoint handler that returns Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
