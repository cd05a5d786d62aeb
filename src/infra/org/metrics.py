"""Prometheus counters for organization context activity.

Exposed through the gateway's /metrics endpoint.
"""

from __future__ import annotations

from prometheus_client import Counter

# outcome: bound | denied | failed | cleared
CONTEXT_BIND_TOTAL = Counter(
    "org_context_bind_total",
    "Organization context bind attempts",
    ["outcome"],
)

# outcome: recovered | skipped | failed
CONTEXT_RETRY_TOTAL = Counter(
    "org_context_retry_total",
    "Retry-wrapper recovery attempts after a context-related failure",
    ["outcome"],
)

# outcome: ok | timeout | error
ORG_FETCH_TIER_TOTAL = Counter(
    "org_fetch_tier_total",
    "Organization fetch chain tier results",
    ["tier", "outcome"],
)
