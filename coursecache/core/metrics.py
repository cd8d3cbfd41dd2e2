"""Cache metrics using the Prometheus client library.

This module defines all metrics in one place: a single inventory of
everything the cache measures.  Other modules import specific metrics
and increment/observe them at the point of action.

  remote_calls_total / remote_call_duration_seconds
      Every call through HttpRemoteApi, labelled by operation name and
      outcome ("ok", "not_found", "error", "transport_error").

  cache_merges_total
      Every write the merge engine makes to an entity table, labelled by
      entity and by what happened: "insert" (new id), "replace" (remote
      record superseded the local one), "merge" (local derived fields
      kept), "remove".

  best_effort_failures_total
      Dependent fetches that failed and were swallowed.  A steady rate
      here means views are silently showing less than they could.

  background_tasks_in_flight
      Tracked fire-and-forget work not yet finished.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REMOTE_CALLS = Counter(
    "remote_calls_total",
    "Remote API calls by operation and outcome",
    ["operation", "outcome"],
)

REMOTE_CALL_DURATION = Histogram(
    "remote_call_duration_seconds",
    "Remote API call duration in seconds",
    ["operation"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

CACHE_MERGES = Counter(
    "cache_merges_total",
    "Entity table writes by entity and result",
    ["entity", "result"],  # insert|replace|merge|remove
)

BEST_EFFORT_FAILURES = Counter(
    "best_effort_failures_total",
    "Dependent fetches that failed without failing their caller",
    ["operation"],
)

BACKGROUND_TASKS = Gauge(
    "background_tasks_in_flight",
    "Tracked background tasks not yet finished",
)
