"""Custom Prometheus metrics for the LLM Reliability Layer.

These metrics should be scraped by Prometheus from the host application's
/metrics endpoint. Alert rules should be configured for:
- fallbacks_total (primary model instability)
- circuit_breaker_transitions_total{state="open"} (a model is being shed)
- budget_rejections_total (tenants hitting hard caps)
- counter_store_errors_total (breaker/budget running fail-open)
"""

from prometheus_client import Counter, Histogram

# === Attempt Metrics ===

model_attempts_total = Counter(
    "reliability_model_attempts_total",
    "Total model invocation attempts by model and outcome",
    ["model", "outcome"],
)
"""
Attempts counter by model and outcome.

Labels:
- model: Model identifier
- outcome: success, error, short_circuited

Alert thresholds:
- WARN: error share > 10% for a model over 15m
"""

retries_total = Counter(
    "reliability_retries_total",
    "Total same-model retries by model and reason",
    ["model", "reason"],
)
"""
Same-model retries counter.

Labels:
- model: Model identifier
- reason: retryable_error, rate_limited

Alert thresholds:
- WARN: retry rate > 10% of attempts
- CRITICAL: retry rate > 30% of attempts
"""

# === Fallback & Circuit Breaker Metrics ===

fallbacks_total = Counter(
    "reliability_fallbacks_total",
    "Total advances to the next model by triggering error kind",
    ["reason"],
)
"""
Fallback advances counter.

Labels:
- reason: fallback_eligible, rate_limited, retryable (retries exhausted)
"""

short_circuits_total = Counter(
    "reliability_short_circuits_total",
    "Total models skipped because their circuit breaker was open",
    ["model"],
)

circuit_breaker_transitions_total = Counter(
    "reliability_circuit_breaker_transitions_total",
    "Circuit breaker state transitions by model and new state",
    ["model", "state"],
)
"""
Breaker transitions counter.

Labels:
- model: Model identifier
- state: open, closed

Alert thresholds:
- WARN: any transition to open
"""

# === Budget Metrics ===

budget_rejections_total = Counter(
    "reliability_budget_rejections_total",
    "Calls rejected before any model call by the hard budget pre-check",
    ["limit_kind"],
)
"""
Budget rejections counter.

Labels:
- limit_kind: daily_cost, monthly_cost, daily_tokens, monthly_tokens,
  daily_executions, monthly_executions
"""

alerts_total = Counter(
    "reliability_alerts_total",
    "Alerts emitted by event",
    ["event"],
)

# === Latency & Usage Metrics ===

execution_latency_seconds = Histogram(
    "reliability_execution_latency_seconds",
    "Latency of one logical call across all attempts and models",
    ["outcome"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)
"""
Logical call latency histogram.

Labels:
- outcome: success, exhausted, budget_exceeded, timeout, fatal

Buckets optimized for LLM inference (0.5s to 120s).

Alert thresholds:
- WARN: p95 > 30s
- CRITICAL: p95 > 60s
"""

model_tokens_total = Counter(
    "reliability_model_tokens_total",
    "Total tokens consumed by model and type",
    ["model", "token_type"],
)
"""
Token consumption counter.

Labels:
- model: Model identifier
- token_type: input, output

Used for cost estimation and capacity planning.
"""

counter_store_errors_total = Counter(
    "reliability_counter_store_errors_total",
    "Counter store failures tolerated by the engine",
    ["operation"],
)
"""
Tolerated counter store failures.

Labels:
- operation: breaker_check, breaker_record, budget_check, budget_record

Alert thresholds:
- CRITICAL: any sustained rate (breakers and budgets are running fail-open)
"""
