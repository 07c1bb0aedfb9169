"""
Reliability & Budget Execution Engine for LLM calls.

Wraps one logical model call with:
- Bounded same-model retries with constant/exponential backoff
- Ordered fallback across models
- Per-(agent, model, tenant) circuit breaking
- Tenant-scoped cost/token/execution budgets with daily/monthly rollover
- A wall-clock total timeout spanning every attempt

Architecture: async engine + pluggable counter store (in-memory or Redis)
"""

__version__ = "0.1.0"
