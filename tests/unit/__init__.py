"""
Unit tests for the LLM Reliability Layer.

Test individual components in isolation:
- Policy and budget models (validation, inheritance)
- Error classifier, backoff and total-timeout guard
- Attempt tracker, retry executor and fallback orchestrator
- Circuit breaker and budget tracker over the in-memory store
- Redis counter store (mocked client)
- Reliability engine end to end with a scripted model client
"""
