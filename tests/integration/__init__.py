"""
Integration tests for the LLM Reliability Layer.

Test components against real external services:
- Redis counter store (Lua guarded resets, concurrent increments)
- Circuit breaker and budget tracker over Redis

Marked with @pytest.mark.integration; skipped when Redis is unreachable.
"""
