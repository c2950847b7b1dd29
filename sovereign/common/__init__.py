"""
Shared utilities: geometry primitives, resilient fetch, circuit breaker,
safe parsing and timestamp helpers.
"""
