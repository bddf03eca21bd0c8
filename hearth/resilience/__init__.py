"""Resilience primitives for device commands.

- retry: exponential backoff with jitter around HTTP calls
- idempotency: cross-instance idempotency keys
- dedup: in-process double-submit suppression
- rate_limit: persistent fixed-window rate limiting
- cache: TTL cache-aside for polling endpoints
"""
