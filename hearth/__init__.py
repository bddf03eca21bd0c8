"""Hearth: resilient device-command pipeline for the smart-home dashboard.

Commands to stoves, thermostats, lights and cameras travel through flaky,
rate-limited vendor APIs. This package provides the pieces that keep a
physical command from being lost or executed twice:

- DeduplicationManager: in-process double-submit guard
- IdempotencyManager: cross-instance idempotency keys
- RateLimiter: fixed-window limits per user and endpoint class
- CacheAside: TTL cache for polling endpoints
- RetryClient: exponential backoff with jitter around HTTP calls
"""

__version__ = "0.1.0"
