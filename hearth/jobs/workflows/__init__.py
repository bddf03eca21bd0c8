"""Periodic workflows."""

from hearth.jobs.workflows.idempotency_cleanup import (
    CleanupOutput,
    IdempotencyCleanupWorkflow,
)

__all__ = [
    "CleanupOutput",
    "IdempotencyCleanupWorkflow",
]
