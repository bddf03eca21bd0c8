"""Idempotency cleanup workflow.

Sweeps expired idempotency key records and their lookup entries out of
the shared store. Runs on a schedule, never per request.
"""

from dataclasses import dataclass

from hearth.exceptions import HearthError
from hearth.observability.logging import get_logger
from hearth.resilience.idempotency import IdempotencyManager

logger = get_logger(__name__)


@dataclass
class CleanupOutput:
    """Output from the cleanup workflow."""

    removed_count: int
    success: bool
    error: str | None = None


class IdempotencyCleanupWorkflow:
    """Remove idempotency records whose TTL has lapsed.

    Idempotent: a second run right after the first removes nothing.
    """

    WORKFLOW_NAME = "cleanup-idempotency-keys"
    CRON_SCHEDULE = "0 * * * *"  # Hourly, matching the key TTL

    def __init__(self, manager: IdempotencyManager) -> None:
        self._manager = manager

    async def run(self) -> CleanupOutput:
        """Execute the sweep.

        Store failures are reported in the output so the scheduler can
        record them; the next run picks up whatever was left.
        """
        try:
            removed = await self._manager.cleanup_expired()
        except HearthError as e:
            logger.error("idempotency_cleanup_failed", error=str(e))
            return CleanupOutput(removed_count=0, success=False, error=str(e))

        logger.info("idempotency_cleanup_workflow_completed", removed_count=removed)
        return CleanupOutput(removed_count=removed, success=True)
