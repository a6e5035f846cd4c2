"""Background orphan-blob reconciliation.

Runs as an asyncio task within the FastAPI process: one pass on startup to
clean up after a crash, then every ORPHAN_SCAN_INTERVAL seconds.
"""
import asyncio
import logging

from fileshare.services.file_store import FileStore, ReconcileReport

logger = logging.getLogger(__name__)


async def reconcile_on_startup(
    store: FileStore, grace_seconds: float, partial_max_age: float
) -> ReconcileReport | None:
    """Single pass at boot. Failures are logged so a bad scan never blocks startup."""
    try:
        return await store.reconcile_orphans(
            min_age_seconds=grace_seconds, partial_max_age=partial_max_age
        )
    except Exception:
        logger.exception("Startup orphan reconciliation failed")
        return None


async def reconcile_loop(
    store: FileStore, interval: float, grace_seconds: float, partial_max_age: float
):
    """Periodic reconciliation; cancelled on application shutdown."""
    logger.info("Orphan reconciliation worker started (every %.0fs)", interval)
    while True:
        await asyncio.sleep(interval)
        try:
            await store.reconcile_orphans(
                min_age_seconds=grace_seconds, partial_max_age=partial_max_age
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Orphan reconciliation pass failed")
