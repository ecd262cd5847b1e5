"""
Transfer Celery tasks — settle PENDING transfers from hub status.

Runs on a schedule. For each PENDING transfer without a final observation,
asks the hub for the transfer state and appends a status observation once
the hub reports COMMITTED or ABORTED. Stored results are never edited.
"""

import asyncio
import logging
from datetime import datetime, timezone

from app.config import settings
from app.tasks.celery_app import celery_app
from app.transfers.errors import SchemeError
from app.transfers.types import StatusObservation, TransferStatus

logger = logging.getLogger(__name__)


async def _sync_pending_transfers_async(repository=None, scheme_client=None) -> dict:
    """
    Async inner function that polls the hub for unsettled transfers.

    Builds its own repository and scheme client (not FastAPI deps — Celery
    runs outside request lifecycle).
    """
    from app.services.scheme_client import get_scheme_client
    from app.transfers.repository import OBSERVED_BY_SYNC, get_transfer_repository

    repository = repository or get_transfer_repository()
    scheme_client = scheme_client or get_scheme_client()

    pending = await repository.list_unsettled(limit=settings.TRANSFER_SYNC_BATCH_SIZE)
    settled: list[str] = []
    still_pending = 0
    errors = 0

    for result in pending:
        try:
            transfer = await scheme_client.get_transfer(result.transfer_id)
        except SchemeError as exc:
            errors += 1
            logger.warning("Status sync failed for transfer %s: %s", result.transfer_id, exc)
            continue

        if not transfer.state.is_final:
            still_pending += 1
            continue

        status = TransferStatus.from_transfer_state(transfer.state)
        await repository.add_observation(StatusObservation(
            transfer_id=result.transfer_id,
            status=status,
            observed_at=datetime.now(timezone.utc),
            source=OBSERVED_BY_SYNC,
            detail=f"hub state {transfer.state.value}",
        ))
        settled.append(str(result.transfer_id))
        logger.info("Transfer %s settled at hub as %s", result.transfer_id, status.value)

    return {
        "checked": len(pending),
        "settled": settled,
        "still_pending": still_pending,
        "errors": errors,
    }


@celery_app.task(name="app.tasks.transfer_tasks.sync_pending_transfers")
def sync_pending_transfers():
    """
    Append hub-reported final states for PENDING transfers.

    Celery tasks are synchronous, so we run the async function
    in a fresh event loop.
    """
    logger.info("Starting pending transfer sync")
    loop = asyncio.new_event_loop()
    try:
        result = loop.run_until_complete(_sync_pending_transfers_async())
        logger.info(
            "Transfer sync completed: %d checked, %d settled, %d errors",
            result["checked"], len(result["settled"]), result["errors"],
        )
        return result
    except Exception:
        logger.exception("Pending transfer sync failed")
        raise
    finally:
        loop.close()
