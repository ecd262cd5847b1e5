"""
Transfer repository — persistence boundary of the orchestrator.

``save`` writes a new immutable record for each orchestration run together
with an initial status observation. Later status changes (hub settlement
confirmations) are appended with ``add_observation``; records are never
edited.
"""

from __future__ import annotations

import logging
import uuid
from typing import Protocol

from sqlalchemy import exists, select

from app.transfers.types import (
    StatusObservation,
    TransferHistory,
    TransferResult,
    TransferStatus,
)

logger = logging.getLogger(__name__)

FINAL_STATUSES = (TransferStatus.COMMITTED, TransferStatus.ABORTED)

OBSERVED_BY_ORCHESTRATOR = "orchestrator"
OBSERVED_BY_SYNC = "hub_sync"


class TransferRepository(Protocol):
    async def save(self, result: TransferResult) -> None: ...

    async def get(self, transfer_id: uuid.UUID) -> TransferHistory | None: ...

    async def add_observation(self, observation: StatusObservation) -> None: ...

    async def list_unsettled(self, limit: int = 100) -> list[TransferResult]: ...


def initial_observation(result: TransferResult) -> StatusObservation:
    return StatusObservation(
        transfer_id=result.transfer_id,
        status=result.status,
        observed_at=result.created_at,
        source=OBSERVED_BY_ORCHESTRATOR,
        detail=result.error_code,
    )


# ---------------------------------------------------------------------------
# In-memory (development, mocked runs, tests)
# ---------------------------------------------------------------------------


class InMemoryTransferRepository:
    """Process-local repository; contents vanish with the process."""

    def __init__(self):
        self._records: list[TransferResult] = []
        self._observations: list[StatusObservation] = []

    async def save(self, result: TransferResult) -> None:
        self._records.append(result)
        self._observations.append(initial_observation(result))

    async def get(self, transfer_id: uuid.UUID) -> TransferHistory | None:
        records = [r for r in self._records if r.transfer_id == transfer_id]
        if not records:
            return None
        observations = sorted(
            (o for o in self._observations if o.transfer_id == transfer_id),
            key=lambda o: o.observed_at,
        )
        return TransferHistory(records[-1], tuple(observations))

    async def add_observation(self, observation: StatusObservation) -> None:
        self._observations.append(observation)

    async def list_unsettled(self, limit: int = 100) -> list[TransferResult]:
        settled = {o.transfer_id for o in self._observations if o.status in FINAL_STATUSES}
        pending = [
            r for r in self._records
            if r.status == TransferStatus.PENDING and r.transfer_id not in settled
        ]
        return pending[:limit]

    @property
    def records(self) -> tuple[TransferResult, ...]:
        return tuple(self._records)


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------


class SqlAlchemyTransferRepository:
    """Stores results in ``transfer_records`` and ``transfer_observations``."""

    def __init__(self, session_factory=None):
        """
        Args:
            session_factory: Async session factory for DB access
                             (defaults to ``app.database.async_session``).
        """
        self._session_factory = session_factory

    @property
    def session_factory(self):
        if self._session_factory is not None:
            return self._session_factory
        from app.database import async_session
        return async_session

    async def save(self, result: TransferResult) -> None:
        from app.models.transfer import TransferObservation, TransferRecord

        async with self.session_factory() as session:
            async with session.begin():
                session.add(TransferRecord.from_result(result))
                session.add(TransferObservation.from_observation(initial_observation(result)))
        logger.debug("Saved transfer %s status=%s", result.transfer_id, result.status.value)

    async def get(self, transfer_id: uuid.UUID) -> TransferHistory | None:
        from app.models.transfer import TransferObservation, TransferRecord

        async with self.session_factory() as session:
            record = (
                await session.execute(
                    select(TransferRecord)
                    .where(TransferRecord.transfer_id == transfer_id)
                    .order_by(TransferRecord.created_at.desc())
                    .limit(1)
                )
            ).scalar_one_or_none()
            if record is None:
                return None

            rows = (
                await session.execute(
                    select(TransferObservation)
                    .where(TransferObservation.transfer_id == transfer_id)
                    .order_by(TransferObservation.observed_at, TransferObservation.seq)
                )
            ).scalars().all()

            return TransferHistory(
                record.to_result(), tuple(row.to_observation() for row in rows),
            )

    async def add_observation(self, observation: StatusObservation) -> None:
        from app.models.transfer import TransferObservation

        async with self.session_factory() as session:
            async with session.begin():
                session.add(TransferObservation.from_observation(observation))

    async def list_unsettled(self, limit: int = 100) -> list[TransferResult]:
        from app.models.transfer import TransferObservation, TransferRecord

        settled = exists().where(
            TransferObservation.transfer_id == TransferRecord.transfer_id,
            TransferObservation.status.in_(FINAL_STATUSES),
        )
        async with self.session_factory() as session:
            rows = (
                await session.execute(
                    select(TransferRecord)
                    .where(TransferRecord.status == TransferStatus.PENDING, ~settled)
                    .order_by(TransferRecord.created_at)
                    .limit(limit)
                )
            ).scalars().all()
            return [row.to_result() for row in rows]


_repository: TransferRepository | None = None


def get_transfer_repository() -> TransferRepository:
    """Return the configured repository (SQLAlchemy unless overridden)."""
    global _repository
    if _repository is None:
        _repository = SqlAlchemyTransferRepository()
    return _repository


def set_transfer_repository(repository: TransferRepository | None) -> None:
    """Override the repository (used in tests and mocked runs)."""
    global _repository
    _repository = repository
