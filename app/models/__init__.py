"""SQLAlchemy ORM models for PaymentsWithoutBorders."""

from app.models.transfer import TransferObservation, TransferRecord

__all__ = [
    "TransferRecord",
    "TransferObservation",
]
