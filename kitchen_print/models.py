"""
SQLAlchemy Database Models

The print queue is the only table the printing service owns. Rows are
inserted as ``pending`` by the order system (or the enqueue endpoint) and
advanced by the queue processor alone:

    pending ──claim──> in_progress ──success──> printed   (terminal)
                            │
                            ├──failure, attempts < max──> pending
                            └──failure, attempts >= max──> failed  (terminal)

Author: Khalil Bannouri
Version: 1.0.0
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Text, Enum, JSON, Index
from sqlalchemy.sql import func

from kitchen_print.database import Base


class PrintJobStatus(str, enum.Enum):
    """Print job lifecycle."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"  # Claimed by one processor
    PRINTED = "printed"
    FAILED = "failed"


def _new_job_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PrintJob(Base):
    """
    Durable receipt print job.

    ``print_data`` carries the pre-rendered receipt document, so the
    processor never needs to read the orders table.
    """
    __tablename__ = "print_queue"

    id = Column(String(36), primary_key=True, default=_new_job_id)
    order_id = Column(String(64), nullable=False, index=True)

    # =========================================================================
    # PAYLOAD
    # =========================================================================
    print_data = Column(JSON, nullable=False)

    # =========================================================================
    # STATE
    # =========================================================================
    status = Column(
        Enum(
            PrintJobStatus,
            name="print_job_status",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            length=20,
        ),
        default=PrintJobStatus.PENDING,
        nullable=False,
    )
    attempts = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_print_queue_status_created_at", "status", "created_at"),
    )

    def __repr__(self):
        return f"<PrintJob {self.id} - order {self.order_id} - {self.status.value} ({self.attempts} attempts)>"
