# boxoffice/infrastructure/repositories/outbox_repository.py

import json

from sqlalchemy.orm import Session
from sqlalchemy import select

from boxoffice.infrastructure.db.models import OutboxEvent

BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
BOOKING_PAYMENT_FAILED = "BOOKING_PAYMENT_FAILED"
BOOKING_REFUND_REQUIRED = "BOOKING_REFUND_REQUIRED"
BOOKING_CANCELLED = "BOOKING_CANCELLED"


class OutboxRepository:
    """Operational events for reconciliation, one row per dedupe key."""

    def __init__(self, db: Session):
        self.db = db

    def add_event(
        self,
        aggregate_id: str,
        event_type: str,
        payload: dict,
        dedupe_key: str,
        aggregate_type: str = "booking",
    ) -> None:
        existing = self.db.execute(
            select(OutboxEvent).where(OutboxEvent.dedupe_key == dedupe_key)
        ).scalar_one_or_none()
        if existing:
            return

        self.db.add(
            OutboxEvent(
                aggregate_type=aggregate_type,
                aggregate_id=aggregate_id,
                event_type=event_type,
                payload=json.dumps(payload, sort_keys=True, default=str),
                dedupe_key=dedupe_key,
                status="PENDING",
            )
        )

    def list_for_aggregate(self, aggregate_id: str) -> list[OutboxEvent]:
        stmt = (
            select(OutboxEvent)
            .where(OutboxEvent.aggregate_id == aggregate_id)
            .order_by(OutboxEvent.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())
