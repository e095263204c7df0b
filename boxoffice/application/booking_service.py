import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from boxoffice.domain.exceptions import NotFoundError, TransientStoreError
from boxoffice.domain.state_machine import (
    BookingStateMachine,
    BookingStatus,
    PaymentStateMachine,
    PaymentStatus,
)
from boxoffice.infrastructure.db.models import Booking
from boxoffice.infrastructure.db.session import is_store_degraded
from boxoffice.infrastructure.repositories.booking_repository import BookingRepository
from boxoffice.infrastructure.repositories.outbox_repository import (
    BOOKING_CANCELLED,
    OutboxRepository,
)
from boxoffice.infrastructure.repositories.payment_repository import PaymentRepository
from boxoffice.infrastructure.repositories.show_repository import ShowRepository

logger = logging.getLogger(__name__)


class BookingService:
    """Application service for user-initiated booking changes."""

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.payment_repository = PaymentRepository(db)
        self.show_repository = ShowRepository(db)
        self.outbox = OutboxRepository(db)

    def cancel_booking(
        self,
        user_id: str,
        booking_id: str,
    ) -> Booking:
        try:
            return self._cancel(user_id, booking_id)
        except SQLAlchemyError as exc:
            self.db.rollback()
            if not is_store_degraded(exc):
                raise
            raise TransientStoreError("Booking store is temporarily unavailable") from exc

    def _cancel(self, user_id: str, booking_id: str) -> Booking:
        booking = self.booking_repository.get_for_user(booking_id, user_id, lock=True)

        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")

        BookingStateMachine.validate_transition(booking.status, BookingStatus.CANCELLED)
        was_confirmed = booking.status == BookingStatus.CONFIRMED

        released: list[str] = []
        if was_confirmed:
            show = self.show_repository.lock_show(booking.show_id)
            released = self.show_repository.release_seats(show, booking)

        payment = self.payment_repository.get_by_booking_id(booking.id)
        if payment:
            target = PaymentStatus.REFUND_PENDING if was_confirmed else PaymentStatus.FAILED
            if PaymentStateMachine.can_transition(payment.status, target):
                self.payment_repository.update_status(payment, target)
            if target == PaymentStatus.REFUND_PENDING:
                booking.refund_required = True

        self._transition(booking, BookingStatus.CANCELLED)
        self.outbox.add_event(
            aggregate_id=booking.id,
            event_type=BOOKING_CANCELLED,
            payload={
                "booking_id": booking.id,
                "show_id": booking.show_id,
                "released_seats": released,
                "refund_required": booking.refund_required,
            },
            dedupe_key=f"booking:{booking.id}:cancelled",
        )
        self.db.commit()

        logger.info(
            "Booking cancelled. booking_id=%s released_seats=%s",
            booking.id,
            len(released),
        )
        return booking

    def _transition(self, booking: Booking, to_status: BookingStatus) -> None:
        BookingStateMachine.validate_transition(booking.status, to_status)
        self.booking_repository.update_status(booking, to_status)
