# boxoffice/infrastructure/repositories/booking_repository.py

from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import select

from boxoffice.infrastructure.db.models import Booking, Event, Payment, Show
from boxoffice.domain.state_machine import BookingStatus


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_for_user(
        self,
        booking_id: str,
        user_id: str,
        lock: bool = False,
    ) -> Booking | None:

        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.user_id == user_id)
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def create_booking(
        self,
        user_id: str,
        event_id: str,
        show_id: str,
        seat_ids: list[str],
        subtotal: Decimal,
        convenience_fee: Decimal,
        total_amount: Decimal,
        gateway_order_id: str,
    ) -> Booking:

        booking = Booking(
            user_id=user_id,
            event_id=event_id,
            show_id=show_id,
            seat_ids=list(seat_ids),
            seat_count=len(seat_ids),
            subtotal=subtotal,
            convenience_fee=convenience_fee,
            total_amount=total_amount,
            gateway_order_id=gateway_order_id,
            status=BookingStatus.PENDING,
        )

        self.db.add(booking)
        self.db.flush()
        return booking

    def update_status(
        self,
        booking: Booking,
        new_status: BookingStatus,
    ) -> None:

        booking.status = new_status

    def list_for_user_with_details(
        self,
        user_id: str,
    ) -> list[tuple[Booking, Show | None, Event | None, Payment | None]]:
        """Newest first; show, event and payment may be missing."""

        stmt = (
            select(Booking, Show, Event, Payment)
            .outerjoin(Show, Show.id == Booking.show_id)
            .outerjoin(Event, Event.id == Booking.event_id)
            .outerjoin(Payment, Payment.booking_id == Booking.id)
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
        )
        return [tuple(row) for row in self.db.execute(stmt).all()]
