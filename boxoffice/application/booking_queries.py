from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from boxoffice.domain.exceptions import TransientStoreError
from boxoffice.infrastructure.db.models import Booking, Event, Payment, Show
from boxoffice.infrastructure.db.session import is_store_degraded
from boxoffice.infrastructure.repositories.booking_repository import BookingRepository

PLACEHOLDER_IMAGE = "/placeholder.svg"


@dataclass(frozen=True)
class BookingSummary:
    id: str
    event_id: str
    show_id: str
    event_title: str
    event_image: str
    venue: str
    city: str
    category: str
    genre: str
    duration: str
    show_date_time: datetime | None
    seats: list[str]
    ticket_count: int
    subtotal: Decimal
    convenience_fee: Decimal
    total_amount: Decimal
    status: str
    payment_status: str
    payment_id: str | None
    refund_required: bool
    booking_date: datetime


def _summarize(
    booking: Booking,
    show: Show | None,
    event: Event | None,
    payment: Payment | None,
) -> BookingSummary:
    seats = list(booking.seat_ids or [])
    return BookingSummary(
        id=booking.id,
        event_id=booking.event_id,
        show_id=booking.show_id,
        event_title=event.title if event else "Unknown Event",
        event_image=(event.image_url if event else None) or PLACEHOLDER_IMAGE,
        venue=event.venue if event else "Unknown Venue",
        city=event.city if event else "",
        category=event.category if event else "",
        genre=(event.genre if event else None) or "",
        duration=(event.duration if event else None) or "",
        show_date_time=show.show_date_time if show else None,
        seats=seats,
        ticket_count=len(seats) or booking.seat_count,
        subtotal=booking.subtotal,
        convenience_fee=booking.convenience_fee,
        total_amount=booking.total_amount,
        status=booking.status.value,
        payment_status=payment.status.value if payment else "unknown",
        payment_id=payment.gateway_payment_id if payment else None,
        refund_required=booking.refund_required,
        booking_date=booking.created_at,
    )


class BookingQueryService:

    def __init__(self, db: Session):
        self.booking_repository = BookingRepository(db)

    def list_bookings(self, user_id: str) -> list[BookingSummary]:
        try:
            rows = self.booking_repository.list_for_user_with_details(user_id)
        except SQLAlchemyError as exc:
            if not is_store_degraded(exc):
                raise
            raise TransientStoreError("Booking history is temporarily unavailable") from exc
        return [_summarize(*row) for row in rows]
