# boxoffice/infrastructure/repositories/show_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import delete, select

from boxoffice.domain.exceptions import NotFoundError
from boxoffice.domain.state_machine import BookingStatus
from boxoffice.infrastructure.db.models import Booking, SeatReservation, Show


class ShowRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, show_id: str) -> Show | None:
        stmt = select(Show).where(Show.id == show_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_show(self, show_id: str) -> Show:
        """
        SELECT ... FOR UPDATE
        Serializes seat confirmation for one show.
        """

        stmt = (
            select(Show)
            .where(Show.id == show_id)
            .with_for_update()
        )

        show = self.db.execute(stmt).scalar_one_or_none()

        if not show:
            raise NotFoundError(f"Show {show_id} not found")

        return show

    def get_reserved_seats(self, show_id: str) -> set[str]:
        stmt = select(SeatReservation.seat_id).where(SeatReservation.show_id == show_id)
        return set(self.db.execute(stmt).scalars().all())

    def get_held_seats(self, show_id: str) -> set[str]:
        """Seats requested by bookings still awaiting payment."""
        stmt = (
            select(Booking.seat_ids)
            .where(Booking.show_id == show_id)
            .where(Booking.status == BookingStatus.PENDING)
        )
        held: set[str] = set()
        for seat_ids in self.db.execute(stmt).scalars().all():
            held.update(seat_ids or [])
        return held

    def get_seats_taken_by_others(self, show: Show, booking_id: str) -> set[str]:
        """
        Confirmed seats of the show that do not belong to this booking,
        from the reservation rows and the show's occupied map.
        """
        stmt = select(SeatReservation.seat_id, SeatReservation.booking_id).where(
            SeatReservation.show_id == show.id
        )
        taken: set[str] = set()
        own: set[str] = set()
        for seat_id, owner_id in self.db.execute(stmt).all():
            (own if owner_id == booking_id else taken).add(seat_id)

        taken.update(
            seat_id
            for seat_id, flagged in (show.occupied_seats or {}).items()
            if flagged and seat_id not in own
        )
        return taken

    def find_conflicting_reservations(
        self,
        show: Show,
        seat_ids: list[str],
        booking_id: str,
    ) -> list[str]:
        return sorted(self.get_seats_taken_by_others(show, booking_id).intersection(seat_ids))

    def reserve_seats(self, show: Show, booking: Booking) -> None:
        existing = set(
            self.db.execute(
                select(SeatReservation.seat_id).where(SeatReservation.booking_id == booking.id)
            ).scalars().all()
        )
        for seat_id in booking.seat_ids:
            if seat_id in existing:
                continue
            self.db.add(
                SeatReservation(
                    show_id=show.id,
                    seat_id=seat_id,
                    booking_id=booking.id,
                )
            )

        # Reassign so the JSON column is flagged dirty.
        occupied = dict(show.occupied_seats or {})
        occupied.update({seat_id: True for seat_id in booking.seat_ids})
        show.occupied_seats = occupied

    def release_seats(self, show: Show, booking: Booking) -> list[str]:
        stmt = select(SeatReservation.seat_id).where(SeatReservation.booking_id == booking.id)
        released = sorted(self.db.execute(stmt).scalars().all())

        self.db.execute(
            delete(SeatReservation).where(SeatReservation.booking_id == booking.id)
        )

        occupied = dict(show.occupied_seats or {})
        for seat_id in released:
            occupied.pop(seat_id, None)
        show.occupied_seats = occupied
        return released
