from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from boxoffice.domain.exceptions import NotFoundError, TransientStoreError
from boxoffice.infrastructure.db.session import is_store_degraded
from boxoffice.infrastructure.repositories.show_repository import ShowRepository


@dataclass(frozen=True)
class SeatOccupancy:
    show_id: str
    total_seats: int
    occupied: frozenset[str]
    held: frozenset[str]

    @property
    def unavailable(self) -> frozenset[str]:
        return self.occupied | self.held

    @property
    def available_seats(self) -> int:
        return max(self.total_seats - len(self.unavailable), 0)


class SeatInventoryService:
    """Read-only view of which seats of a show are taken."""

    def __init__(self, db: Session):
        self.db = db
        self.show_repository = ShowRepository(db)

    def get_occupancy(self, show_id: str) -> SeatOccupancy:
        try:
            show = self.show_repository.get_by_id(show_id)
            if not show:
                raise NotFoundError(f"Show {show_id} not found")

            occupied = self.show_repository.get_reserved_seats(show_id)
            occupied.update(seat for seat, taken in (show.occupied_seats or {}).items() if taken)
            held = self.show_repository.get_held_seats(show_id) - occupied
        except SQLAlchemyError as exc:
            if not is_store_degraded(exc):
                raise
            raise TransientStoreError("Seat inventory is temporarily unavailable") from exc

        return SeatOccupancy(
            show_id=show.id,
            total_seats=show.total_seats,
            occupied=frozenset(occupied),
            held=frozenset(held),
        )

    def get_occupied_seats(self, show_id: str) -> list[str]:
        """Confirmed seats plus seats held by pending bookings, sorted."""
        return sorted(self.get_occupancy(show_id).unavailable)

    def get_confirmed_seats(self, show_id: str) -> set[str]:
        return set(self.get_occupancy(show_id).occupied)
