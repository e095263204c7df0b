import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Sequence
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from boxoffice.application.seat_inventory import SeatInventoryService
from boxoffice.domain.exceptions import (
    NotFoundError,
    SeatUnavailableError,
    TransientStoreError,
    ValidationError,
)
from boxoffice.domain.pricing import PriceBreakdown, PricingCalculator, validate_seat_selection
from boxoffice.infrastructure.db.models import Show
from boxoffice.infrastructure.db.session import is_store_degraded
from boxoffice.infrastructure.gateway.razorpay_gateway import RazorpayGateway
from boxoffice.infrastructure.repositories.booking_repository import BookingRepository
from boxoffice.infrastructure.repositories.payment_repository import PaymentRepository
from boxoffice.infrastructure.repositories.show_repository import ShowRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedOrder:
    """What the client needs to open the hosted checkout."""

    order_id: str
    amount: int
    currency: str
    booking_id: str | None
    key_id: str
    receipt: str
    price: PriceBreakdown
    reconciliation_required: bool = False


def _require(value: str | None, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


class OrderIssuer:
    """
    Creates a gateway order and the matching pending booking.

    The gateway order is requested before anything is written, so a gateway
    failure leaves no local rows behind. Once the gateway order exists, local
    write failures are logged for reconciliation and the identifiers that
    survived are still returned.
    """

    def __init__(
        self,
        db: Session,
        gateway: RazorpayGateway,
        pricing: PricingCalculator,
        currency: str = "INR",
    ):
        self.db = db
        self.gateway = gateway
        self.pricing = pricing
        self.currency = currency
        self.inventory = SeatInventoryService(db)
        self.show_repository = ShowRepository(db)
        self.booking_repository = BookingRepository(db)
        self.payment_repository = PaymentRepository(db)

    def create_order(
        self,
        user_id: str,
        event_id: str,
        show_id: str,
        seat_ids: Sequence[str],
        ticket_price=None,
    ) -> IssuedOrder:
        user_id = _require(user_id, "user_id")
        event_id = _require(event_id, "event_id")
        show_id = _require(show_id, "show_id")
        seats = validate_seat_selection(seat_ids or [], self.pricing.max_seats)

        show = self._load_show(show_id)
        if show.event_id != event_id:
            raise ValidationError("Show does not belong to this event")

        self._log_client_price_drift(show, ticket_price)
        price = self.pricing.calculate(show.ticket_price, seats)
        self._ensure_seats_free(show, seats)

        receipt = f"rcpt_{uuid4().hex[:20]}"
        order_id = self.gateway.create_order(
            amount_minor=price.total_minor_units,
            currency=self.currency,
            receipt=receipt,
            notes={
                "event_id": event_id,
                "show_id": show_id,
                "user_id": user_id,
                "seats": ",".join(seats),
            },
        )
        logger.info(
            "Gateway order created. order_id=%s user_id=%s show_id=%s seats=%s amount_minor=%s",
            order_id,
            user_id,
            show_id,
            len(seats),
            price.total_minor_units,
        )

        booking_id = self._record_booking(user_id, event_id, show_id, seats, price, order_id)
        reconciliation_required = booking_id is None
        if booking_id and not self._record_payment(booking_id, user_id, order_id, price):
            reconciliation_required = True

        return IssuedOrder(
            order_id=order_id,
            amount=price.total_minor_units,
            currency=self.currency,
            booking_id=booking_id,
            key_id=self.gateway.key_id,
            receipt=receipt,
            price=price,
            reconciliation_required=reconciliation_required,
        )

    def _load_show(self, show_id: str) -> Show:
        try:
            show = self.show_repository.get_by_id(show_id)
        except SQLAlchemyError as exc:
            if not is_store_degraded(exc):
                raise
            raise TransientStoreError("Show lookup failed; please retry") from exc
        if not show:
            raise NotFoundError(f"Show {show_id} not found")
        return show

    def _ensure_seats_free(self, show: Show, seats: list[str]) -> None:
        confirmed = self.inventory.get_confirmed_seats(show.id)
        taken = sorted(confirmed.intersection(seats))
        if taken:
            raise SeatUnavailableError(taken)
        if len(confirmed) + len(seats) > show.total_seats:
            raise ValidationError("Not enough seats left for this show")

    def _log_client_price_drift(self, show: Show, ticket_price) -> None:
        if ticket_price is None:
            return
        try:
            differs = Decimal(str(ticket_price)) != show.ticket_price
        except (InvalidOperation, ValueError):
            differs = True
        if differs:
            logger.info(
                "Client ticket price ignored. show_id=%s client_price=%s stored_price=%s",
                show.id,
                ticket_price,
                show.ticket_price,
            )

    def _record_booking(
        self,
        user_id: str,
        event_id: str,
        show_id: str,
        seats: list[str],
        price: PriceBreakdown,
        order_id: str,
    ) -> str | None:
        try:
            booking = self.booking_repository.create_booking(
                user_id=user_id,
                event_id=event_id,
                show_id=show_id,
                seat_ids=seats,
                subtotal=price.subtotal,
                convenience_fee=price.convenience_fee,
                total_amount=price.total,
                gateway_order_id=order_id,
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                "RECONCILIATION booking insert failed after gateway order was created. "
                "order_id=%s user_id=%s show_id=%s seats=%s total=%s",
                order_id,
                user_id,
                show_id,
                ",".join(seats),
                price.total,
            )
            return None
        return booking.id

    def _record_payment(
        self,
        booking_id: str,
        user_id: str,
        order_id: str,
        price: PriceBreakdown,
    ) -> bool:
        try:
            self.payment_repository.create_payment(
                booking_id=booking_id,
                user_id=user_id,
                gateway_order_id=order_id,
                amount=price.total,
                currency=self.currency,
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                "RECONCILIATION payment insert failed; booking is still usable. "
                "booking_id=%s order_id=%s",
                booking_id,
                order_id,
            )
            return False
        return True
