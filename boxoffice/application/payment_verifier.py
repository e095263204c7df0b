import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from boxoffice.domain.exceptions import NotFoundError, ValidationError
from boxoffice.domain.state_machine import (
    BookingStateMachine,
    BookingStatus,
    PaymentStateMachine,
    PaymentStatus,
)
from boxoffice.infrastructure.db.models import Booking, Payment
from boxoffice.infrastructure.gateway.razorpay_gateway import RazorpayGateway
from boxoffice.infrastructure.repositories.booking_repository import BookingRepository
from boxoffice.infrastructure.repositories.outbox_repository import (
    BOOKING_CONFIRMED,
    BOOKING_PAYMENT_FAILED,
    BOOKING_REFUND_REQUIRED,
    OutboxRepository,
)
from boxoffice.infrastructure.repositories.payment_repository import PaymentRepository
from boxoffice.infrastructure.repositories.show_repository import ShowRepository

logger = logging.getLogger(__name__)


class VerificationReason(str, Enum):
    INVALID_SIGNATURE = "invalid_signature"
    SEAT_UNAVAILABLE = "seat_unavailable"
    BOOKING_CLOSED = "booking_closed"


@dataclass(frozen=True)
class VerificationResult:
    success: bool
    booking_id: str
    status: BookingStatus | None
    reason: VerificationReason | None = None
    reconciliation_required: bool = False


def _require(value: str | None, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


class PaymentVerifier:
    """
    Settles a pending booking from a hosted-checkout confirmation.

    A signature mismatch fails the booking for good. A valid signature
    confirms it, unless another confirmed booking already holds one of its
    seats or the show has no room left for all of them, in which case it
    fails closed and is flagged for refund. Once the
    signature is valid the caller always hears success if the store breaks,
    because the money has already moved at the gateway.
    """

    def __init__(self, db: Session, gateway: RazorpayGateway, currency: str = "INR"):
        self.db = db
        self.gateway = gateway
        self.currency = currency
        self.booking_repository = BookingRepository(db)
        self.payment_repository = PaymentRepository(db)
        self.show_repository = ShowRepository(db)
        self.outbox = OutboxRepository(db)

    def verify_payment(
        self,
        user_id: str,
        booking_id: str,
        gateway_payment_id: str,
        gateway_order_id: str,
        signature: str,
    ) -> VerificationResult:
        user_id = _require(user_id, "user_id")
        booking_id = _require(booking_id, "booking_id")
        gateway_payment_id = _require(gateway_payment_id, "gateway_payment_id")
        gateway_order_id = _require(gateway_order_id, "gateway_order_id")
        signature = _require(signature, "signature")

        signature_valid = self.gateway.verify_payment_signature(
            gateway_order_id,
            gateway_payment_id,
            signature,
        )

        try:
            booking = self._load_booking(booking_id, user_id)
            payment = self.payment_repository.get_by_booking_id(booking.id)
            self._ensure_order_matches(booking, payment, gateway_order_id)

            if not signature_valid:
                return self._reject(booking, payment, gateway_order_id)
            return self._settle(booking, payment, gateway_payment_id, gateway_order_id, signature)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                "RECONCILIATION store failure during payment verification. "
                "booking_id=%s order_id=%s payment_id=%s signature_valid=%s",
                booking_id,
                gateway_order_id,
                gateway_payment_id,
                signature_valid,
            )
            return VerificationResult(
                success=signature_valid,
                booking_id=booking_id,
                status=None,
                reason=None if signature_valid else VerificationReason.INVALID_SIGNATURE,
                reconciliation_required=True,
            )

    def _load_booking(self, booking_id: str, user_id: str) -> Booking:
        booking = self.booking_repository.get_for_user(booking_id, user_id, lock=True)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    @staticmethod
    def _ensure_order_matches(
        booking: Booking,
        payment: Payment | None,
        gateway_order_id: str,
    ) -> None:
        expected = booking.gateway_order_id or (payment.gateway_order_id if payment else None)
        if expected and expected != gateway_order_id:
            raise ValidationError("Order id does not match this booking")

    def _reject(
        self,
        booking: Booking,
        payment: Payment | None,
        gateway_order_id: str,
    ) -> VerificationResult:
        logger.warning(
            "Payment signature mismatch. booking_id=%s order_id=%s status=%s",
            booking.id,
            gateway_order_id,
            booking.status.value,
        )

        if booking.status == BookingStatus.PENDING:
            self._transition_booking(booking, BookingStatus.FAILED)
            if payment:
                self._transition_payment(payment, PaymentStatus.FAILED)
            self.outbox.add_event(
                aggregate_id=booking.id,
                event_type=BOOKING_PAYMENT_FAILED,
                payload={
                    "booking_id": booking.id,
                    "show_id": booking.show_id,
                    "order_id": gateway_order_id,
                    "reason": VerificationReason.INVALID_SIGNATURE.value,
                },
                dedupe_key=f"booking:{booking.id}:payment_failed",
            )
            self.db.commit()

        return VerificationResult(
            success=False,
            booking_id=booking.id,
            status=booking.status,
            reason=VerificationReason.INVALID_SIGNATURE,
        )

    def _settle(
        self,
        booking: Booking,
        payment: Payment | None,
        gateway_payment_id: str,
        gateway_order_id: str,
        signature: str,
    ) -> VerificationResult:
        if booking.status == BookingStatus.CONFIRMED:
            if payment and payment.gateway_payment_id not in (None, gateway_payment_id):
                logger.warning(
                    "Confirmed booking received another payment id. booking_id=%s "
                    "recorded=%s received=%s",
                    booking.id,
                    payment.gateway_payment_id,
                    gateway_payment_id,
                )
            return VerificationResult(
                success=True,
                booking_id=booking.id,
                status=booking.status,
            )

        owner = self.payment_repository.get_by_gateway_payment_id(gateway_payment_id)
        if owner and owner.booking_id != booking.id:
            raise ValidationError("Payment id already used for another booking")

        if payment is None:
            logger.warning(
                "Payment row missing at verification; creating it. booking_id=%s order_id=%s",
                booking.id,
                gateway_order_id,
            )
            payment = self.payment_repository.create_payment(
                booking_id=booking.id,
                user_id=booking.user_id,
                gateway_order_id=booking.gateway_order_id or gateway_order_id,
                amount=booking.total_amount,
                currency=self.currency,
            )

        if booking.status != BookingStatus.PENDING:
            return self._refund_closed_booking(booking, payment, gateway_payment_id, signature)

        show = self.show_repository.lock_show(booking.show_id)
        conflicts = self.show_repository.find_conflicting_reservations(
            show,
            booking.seat_ids,
            booking.id,
        )
        if conflicts:
            return self._fail_closed(
                booking,
                payment,
                gateway_payment_id,
                signature,
                detail=f"seats taken: {','.join(conflicts)}",
            )

        taken = self.show_repository.get_seats_taken_by_others(show, booking.id)
        if len(taken) + len(booking.seat_ids) > show.total_seats:
            return self._fail_closed(
                booking,
                payment,
                gateway_payment_id,
                signature,
                detail=f"sold out: {len(taken)}/{show.total_seats} taken",
            )

        try:
            self.show_repository.reserve_seats(show, booking)
            self.db.flush()
        except IntegrityError:
            # Another confirmation took a seat between the check and the insert.
            self.db.rollback()
            booking = self._load_booking(booking.id, booking.user_id)
            payment = self.payment_repository.get_by_booking_id(booking.id)
            if payment is None:
                payment = self.payment_repository.create_payment(
                    booking_id=booking.id,
                    user_id=booking.user_id,
                    gateway_order_id=booking.gateway_order_id or gateway_order_id,
                    amount=booking.total_amount,
                    currency=self.currency,
                )
            show = self.show_repository.lock_show(booking.show_id)
            conflicts = self.show_repository.find_conflicting_reservations(
                show,
                booking.seat_ids,
                booking.id,
            )
            return self._fail_closed(
                booking,
                payment,
                gateway_payment_id,
                signature,
                detail=f"seats taken: {','.join(conflicts)}",
            )

        self._transition_booking(booking, BookingStatus.CONFIRMED)
        self._capture(payment, gateway_payment_id, signature)
        self._transition_payment(payment, PaymentStatus.COMPLETED)
        self.outbox.add_event(
            aggregate_id=booking.id,
            event_type=BOOKING_CONFIRMED,
            payload={
                "booking_id": booking.id,
                "show_id": booking.show_id,
                "seats": booking.seat_ids,
                "payment_id": gateway_payment_id,
                "amount": str(booking.total_amount),
                "currency": payment.currency,
            },
            dedupe_key=f"booking:{booking.id}:confirmed",
        )
        self.db.commit()

        logger.info(
            "Booking confirmed. booking_id=%s show_id=%s seats=%s payment_id=%s",
            booking.id,
            booking.show_id,
            ",".join(booking.seat_ids),
            gateway_payment_id,
        )
        return VerificationResult(
            success=True,
            booking_id=booking.id,
            status=booking.status,
        )

    def _fail_closed(
        self,
        booking: Booking,
        payment: Payment,
        gateway_payment_id: str,
        signature: str,
        detail: str,
    ) -> VerificationResult:
        logger.warning(
            "Seats unavailable at confirmation; failing booking. booking_id=%s show_id=%s %s",
            booking.id,
            booking.show_id,
            detail,
        )
        self._transition_booking(booking, BookingStatus.FAILED)
        self._flag_refund(booking, payment, gateway_payment_id, signature, reason="seat_unavailable")
        self.db.commit()

        return VerificationResult(
            success=False,
            booking_id=booking.id,
            status=booking.status,
            reason=VerificationReason.SEAT_UNAVAILABLE,
        )

    def _refund_closed_booking(
        self,
        booking: Booking,
        payment: Payment,
        gateway_payment_id: str,
        signature: str,
    ) -> VerificationResult:
        logger.warning(
            "Valid payment for closed booking. booking_id=%s status=%s payment_id=%s",
            booking.id,
            booking.status.value,
            gateway_payment_id,
        )
        self._flag_refund(booking, payment, gateway_payment_id, signature, reason="booking_closed")
        self.db.commit()

        return VerificationResult(
            success=False,
            booking_id=booking.id,
            status=booking.status,
            reason=VerificationReason.BOOKING_CLOSED,
        )

    def _flag_refund(
        self,
        booking: Booking,
        payment: Payment,
        gateway_payment_id: str,
        signature: str,
        reason: str,
    ) -> None:
        booking.refund_required = True
        if payment.gateway_payment_id is None:
            self._capture(payment, gateway_payment_id, signature)
        if payment.status != PaymentStatus.REFUND_PENDING:
            self._transition_payment(payment, PaymentStatus.REFUND_PENDING)
        self.outbox.add_event(
            aggregate_id=booking.id,
            event_type=BOOKING_REFUND_REQUIRED,
            payload={
                "booking_id": booking.id,
                "show_id": booking.show_id,
                "payment_id": gateway_payment_id,
                "amount": str(payment.amount),
                "reason": reason,
            },
            dedupe_key=f"booking:{booking.id}:refund_required:{gateway_payment_id}",
        )

    def _capture(self, payment: Payment, gateway_payment_id: str, signature: str) -> None:
        self.payment_repository.record_capture(
            payment,
            gateway_payment_id=gateway_payment_id,
            signature=signature,
            captured_at=datetime.now(timezone.utc),
        )

    def _transition_booking(self, booking: Booking, to_status: BookingStatus) -> None:
        BookingStateMachine.validate_transition(booking.status, to_status)
        self.booking_repository.update_status(booking, to_status)

    def _transition_payment(self, payment: Payment, to_status: PaymentStatus) -> None:
        PaymentStateMachine.validate_transition(payment.status, to_status)
        self.payment_repository.update_status(payment, to_status)
