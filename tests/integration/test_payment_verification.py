import json

import pytest
from sqlalchemy import func, select

from boxoffice.application.payment_verifier import VerificationReason
from boxoffice.domain.exceptions import NotFoundError, ValidationError
from boxoffice.domain.state_machine import BookingStatus, PaymentStatus
from boxoffice.infrastructure.db.models import Booking, SeatReservation
from boxoffice.infrastructure.repositories.booking_repository import BookingRepository
from boxoffice.infrastructure.repositories.outbox_repository import (
    BOOKING_CONFIRMED,
    BOOKING_PAYMENT_FAILED,
    BOOKING_REFUND_REQUIRED,
    OutboxRepository,
)
from boxoffice.infrastructure.repositories.payment_repository import PaymentRepository
from boxoffice.infrastructure.repositories.show_repository import ShowRepository


@pytest.fixture()
def place_order(issuer, show):
    def _place(user_id="user_1", seat_ids=("A1", "A2")):
        return issuer.create_order(
            user_id=user_id,
            event_id=show.event_id,
            show_id=show.id,
            seat_ids=list(seat_ids),
        )

    return _place


@pytest.fixture()
def pay(verifier, signer):
    def _pay(order, payment_id="pay_1", user_id="user_1", signature=None):
        return verifier.verify_payment(
            user_id=user_id,
            booking_id=order.booking_id,
            gateway_payment_id=payment_id,
            gateway_order_id=order.order_id,
            signature=signature or signer(order.order_id, payment_id),
        )

    return _pay


def _reserved(db, show_id) -> list[str]:
    stmt = select(SeatReservation.seat_id).where(SeatReservation.show_id == show_id)
    return sorted(db.execute(stmt).scalars().all())


def _event_types(db, booking_id) -> list[str]:
    return [event.event_type for event in OutboxRepository(db).list_for_aggregate(booking_id)]


def test_valid_signature_confirms_booking(db, show, place_order, pay):
    order = place_order()

    result = pay(order)

    assert result.success is True
    assert result.status == BookingStatus.CONFIRMED
    booking = db.get(Booking, order.booking_id)
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.refund_required is False

    payment = PaymentRepository(db).get_by_booking_id(order.booking_id)
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.gateway_payment_id == "pay_1"
    assert payment.payment_date is not None

    assert _reserved(db, show.id) == ["A1", "A2"]
    assert show.occupied_seats == {"A1": True, "A2": True}

    events = OutboxRepository(db).list_for_aggregate(order.booking_id)
    assert [event.event_type for event in events] == [BOOKING_CONFIRMED]
    assert json.loads(events[0].payload)["seats"] == ["A1", "A2"]


def test_tampered_signature_never_confirms(db, show, place_order, pay, signer):
    order = place_order()

    result = pay(order, signature=signer(order.order_id, "pay_other"))

    assert result.success is False
    assert result.reason == VerificationReason.INVALID_SIGNATURE
    assert db.get(Booking, order.booking_id).status == BookingStatus.FAILED
    assert PaymentRepository(db).get_by_booking_id(order.booking_id).status == PaymentStatus.FAILED
    assert _reserved(db, show.id) == []
    assert _event_types(db, order.booking_id) == [BOOKING_PAYMENT_FAILED]


def test_tampered_retries_stay_failed(db, place_order, pay):
    order = place_order()

    for attempt in range(3):
        result = pay(order, payment_id=f"pay_{attempt}", signature="e" * 64)
        assert result.success is False

    assert db.get(Booking, order.booking_id).status == BookingStatus.FAILED
    assert _event_types(db, order.booking_id) == [BOOKING_PAYMENT_FAILED]


def test_valid_payment_after_failure_is_flagged_for_refund(db, place_order, pay):
    order = place_order()
    pay(order, signature="0" * 64)

    result = pay(order, payment_id="pay_late")

    assert result.success is False
    assert result.reason == VerificationReason.BOOKING_CLOSED
    booking = db.get(Booking, order.booking_id)
    assert booking.status == BookingStatus.FAILED
    assert booking.refund_required is True
    payment = PaymentRepository(db).get_by_booking_id(order.booking_id)
    assert payment.status == PaymentStatus.REFUND_PENDING
    assert payment.gateway_payment_id == "pay_late"


def test_tampered_signature_does_not_touch_confirmed_booking(db, place_order, pay):
    order = place_order()
    pay(order)

    result = pay(order, signature="f" * 64)

    assert result.success is False
    assert db.get(Booking, order.booking_id).status == BookingStatus.CONFIRMED


def test_double_verification_is_idempotent(db, show, place_order, pay):
    order = place_order()

    first = pay(order)
    second = pay(order)

    assert first.success is True
    assert second.success is True
    assert second.status == BookingStatus.CONFIRMED
    assert _reserved(db, show.id) == ["A1", "A2"]
    assert _event_types(db, order.booking_id) == [BOOKING_CONFIRMED]


def test_second_booking_for_same_seat_fails_closed(db, show, place_order, pay):
    first = place_order(user_id="user_1", seat_ids=["A1", "A2"])
    second = place_order(user_id="user_2", seat_ids=["A2", "A3"])

    assert pay(first, payment_id="pay_1", user_id="user_1").success is True
    result = pay(second, payment_id="pay_2", user_id="user_2")

    assert result.success is False
    assert result.reason == VerificationReason.SEAT_UNAVAILABLE

    loser = db.get(Booking, second.booking_id)
    assert loser.status == BookingStatus.FAILED
    assert loser.refund_required is True
    payment = PaymentRepository(db).get_by_booking_id(loser.id)
    assert payment.status == PaymentStatus.REFUND_PENDING
    assert payment.gateway_payment_id == "pay_2"

    assert _reserved(db, show.id) == ["A1", "A2"]
    assert _event_types(db, loser.id) == [BOOKING_REFUND_REQUIRED]


def test_unique_seat_constraint_catches_missed_conflict(db, show, place_order, pay, monkeypatch):
    first = place_order(user_id="user_1", seat_ids=["A1"])
    second = place_order(user_id="user_2", seat_ids=["A1"])
    assert pay(first, payment_id="pay_1", user_id="user_1").success is True

    original = ShowRepository.find_conflicting_reservations
    calls = []

    def blind_first_check(self, locked_show, seat_ids, booking_id):
        calls.append(booking_id)
        if len(calls) == 1:
            return []
        return original(self, locked_show, seat_ids, booking_id)

    monkeypatch.setattr(ShowRepository, "find_conflicting_reservations", blind_first_check)

    result = pay(second, payment_id="pay_2", user_id="user_2")

    assert len(calls) == 2
    assert result.success is False
    assert result.reason == VerificationReason.SEAT_UNAVAILABLE
    assert db.get(Booking, second.booking_id).status == BookingStatus.FAILED
    assert db.get(Booking, first.booking_id).status == BookingStatus.CONFIRMED
    assert _reserved(db, show.id) == ["A1"]


def test_at_most_one_confirmed_booking_per_seat(db, show, place_order, pay):
    orders = [place_order(user_id=f"user_{n}", seat_ids=["C5"]) for n in range(4)]

    results = [
        pay(order, payment_id=f"pay_{n}", user_id=f"user_{n}")
        for n, order in enumerate(orders)
    ]

    assert [result.success for result in results] == [True, False, False, False]
    confirmed = db.execute(
        select(func.count())
        .select_from(Booking)
        .where(Booking.status == BookingStatus.CONFIRMED)
    ).scalar_one()
    assert confirmed == 1
    assert _reserved(db, show.id) == ["C5"]


def test_store_failure_after_valid_signature_reports_success(
    db, place_order, pay, monkeypatch, store_outage, caplog
):
    order = place_order()
    monkeypatch.setattr(ShowRepository, "reserve_seats", store_outage)

    result = pay(order)

    assert result.success is True
    assert result.reconciliation_required is True
    assert "RECONCILIATION" in caplog.text
    db.expire_all()
    assert db.get(Booking, order.booking_id).status == BookingStatus.PENDING


def test_store_failure_with_invalid_signature_reports_failure(
    place_order, pay, monkeypatch, store_outage
):
    order = place_order()
    monkeypatch.setattr(BookingRepository, "get_for_user", store_outage)

    result = pay(order, signature="a" * 64)

    assert result.success is False
    assert result.reconciliation_required is True


def test_order_id_mismatch_rejected(db, place_order, verifier, signer):
    order = place_order()

    with pytest.raises(ValidationError, match="Order id"):
        verifier.verify_payment(
            user_id="user_1",
            booking_id=order.booking_id,
            gateway_payment_id="pay_1",
            gateway_order_id="order_forged",
            signature=signer("order_forged", "pay_1"),
        )

    assert db.get(Booking, order.booking_id).status == BookingStatus.PENDING


def test_payment_id_cannot_settle_two_bookings(place_order, pay, signer):
    first = place_order(user_id="user_1", seat_ids=["A1"])
    second = place_order(user_id="user_1", seat_ids=["B1"])
    pay(first, payment_id="pay_shared")

    with pytest.raises(ValidationError, match="already used"):
        pay(second, payment_id="pay_shared")


def test_booking_of_another_user_not_found(place_order, pay):
    order = place_order(user_id="user_1")

    with pytest.raises(NotFoundError):
        pay(order, user_id="user_2")


@pytest.mark.parametrize("field", ["booking_id", "gateway_payment_id", "gateway_order_id", "signature"])
def test_missing_fields_rejected(verifier, field):
    kwargs = {
        "user_id": "user_1",
        "booking_id": "b1",
        "gateway_payment_id": "pay_1",
        "gateway_order_id": "order_1",
        "signature": "abc",
    }
    kwargs[field] = ""

    with pytest.raises(ValidationError, match=field):
        verifier.verify_payment(**kwargs)


def test_seat_marked_occupied_on_show_blocks_confirmation(db, show, place_order, pay):
    order = place_order(seat_ids=["Z9"])
    show.occupied_seats = {"Z9": True}
    db.commit()

    result = pay(order)

    assert result.success is False
    assert result.reason == VerificationReason.SEAT_UNAVAILABLE
    booking = db.get(Booking, order.booking_id)
    assert booking.status == BookingStatus.FAILED
    assert booking.refund_required is True
    assert _reserved(db, show.id) == []
