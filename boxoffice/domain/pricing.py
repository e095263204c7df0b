# boxoffice/domain/pricing.py

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Sequence

from boxoffice.domain.exceptions import ValidationError

MINOR_UNITS_PER_MAJOR = 100
# Fees are charged in whole major units (e.g. 49.95 -> 50).
FEE_QUANTUM = Decimal("1")
AMOUNT_QUANTUM = Decimal("0.01")
# Width of the seat_reservations.seat_id column.
MAX_SEAT_ID_LENGTH = 16


@dataclass(frozen=True)
class PriceBreakdown:
    unit_price: Decimal
    seat_count: int
    subtotal: Decimal
    convenience_fee: Decimal
    total: Decimal

    @property
    def total_minor_units(self) -> int:
        return to_minor_units(self.total)


def to_minor_units(amount: Decimal) -> int:
    """Converts a major-unit amount (rupees) to gateway minor units (paise)."""
    minor = (amount * MINOR_UNITS_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(minor)


def validate_seat_selection(seat_ids: Sequence[str], max_seats: int) -> list[str]:
    """
    Returns the seat identifiers stripped of surrounding whitespace,
    preserving request order.
    """
    if not seat_ids:
        raise ValidationError("At least one seat must be selected")
    if len(seat_ids) > max_seats:
        raise ValidationError(f"Maximum {max_seats} seats per booking")

    cleaned = []
    for seat_id in seat_ids:
        if not isinstance(seat_id, str) or not seat_id.strip():
            raise ValidationError("Seat identifiers must be non-empty strings")
        if len(seat_id.strip()) > MAX_SEAT_ID_LENGTH:
            raise ValidationError(
                f"Seat identifiers must be at most {MAX_SEAT_ID_LENGTH} characters"
            )
        cleaned.append(seat_id.strip())

    if len(set(cleaned)) != len(cleaned):
        raise ValidationError("Duplicate seat identifiers in request")
    return cleaned


def _as_price(value) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Ticket price must be a number") from exc
    if not price.is_finite() or price <= 0:
        raise ValidationError("Ticket price must be positive")
    return price.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


class PricingCalculator:
    """
    Derives subtotal, convenience fee and total from the stored ticket
    price. Client-side estimates are never an input here.
    """

    def __init__(self, max_seats: int = 10, fee_percent: Decimal = Decimal("5")):
        if max_seats <= 0:
            raise ValueError("max_seats must be positive")
        if fee_percent < 0:
            raise ValueError("fee_percent must not be negative")
        self.max_seats = max_seats
        self.fee_rate = Decimal(fee_percent) / Decimal(100)

    def calculate(self, unit_price, seat_ids: Sequence[str]) -> PriceBreakdown:
        seats = validate_seat_selection(seat_ids, self.max_seats)
        price = _as_price(unit_price)

        subtotal = price * len(seats)
        convenience_fee = (subtotal * self.fee_rate).quantize(
            FEE_QUANTUM,
            rounding=ROUND_HALF_UP,
        )
        return PriceBreakdown(
            unit_price=price,
            seat_count=len(seats),
            subtotal=subtotal,
            convenience_fee=convenience_fee,
            total=subtotal + convenience_fee,
        )
