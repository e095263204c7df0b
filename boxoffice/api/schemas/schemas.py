from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class SeatOccupancyResponse(BaseModel):
    show_id: str
    total_seats: int
    available_seats: int
    occupied_seats: list[str]
    held_seats: list[str]


class CreateOrderRequest(BaseModel):
    event_id: str
    show_id: str
    seat_ids: list[str]
    # Display estimate only; the stored show price is always charged.
    ticket_price: Decimal | None = None


class PriceBreakdownResponse(BaseModel):
    unit_price: Decimal
    seat_count: int
    subtotal: Decimal
    convenience_fee: Decimal
    total: Decimal


class CreateOrderResponse(BaseModel):
    success: bool = True
    order_id: str
    amount: int
    currency: str
    booking_id: str | None = None
    key_id: str
    receipt: str
    price: PriceBreakdownResponse
    reconciliation_required: bool = False


class RazorpayVerifyRequest(BaseModel):
    booking_id: str
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class VerifyPaymentResponse(BaseModel):
    success: bool
    booking_id: str
    status: str | None = None
    reason: str | None = None
    message: str
    reconciliation_required: bool = False


class BookingSummaryResponse(BaseModel):
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
    show_date_time: datetime | None = None
    seats: list[str]
    ticket_count: int
    subtotal: Decimal
    convenience_fee: Decimal
    total_amount: Decimal
    status: str
    payment_status: str
    payment_id: str | None = None
    refund_required: bool
    booking_date: datetime


class BookingListResponse(BaseModel):
    success: bool = True
    bookings: list[BookingSummaryResponse]


class BookingStatusResponse(BaseModel):
    booking_id: str
    status: str
    refund_required: bool = False
