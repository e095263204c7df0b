import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from boxoffice.api.dependencies import (
    get_current_user_id,
    get_db,
    get_payment_gateway,
    get_pricing_calculator,
)
from boxoffice.api.schemas.schemas import (
    BookingListResponse,
    BookingStatusResponse,
    BookingSummaryResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    PriceBreakdownResponse,
    RazorpayVerifyRequest,
    SeatOccupancyResponse,
    VerifyPaymentResponse,
)
from boxoffice.application.booking_queries import BookingQueryService
from boxoffice.application.booking_service import BookingService
from boxoffice.application.order_issuer import OrderIssuer
from boxoffice.application.payment_verifier import PaymentVerifier
from boxoffice.application.seat_inventory import SeatInventoryService
from boxoffice.config import get_settings
from boxoffice.domain.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    PaymentGatewayError,
    TransientStoreError,
    ValidationError,
)
from boxoffice.domain.pricing import PricingCalculator
from boxoffice.infrastructure.gateway.razorpay_gateway import RazorpayGateway


router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
def health():
    return {"message": "Box office booking core is running"}


@router.get("/shows/{show_id}/seats", response_model=SeatOccupancyResponse)
def get_show_seats(show_id: str, db: Session = Depends(get_db)):
    try:
        occupancy = SeatInventoryService(db).get_occupancy(show_id)
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except TransientStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc

    return SeatOccupancyResponse(
        show_id=occupancy.show_id,
        total_seats=occupancy.total_seats,
        available_seats=occupancy.available_seats,
        occupied_seats=sorted(occupancy.occupied),
        held_seats=sorted(occupancy.held),
    )


@router.post("/orders", response_model=CreateOrderResponse)
def create_order(
    request: CreateOrderRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    pricing: PricingCalculator = Depends(get_pricing_calculator),
):
    logger.info(
        "Create order request. user_id=%s show_id=%s seats=%s",
        user_id,
        request.show_id,
        len(request.seat_ids),
    )
    issuer = OrderIssuer(
        db,
        gateway=gateway,
        pricing=pricing,
        currency=get_settings().payment_currency,
    )

    try:
        order = issuer.create_order(
            user_id=user_id,
            event_id=request.event_id,
            show_id=request.show_id,
            seat_ids=request.seat_ids,
            ticket_price=request.ticket_price,
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except PaymentGatewayError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc
    except TransientStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc

    return CreateOrderResponse(
        order_id=order.order_id,
        amount=order.amount,
        currency=order.currency,
        booking_id=order.booking_id,
        key_id=order.key_id,
        receipt=order.receipt,
        price=PriceBreakdownResponse(
            unit_price=order.price.unit_price,
            seat_count=order.price.seat_count,
            subtotal=order.price.subtotal,
            convenience_fee=order.price.convenience_fee,
            total=order.price.total,
        ),
        reconciliation_required=order.reconciliation_required,
    )


@router.post("/payments/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    request: RazorpayVerifyRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
):
    verifier = PaymentVerifier(db, gateway=gateway, currency=get_settings().payment_currency)

    try:
        result = verifier.verify_payment(
            user_id=user_id,
            booking_id=request.booking_id,
            gateway_payment_id=request.razorpay_payment_id,
            gateway_order_id=request.razorpay_order_id,
            signature=request.razorpay_signature,
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc

    response = VerifyPaymentResponse(
        success=result.success,
        booking_id=result.booking_id,
        status=result.status.value if result.status else None,
        reason=result.reason.value if result.reason else None,
        message=(
            "Payment verified successfully"
            if result.success
            else "Payment verification failed"
        ),
        reconciliation_required=result.reconciliation_required,
    )
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=response.model_dump(),
        )
    return response


@router.get("/bookings", response_model=BookingListResponse)
def list_bookings(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        bookings = BookingQueryService(db).list_bookings(user_id)
    except TransientStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc

    return BookingListResponse(
        bookings=[
            BookingSummaryResponse(**asdict(summary))
            for summary in bookings
        ]
    )


@router.post("/bookings/{booking_id}/cancel", response_model=BookingStatusResponse)
def cancel_booking(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = BookingService(db)

    try:
        booking = service.cancel_booking(user_id=user_id, booking_id=booking_id)
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidStateTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except TransientStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc

    return BookingStatusResponse(
        booking_id=booking.id,
        status=booking.status.value,
        refund_required=booking.refund_required,
    )
