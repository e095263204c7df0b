# boxoffice/infrastructure/repositories/payment_repository.py

from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import select

from boxoffice.infrastructure.db.models import Payment
from boxoffice.domain.state_machine import PaymentStatus


class PaymentRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_booking_id(self, booking_id: str) -> Payment | None:
        stmt = select(Payment).where(Payment.booking_id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_gateway_payment_id(self, gateway_payment_id: str) -> Payment | None:
        stmt = select(Payment).where(Payment.gateway_payment_id == gateway_payment_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def create_payment(
        self,
        booking_id: str,
        user_id: str,
        gateway_order_id: str,
        amount: Decimal,
        currency: str,
    ) -> Payment:
        payment = Payment(
            booking_id=booking_id,
            user_id=user_id,
            gateway_order_id=gateway_order_id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING,
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    def record_capture(
        self,
        payment: Payment,
        gateway_payment_id: str,
        signature: str,
        captured_at: datetime,
    ) -> None:
        payment.gateway_payment_id = gateway_payment_id
        payment.signature = signature
        payment.payment_date = captured_at

    def update_status(self, payment: Payment, new_status: PaymentStatus) -> None:
        payment.status = new_status
