# boxoffice/infrastructure/gateway/razorpay_gateway.py

import logging

import razorpay
import requests

from boxoffice.domain.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)

_GATEWAY_ERRORS = (
    razorpay.errors.BadRequestError,
    razorpay.errors.GatewayError,
    razorpay.errors.ServerError,
    requests.exceptions.RequestException,
)


class RazorpayGateway:
    """
    Thin adapter over the Razorpay SDK. Order creation talks to the
    Razorpay API; signature verification is local HMAC-SHA256 over
    "order_id|payment_id" keyed with the account secret.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        client: razorpay.Client | None = None,
    ):
        if not key_id or not key_secret:
            raise PaymentGatewayError(
                "Razorpay keys not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
            )
        self.key_id = key_id
        self._client = client or razorpay.Client(auth=(key_id, key_secret))

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> str:
        try:
            order = self._client.order.create(
                {
                    "amount": amount_minor,
                    "currency": currency,
                    "receipt": receipt,
                    "notes": notes,
                }
            )
        except _GATEWAY_ERRORS as exc:
            logger.error("Razorpay order creation failed. receipt=%s error=%s", receipt, exc)
            raise PaymentGatewayError("Failed to create payment order") from exc

        order_id = order.get("id") if isinstance(order, dict) else None
        if not order_id:
            logger.error("Razorpay returned an order without id. receipt=%s", receipt)
            raise PaymentGatewayError("Payment gateway returned an invalid order")
        return order_id

    def verify_payment_signature(
        self,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> bool:
        # compare_digest only accepts ASCII strings.
        if not signature.isascii():
            return False
        try:
            self._client.utility.verify_payment_signature(
                {
                    "razorpay_order_id": gateway_order_id,
                    "razorpay_payment_id": gateway_payment_id,
                    "razorpay_signature": signature,
                }
            )
        except razorpay.errors.SignatureVerificationError:
            return False
        return True
