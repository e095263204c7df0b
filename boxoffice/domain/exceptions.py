

class BoxOfficeError(Exception):
    """
    Base exception for all domain-level errors
    raised by the booking settlement core.
    """


class ValidationError(BoxOfficeError):
    """Raised when caller input is missing or malformed."""


class SeatUnavailableError(ValidationError):
    """Raised when requested seats are already confirmed for the show."""

    def __init__(self, seat_ids: list[str]):
        self.seat_ids = seat_ids
        super().__init__(
            f"Seats already booked: {', '.join(seat_ids)}"
        )


class NotFoundError(BoxOfficeError):
    """Raised when a show or booking does not exist for the caller."""


class PaymentGatewayError(BoxOfficeError):
    """Raised when the payment provider rejects or fails a request."""


class TransientStoreError(BoxOfficeError):
    """Raised when the datastore is unreachable or timing out."""


class AuthenticationError(BoxOfficeError):
    """Raised when a bearer token is missing, invalid or expired."""


class InvalidStateTransitionError(BoxOfficeError):
    """
    Raised when an illegal booking or payment state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)
