from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from boxoffice.config import Settings, get_settings
from boxoffice.domain.exceptions import AuthenticationError, PaymentGatewayError
from boxoffice.domain.pricing import PricingCalculator
from boxoffice.infrastructure.auth.identity import TokenVerifier
from boxoffice.infrastructure.db.session import SessionLocal
from boxoffice.infrastructure.gateway.razorpay_gateway import RazorpayGateway

bearer_scheme = HTTPBearer(auto_error=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@lru_cache()
def get_token_verifier() -> TokenVerifier:
    return TokenVerifier(get_settings())


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> str:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - No token provided",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return verifier.verify(credentials.credentials)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def get_payment_gateway(settings: Settings = Depends(get_settings)) -> RazorpayGateway:
    try:
        return RazorpayGateway(settings.razorpay_key_id, settings.razorpay_key_secret)
    except PaymentGatewayError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc


def get_pricing_calculator(settings: Settings = Depends(get_settings)) -> PricingCalculator:
    return PricingCalculator(
        max_seats=settings.max_seats_per_booking,
        fee_percent=settings.convenience_fee_percent,
    )
