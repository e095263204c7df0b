# boxoffice/infrastructure/auth/identity.py

import logging

import jwt

from boxoffice.config import Settings
from boxoffice.domain.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class TokenVerifier:
    """
    Verifies identity-provider bearer tokens and returns the subject.

    With AUTH_JWKS_URL set, RS256 tokens are checked against the provider's
    published keys. Otherwise AUTH_JWT_SECRET enables HS256 for local use.
    """

    def __init__(self, settings: Settings):
        self._secret = settings.auth_jwt_secret
        self._issuer = settings.auth_issuer or None
        self._audience = settings.auth_audience or None
        self._jwks_client = (
            jwt.PyJWKClient(settings.auth_jwks_url, cache_keys=True)
            if settings.auth_jwks_url
            else None
        )

    def verify(self, token: str) -> str:
        if not token:
            raise AuthenticationError("Missing bearer token")

        try:
            if self._jwks_client is not None:
                key = self._jwks_client.get_signing_key_from_jwt(token).key
                algorithms = ["RS256"]
            elif self._secret:
                key = self._secret
                algorithms = ["HS256"]
            else:
                raise AuthenticationError("Identity provider not configured")

            claims = jwt.decode(
                token,
                key,
                algorithms=algorithms,
                audience=self._audience,
                issuer=self._issuer,
                options={
                    "require": ["exp", "sub"],
                    "verify_aud": self._audience is not None,
                },
            )
        except jwt.PyJWTError as exc:
            logger.info("Rejected bearer token: %s", exc)
            raise AuthenticationError("Invalid or expired token") from exc

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationError("Token has no subject claim")
        return subject
