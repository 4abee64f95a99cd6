from datetime import timedelta, datetime
from typing import NamedTuple, Union

import jwt
from pydantic import BaseModel, ValidationError

from database.db import UTC
from logger import logger


ACCESS_TOKEN_ISSUER = "capify-auth"
REFRESH_TOKEN_ISSUER = "capify-refresh"


class TokenValidationError(Exception):
    """The token is malformed, badly signed, expired or of an unknown class."""


class TokenGenerationError(Exception):
    pass


# schema
class TokenClaims(BaseModel):
    user_id: int
    mobile_number: str
    iat: int
    exp: int
    iss: str
    sub: str


class AccessTokenClaims(TokenClaims):
    pass


class RefreshTokenClaims(TokenClaims):
    pass


CLAIMS_BY_ISSUER = {
    ACCESS_TOKEN_ISSUER: AccessTokenClaims,
    REFRESH_TOKEN_ISSUER: RefreshTokenClaims,
}


class TokenPair(NamedTuple):
    access_token: str
    refresh_token: str


class TokenIssuer:
    """
    Issues and validates the signed session tokens.

    The signing secret is passed in by whoever builds the issuer (normally
    `from_settings` at startup); there is no fallback secret.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_token_ttl: timedelta = timedelta(hours=24),
        refresh_token_ttl: timedelta = timedelta(days=7),
    ):
        if not secret:
            raise ValueError("JWT signing secret must not be empty")

        self._secret = secret
        self.algorithm = algorithm
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl

    @classmethod
    def from_settings(cls, settings) -> "TokenIssuer":
        return cls(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            access_token_ttl=timedelta(hours=settings.access_token_expire_hours),
            refresh_token_ttl=timedelta(days=settings.refresh_token_expire_days),
        )

    def _create_token(self, user, issuer: str, ttl: timedelta) -> str:
        issued_at = datetime.now(UTC)
        expire = issued_at + ttl

        claims = {
            "user_id": user.id,
            "mobile_number": user.mobile_number,
            "iat": int(issued_at.timestamp()),
            "exp": int(expire.timestamp()),
            "iss": issuer,
            "sub": str(user.id),
        }

        try:
            return jwt.encode(claims, self._secret, algorithm=self.algorithm)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            logger.error(msg=f"Error while signing {issuer} token: {e}")
            raise TokenGenerationError("Failed to sign token") from e

    def generate_access_token(self, user) -> str:
        return self._create_token(user, ACCESS_TOKEN_ISSUER, self.access_token_ttl)

    def generate_refresh_token(self, user) -> str:
        return self._create_token(user, REFRESH_TOKEN_ISSUER, self.refresh_token_ttl)

    def generate_token_pair(self, user) -> TokenPair:
        return TokenPair(
            access_token=self.generate_access_token(user),
            refresh_token=self.generate_refresh_token(user),
        )

    def validate_token(self, token: str) -> Union[AccessTokenClaims, RefreshTokenClaims]:
        """
        Verify signature and expiry and return the typed claims.

        The concrete class tells access tokens from refresh tokens; callers
        check it with isinstance before trusting the token for a purpose.
        """
        if not token:
            raise TokenValidationError("Invalid or expired token")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "iss", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            logger.info(msg="Token has expired")
            raise TokenValidationError("Invalid or expired token") from e
        except jwt.InvalidTokenError as e:
            logger.warning(msg=f"Invalid token error: {e}")
            raise TokenValidationError("Invalid or expired token") from e

        claims_class = CLAIMS_BY_ISSUER.get(payload.get("iss"))
        if claims_class is None:
            logger.warning(msg=f"Token with unknown issuer: {payload.get('iss')}")
            raise TokenValidationError("Invalid or expired token")

        try:
            return claims_class(**payload)
        except ValidationError as e:
            logger.warning(msg=f"Token payload has unexpected shape: {e}")
            raise TokenValidationError("Invalid or expired token") from e
