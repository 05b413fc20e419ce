"""Signed-in identity the storefront holds for the lifetime of a login"""
from dataclasses import dataclass
from jose import JWTError, jwt
from marketplace.core.exceptions import AuthenticationError
from typing import Optional

CONSUMER_ROLE = "consumer"


@dataclass(frozen=True)
class ConsumerSession:
    user_id: str
    role: str
    token: Optional[str] = None

    @property
    def is_consumer(self) -> bool:
        return self.role == CONSUMER_ROLE

    @classmethod
    def from_token(cls, token: str) -> "ConsumerSession":
        """
        Read identity claims from a bearer token issued by the auth service.
        The signature is not checked here; the cart service verifies it.
        """
        try:
            claims = jwt.get_unverified_claims(token)
        except JWTError as e:
            raise AuthenticationError("Malformed access token") from e

        if not claims.get("user_id"):
            raise AuthenticationError("Access token has no user_id")
        return cls(user_id=str(claims["user_id"]), role=claims.get("role", ""), token=token)
