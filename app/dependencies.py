import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated, Any

import jwt
from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import case, or_, select
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.models.connection import CONNECTED, Connection
from app.models.user import User

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


DbSession = Annotated[Session, Depends(get_db)]

security = HTTPBearer()


@lru_cache
def get_jwks_client(jwks_uri: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(jwks_uri, cache_keys=True)


def decode_token(token: str) -> dict[str, Any]:
    """Verify a bearer token and return its claims.

    With an identity provider domain configured, the token must be RS256 and
    signed by a key published in the provider's JWKS, with matching issuer and
    audience. Otherwise the shared development secret is used.

    Raises:
        jwt.InvalidTokenError: If the token fails verification.
    """
    if settings.auth_domain:
        jwks_client = get_jwks_client(
            f"https://{settings.auth_domain}/.well-known/jwks.json"
        )
        signing_key = jwks_client.get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.auth_audience,
            issuer=f"https://{settings.auth_domain}/",
        )
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        audience=settings.auth_audience,
    )


def get_token_claims(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> dict[str, Any]:
    try:
        claims = decode_token(credentials.credentials)
    except (jwt.InvalidTokenError, jwt.PyJWKClientError) as exc:
        logger.warning("Rejected bearer token: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)

    if not claims.get("sub"):
        logger.warning("Rejected bearer token without a subject")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return claims


TokenClaims = Annotated[dict[str, Any], Depends(get_token_claims)]


def get_current_user(claims: TokenClaims, db: DbSession) -> User:
    user = db.execute(
        select(User).where(User.sub == claims["sub"])
    ).scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not registered.",
        )
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


@dataclass
class Page:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def pagination(default_limit: int):
    """Build a dependency reading ``page`` and ``limit`` query parameters.

    Parameters:
        default_limit: Page size used when the caller sends no ``limit``.

    Returns:
        A dependency callable producing a :class:`Page`.
    """

    def dependency(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=default_limit, ge=1, le=MAX_PAGE_SIZE),
    ) -> Page:
        return Page(page=page, limit=limit)

    return dependency


def get_user_or_404(user_id: int, db: Session) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return user


def connected_user_ids(user_id: int):
    """Select the ids of every user with a connected relation to ``user_id``.

    Parameters:
        user_id: The user whose connections are wanted.

    Returns:
        A scalar select usable with ``in_()``.
    """
    return select(
        case(
            (Connection.requester_id == user_id, Connection.addressee_id),
            else_=Connection.requester_id,
        )
    ).where(
        Connection.status == CONNECTED,
        or_(
            Connection.requester_id == user_id,
            Connection.addressee_id == user_id,
        ),
    )
