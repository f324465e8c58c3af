"""
Registration, login and bearer tokens.

Passwords are stored as salted werkzeug hashes. Tokens are HS256 JWTs
signed with settings.jwt_secret_key and scoped by issuer and audience.

Identity is never ambient: the request layer calls resolve_user() once per
request and passes the resulting user id into every operation that needs it.
"""

import logging
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cardstore.config import settings
from cardstore.db import operations as ops
from cardstore.models.db import UserDB
from cardstore.models.failure import (
    DuplicateEmailError,
    DuplicateUsernameError,
    InvalidCredentialsError,
    InvalidTokenError,
)
from cardstore.models.requests import LoginRequest, RegisterRequest, parse_request
from cardstore.models.views import LoginResult, TokenClaims, UserView
from cardstore.services.users import record_login

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


async def register(
    session: AsyncSession, request: RegisterRequest | Mapping[str, Any]
) -> UserView:
    """
    Create a new account.

    A registration that loses a race on the username or email rolls back the
    session before raising the matching duplicate error.

    Raises:
        ValidationFailedError: If the request is invalid
        DuplicateUsernameError: If the username is taken
        DuplicateEmailError: If the email is taken
    """
    req = parse_request(RegisterRequest, request)

    if await ops.get_user_by_username(session, req.username) is not None:
        raise DuplicateUsernameError(req.username)
    if await ops.get_user_by_email(session, req.email) is not None:
        raise DuplicateEmailError(req.email)

    user = UserDB(username=req.username, email=req.email, is_active=True, **req.profile())
    user.set_password(req.password)
    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        # A concurrent registration took the name or email after the checks above.
        await session.rollback()
        if await ops.get_user_by_username(session, req.username) is not None:
            raise DuplicateUsernameError(req.username) from None
        if await ops.get_user_by_email(session, req.email) is not None:
            raise DuplicateEmailError(req.email) from None
        raise

    logger.info("USER_REGISTERED", extra={"user_id": user.id, "username": user.username})
    return ops.user_to_model(user)


async def authenticate(session: AsyncSession, identifier: str, password: str) -> UserDB | None:
    """
    Check credentials. identifier is a username or an email.

    Returns:
        The user, or None if it doesn't exist, is inactive, or the password
        doesn't match.
    """
    user = await ops.get_user_by_username(session, identifier)
    if user is None:
        user = await ops.get_user_by_email(session, identifier)
    if user is None or not user.is_active:
        return None
    if not user.check_password(password):
        return None
    return user


async def login(
    session: AsyncSession,
    identifier: str | LoginRequest | Mapping[str, Any],
    password: str | None = None,
) -> LoginResult:
    """
    Authenticate and issue a token.

    Accepts either (identifier, password) or a LoginRequest.

    Raises:
        InvalidCredentialsError: For any failed login, without saying why
    """
    if isinstance(identifier, str):
        req = parse_request(LoginRequest, {"username_or_email": identifier, "password": password})
    else:
        req = parse_request(LoginRequest, identifier)

    user = await authenticate(session, req.username_or_email, req.password)
    if user is None:
        logger.info("LOGIN_FAILED", extra={"identifier": req.username_or_email})
        raise InvalidCredentialsError()

    await record_login(session, user)
    token, expires_at = issue_token(user)
    logger.info("LOGIN_SUCCEEDED", extra={"user_id": user.id})
    return LoginResult(token=token, user=ops.user_to_model(user), expires_at=expires_at)


def issue_token(user: UserDB, expires_in: timedelta | None = None) -> tuple[str, datetime]:
    """
    Sign a token for user.

    Returns:
        Tuple of (token, expiry as naive UTC).
    """
    if expires_in is None:
        expires_in = timedelta(hours=settings.jwt_expire_hours)
    now = datetime.now(UTC)
    expires = now + expires_in
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "email": user.email,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": expires,
    }
    token = jwt.encode(payload, settings.jwt_secret_key, algorithm=ALGORITHM)
    return token, expires.replace(tzinfo=None)


def _decode(token: str) -> dict[str, Any]:
    return jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[ALGORITHM],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        options={"require": ["exp", "iat", "sub"]},
    )


def validate_token(token: str) -> bool:
    """Check signature, issuer, audience and expiry."""
    try:
        _decode(token)
    except jwt.InvalidTokenError:
        return False
    return True


def decode_token(token: str) -> TokenClaims:
    """
    Raises:
        InvalidTokenError: If the token fails validation or its claims are malformed
    """
    try:
        claims = _decode(token)
        return TokenClaims(
            user_id=int(claims["sub"]),
            username=claims.get("username", ""),
            email=claims.get("email", ""),
            expires_at=datetime.fromtimestamp(claims["exp"], UTC).replace(tzinfo=None),
        )
    except jwt.InvalidTokenError as e:
        raise InvalidTokenError(detail=type(e).__name__) from e
    except (KeyError, ValueError) as e:
        raise InvalidTokenError(detail="malformed claims") from e


async def resolve_user(session: AsyncSession, token: str) -> UserDB | None:
    """
    Resolve a bearer token to an active user.

    Returns None for an invalid token, or when the user no longer exists or
    has been deactivated since the token was issued.
    """
    try:
        claims = decode_token(token)
    except InvalidTokenError:
        return None
    user = await ops.get_user(session, claims.user_id)
    if user is None or not user.is_active:
        return None
    return user
