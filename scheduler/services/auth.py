"""Credential lifecycle: registration, login, refresh-token rotation, logout.

Access tokens are stateless JWTs.  Refresh tokens are JWTs signed with a
separate secret, and only the most recently issued one per user is valid:
it is kept in the token store under ``refreshToken:<user id>`` and every
login or refresh overwrites it.  Concurrent refreshes for one user are
last-writer-wins; the loser simply sees an invalid token afterwards.
"""

from __future__ import annotations

import logging
import time
import uuid

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from scheduler.config import Settings
from scheduler.domain.errors import ErrorKind, ServiceError, TokenErrorReason
from scheduler.domain.models import (
    LoginRequest,
    PublicUser,
    RegisterRequest,
    TokenClaims,
    TokenPair,
    User,
)
from scheduler.domain.results import service_boundary
from scheduler.repos.memory import Database, UserRepository
from scheduler.repos.tokens import TokenStore, refresh_token_key

logger = logging.getLogger(__name__)

BEARER_SCHEME = "Bearer"


def _token_error(reason: TokenErrorReason, message: str) -> ServiceError:
    return ServiceError(ErrorKind.INVALID_TOKEN, message, reason=reason)


class CredentialManager:
    def __init__(
        self,
        settings: Settings,
        db: Database,
        token_store: TokenStore,
        hasher: PasswordHasher | None = None,
    ) -> None:
        self.settings = settings
        self.db = db
        self.user_repo = UserRepository(db)
        self.token_store = token_store
        self.hasher = hasher or PasswordHasher()

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    def _encode(self, user: User, secret: str, ttl_seconds: int) -> str:
        now = int(time.time())
        payload = {
            "id": user.id,
            "email": user.email,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + ttl_seconds,
        }
        return jwt.encode(payload, secret, algorithm=self.settings.JWT_ALGORITHM)

    def _decode(self, token: str, secret: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.settings.JWT_ALGORITHM],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise _token_error(TokenErrorReason.EXPIRED, "Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise _token_error(TokenErrorReason.INVALID, "Invalid token") from exc
        if not isinstance(payload.get("id"), str) or not isinstance(
            payload.get("email"), str
        ):
            raise _token_error(TokenErrorReason.INVALID, "Invalid token")
        return TokenClaims(id=payload["id"], email=payload["email"])

    def _issue(self, user: User) -> TokenPair:
        pair = TokenPair(
            token=self._encode(
                user, self.settings.JWT_SECRET, self.settings.ACCESS_TOKEN_TTL_SECONDS
            ),
            refresh_token=self._encode(
                user,
                self.settings.REFRESH_TOKEN_SECRET,
                self.settings.REFRESH_TOKEN_TTL_SECONDS,
            ),
        )
        self.token_store.set(
            refresh_token_key(user.id),
            pair.refresh_token,
            self.settings.REFRESH_TOKEN_TTL_SECONDS,
        )
        return pair

    def verify_authorization(self, authorization: str | None) -> TokenClaims:
        """Check a ``Bearer <access token>`` header and return its identity.

        Raises ``ServiceError`` with an ``INVALID_TOKEN`` kind whose reason
        tells a missing, malformed, wrong-scheme, expired or invalid
        credential apart.
        """
        if not authorization:
            raise _token_error(
                TokenErrorReason.MISSING_HEADER, "Authorization header missing"
            )
        parts = authorization.split(" ")
        if len(parts) != 2 or not parts[1]:
            raise _token_error(
                TokenErrorReason.MALFORMED_HEADER, "Invalid authorization header format"
            )
        scheme, token = parts
        if scheme != BEARER_SCHEME:
            raise _token_error(TokenErrorReason.WRONG_SCHEME, "Invalid token type")
        return self._decode(token, self.settings.JWT_SECRET)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @service_boundary
    def authorize(self, authorization: str | None) -> TokenClaims:
        return self.verify_authorization(authorization)

    @service_boundary
    def register(self, payload: RegisterRequest) -> PublicUser:
        with self.db.transaction():
            if self.user_repo.get_by_email(payload.email) is not None:
                raise ServiceError(
                    ErrorKind.ALREADY_EXISTS, "User with this email already exists"
                )
            user = User(
                firstname=payload.firstname,
                lastname=payload.lastname,
                email=payload.email,
                password_hash=self.hasher.hash(payload.password),
            )
            self.user_repo.add(user)
        logger.info("Registered user %s", user.id)
        return user.public()

    @service_boundary
    def login(self, payload: LoginRequest) -> TokenPair:
        invalid = ServiceError(ErrorKind.INVALID_CREDENTIALS, "Invalid email or password")
        with self.db.transaction():
            user = self.user_repo.get_by_email(payload.email)
        if user is None:
            raise invalid
        try:
            self.hasher.verify(user.password_hash, payload.password)
        except (VerificationError, InvalidHashError) as exc:
            raise invalid from exc

        pair = self._issue(user)
        logger.info("User %s logged in", user.id)
        return pair

    @service_boundary
    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair, invalidating the old one."""
        claims = self._decode(refresh_token, self.settings.REFRESH_TOKEN_SECRET)
        key = refresh_token_key(claims.id)

        stored = self.token_store.get(key)
        if stored is None or stored != refresh_token:
            logger.warning("Refresh token for user %s is not the current one", claims.id)
            raise _token_error(
                TokenErrorReason.REUSED, "Invalid or expired refresh token"
            )

        user = self.user_repo.get(claims.id)
        if user is None:
            self.token_store.delete(key)
            raise ServiceError(ErrorKind.NOT_FOUND, "User not found")

        pair = self._issue(user)
        logger.info("Rotated refresh token for user %s", user.id)
        return pair

    @service_boundary
    def logout(self, authorization: str | None) -> None:
        claims = self.verify_authorization(authorization)
        self.token_store.delete(refresh_token_key(claims.id))
        logger.info("User %s logged out", claims.id)
