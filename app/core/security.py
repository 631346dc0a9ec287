from __future__ import annotations
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

from jose import jwt, JWTError
from pwdlib import PasswordHash
from pwdlib.hashers.bcrypt import BcryptHasher

from .config import Settings, settings

RESET_PURPOSE = "password_reset"

password_hash = PasswordHash((BcryptHasher(rounds=settings.BCRYPT_ROUNDS),))


def verify_password(plain_password, password):
    return password_hash.verify(plain_password, password)


def get_password_hash(password):
    return password_hash.hash(password)


class TokenInvalid(Exception):
    """Raised for any token that fails verification: forged, malformed or expired."""


class TokenIssuer:
    """
    Mints and verifies signed, expiring JWTs.

    The issuer knows nothing about claim semantics beyond ``exp``/``iat``;
    callers check ``purpose`` (or ``sub``) themselves after ``verify``.
    """

    def __init__(
            self,
            secret_key: str,
            algorithm: str = "HS256",
            session_ttl: timedelta = timedelta(hours=24),
            reset_ttl: timedelta = timedelta(minutes=10),
            clock: Callable[[], datetime] | None = None,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.session_ttl = session_ttl
        self.reset_ttl = reset_ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, config: Settings) -> "TokenIssuer":
        return cls(
            secret_key=config.SECRET_KEY,
            algorithm=config.ALGORITHM,
            session_ttl=timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
            reset_ttl=timedelta(minutes=config.RESET_TOKEN_EXPIRE_MINUTES),
        )

    def issue(self, claims: Dict[str, Any], ttl: timedelta) -> str:
        to_encode = claims.copy()
        now = self._clock()
        to_encode.update({"iat": now, "exp": now + ttl})
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as exc:
            raise TokenInvalid(str(exc)) from exc

    def issue_session_token(self, user) -> str:
        return self.issue({"sub": str(user.id), "email": user.email}, self.session_ttl)

    def issue_reset_token(self, email: str) -> str:
        claims = {
            "email": email,
            "purpose": RESET_PURPOSE,
            "jti": secrets.token_urlsafe(16),
        }
        return self.issue(claims, self.reset_ttl)
