"""
Password reset: forgot-password -> verify-otp -> reset-password.

    [no request] --forgot_password--> [OTP pending] --verify_otp(ok)--> [reset authorized]
    [OTP pending] --verify_otp(wrong)--> [OTP pending]
    [OTP pending] --expiry--> [no request]
    [reset authorized] --reset_password--> [no request]

The OTP proves ownership of the mailbox; the reset token it is exchanged for
is the only credential ``reset_password`` accepts.
"""
from __future__ import annotations
import logging
import time
from typing import Callable

from sqlalchemy.orm import Session

from .. import crud
from ..core.exceptions import InvalidTokenError, MailDeliveryError, NotFoundError
from ..core.otp import OtpRegistry
from ..core.security import RESET_PURPOSE, TokenInvalid, TokenIssuer
from ..core.store import KeyValueStore
from ..utils import Mailer, mask_email

logger = logging.getLogger(__name__)


class PasswordResetService:
    used_token_prefix = "reset-jti:"

    def __init__(
            self,
            db: Session,
            registry: OtpRegistry,
            issuer: TokenIssuer,
            mailer: Mailer,
            used_tokens: KeyValueStore | None = None,
            clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.registry = registry
        self.issuer = issuer
        self.mailer = mailer
        # None disables single-use enforcement of reset tokens
        self.used_tokens = used_tokens
        self._clock = clock

    def forgot_password(self, email: str) -> None:
        user = crud.get_password_user_by_email(self.db, email=email)
        if not user:
            raise NotFoundError("No account found with this email or account was created with Google")

        code = self.registry.request(email)
        expires_minutes = int(self.registry.ttl_seconds // 60)
        if not self.mailer.send_otp_email(email, code, expires_minutes):
            raise MailDeliveryError()

        logger.info("Password reset OTP issued for %s", mask_email(email))

    def verify_otp(self, email: str, code: str) -> str:
        self.registry.verify(email, code)
        logger.info("OTP verified for %s", mask_email(email))
        return self.issuer.issue_reset_token(email)

    def _claims_for_reset(self, reset_token: str) -> dict:
        try:
            claims = self.issuer.verify(reset_token)
        except TokenInvalid as e:
            logger.info("Rejected reset token: %s", e)
            raise InvalidTokenError()

        if claims.get("purpose") != RESET_PURPOSE or not claims.get("email"):
            raise InvalidTokenError()

        jti = claims.get("jti")
        if self.used_tokens is not None and jti:
            exp = claims.get("exp")
            if exp is None:
                remaining = self.issuer.reset_ttl.total_seconds()
            else:
                remaining = max(float(exp) - self._clock(), 1.0)
            # claimed before the password write so concurrent replays lose the race
            if not self.used_tokens.put_if_absent(self.used_token_prefix + jti, True, remaining):
                logger.warning("Replay of a used reset token for %s", mask_email(claims["email"]))
                raise InvalidTokenError()

        return claims

    def reset_password(self, reset_token: str, new_password: str) -> None:
        claims = self._claims_for_reset(reset_token)
        email = claims["email"]

        try:
            crud.update_password(self.db, email=email, password=new_password)
        except Exception:
            jti = claims.get("jti")
            if self.used_tokens is not None and jti:
                self.used_tokens.delete(self.used_token_prefix + jti)
            raise

        logger.info("Password reset for %s", mask_email(email))
