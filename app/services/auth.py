"""
Registration, password login and Google login.

Every successful path ends in a 24h session token from the TokenIssuer.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from .. import crud, models
from ..core.exceptions import ConflictError, InvalidCredentialsError
from ..core.google import GoogleIdentity, GoogleTokenVerifier
from ..core.security import TokenIssuer, verify_password
from ..utils import mask_email

logger = logging.getLogger(__name__)

GOOGLE_ONLY_ACCOUNT = 'This account was created with Google. Please use "Continue with Google" to login.'
PASSWORD_ACCOUNT_EXISTS = (
    'An account with this email already exists. Please login with your password '
    'or use "Continue with Google" if you registered with Google.'
)
GOOGLE_ID_IN_USE = "This Google account is already linked to another email"


@dataclass
class AuthResult:
    token: str
    user: models.User


class AuthService:
    def __init__(self, db: Session, issuer: TokenIssuer, verifier: GoogleTokenVerifier | None = None):
        self.db = db
        self.issuer = issuer
        self.verifier = verifier

    def _session(self, user: models.User) -> AuthResult:
        return AuthResult(token=self.issuer.issue_session_token(user), user=user)

    def register(self, email: str, password: str) -> AuthResult:
        if crud.get_user_by_email(self.db, email=email):
            raise ConflictError("User already exists")

        try:
            user = crud.create_user(self.db, email=email, password=password)
        except IntegrityError:
            # lost a race with a concurrent registration for the same email
            self.db.rollback()
            raise ConflictError("User already exists")

        logger.info("Registered user id=%s email=%s", user.id, mask_email(email))
        return self._session(user)

    def login(self, email: str, password: str) -> AuthResult:
        user = crud.get_user_by_email(self.db, email=email)
        if not user:
            raise InvalidCredentialsError()

        if not user.password_hash:
            raise InvalidCredentialsError(GOOGLE_ONLY_ACCOUNT)

        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()

        return self._session(user)

    def login_with_identity(self, identity: GoogleIdentity) -> AuthResult:
        user = crud.get_user_by_email(self.db, email=identity.email)

        if user is None:
            try:
                user = crud.create_google_user(self.db, email=identity.email, google_id=identity.subject)
            except IntegrityError:
                # a concurrent first login created the row, or the Google id is taken by another email
                self.db.rollback()
                user = crud.get_user_by_email(self.db, email=identity.email)
                if user is None:
                    raise ConflictError(GOOGLE_ID_IN_USE)
            else:
                logger.info("Created Google user id=%s email=%s", user.id, mask_email(identity.email))
                return self._session(user)

        if user.password_hash and not user.google_id:
            raise ConflictError(PASSWORD_ACCOUNT_EXISTS)

        if not user.google_id:
            try:
                user = crud.link_google_id(self.db, user, identity.subject)
            except IntegrityError:
                self.db.rollback()
                raise ConflictError(GOOGLE_ID_IN_USE)
            logger.info("Linked Google account to user id=%s", user.id)

        return self._session(user)

    async def google_login(self, id_token: str) -> AuthResult:
        identity = await self.verifier.verify(id_token)
        return await run_in_threadpool(self.login_with_identity, identity)
