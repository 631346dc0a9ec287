from typing import Optional

from fastapi import Request, Depends
from sqlalchemy.orm import Session

from .config import settings
from .exceptions import ForbiddenError, UnauthorizedError
from .google import GoogleTokenVerifier, google_verifier
from .otp import OtpRegistry
from .security import TokenInvalid, TokenIssuer
from .store import InMemoryStore, KeyValueStore
from app import schemas
from app.database import get_db
from app.services.auth import AuthService
from app.services.password_reset import PasswordResetService
from app.utils import Mailer

# process-wide state; swap InMemoryStore for a shared cache when running more than one instance
store = InMemoryStore()
otp_registry = OtpRegistry.from_settings(store, settings)
token_issuer = TokenIssuer.from_settings(settings)
mailer = Mailer(settings)


def get_token_issuer() -> TokenIssuer:
    return token_issuer


def get_otp_registry() -> OtpRegistry:
    return otp_registry


def get_used_token_store() -> Optional[KeyValueStore]:
    return store if settings.RESET_TOKEN_SINGLE_USE else None


def get_mailer() -> Mailer:
    return mailer


def get_google_verifier() -> GoogleTokenVerifier:
    return google_verifier


def get_auth_service(
        db: Session = Depends(get_db),
        issuer: TokenIssuer = Depends(get_token_issuer),
        verifier: GoogleTokenVerifier = Depends(get_google_verifier),
) -> AuthService:
    return AuthService(db, issuer, verifier)


def get_password_reset_service(
        db: Session = Depends(get_db),
        registry: OtpRegistry = Depends(get_otp_registry),
        issuer: TokenIssuer = Depends(get_token_issuer),
        mail: Mailer = Depends(get_mailer),
        used_tokens: Optional[KeyValueStore] = Depends(get_used_token_store),
) -> PasswordResetService:
    return PasswordResetService(db, registry, issuer, mail, used_tokens=used_tokens)


async def get_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Access token required")
    return token.strip()


async def get_current_user(
        token: str = Depends(get_bearer_token),
        issuer: TokenIssuer = Depends(get_token_issuer),
) -> schemas.CurrentUser:
    try:
        payload = issuer.verify(token)
    except TokenInvalid:
        raise ForbiddenError("Invalid or expired token")

    user_id = payload.get("sub")
    email = payload.get("email")
    if user_id is None or email is None or not str(user_id).isdigit():
        raise ForbiddenError("Invalid or expired token")

    return schemas.CurrentUser(id=int(user_id), email=email)
