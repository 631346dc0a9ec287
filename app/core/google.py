from __future__ import annotations
import logging
from dataclasses import dataclass

import httpx
from authlib.integrations.starlette_client import OAuth
from authlib.jose import JsonWebKey, JsonWebToken
from authlib.jose.errors import JoseError

from .config import settings
from .exceptions import OAuthVerificationError

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = ["https://accounts.google.com", "accounts.google.com"]

oauth = OAuth()
oauth.register(
    name='google',
    client_id=settings.GOOGLE_CLIENT_ID,
    client_secret=settings.GOOGLE_CLIENT_SECRET,
    server_metadata_url='https://accounts.google.com/.well-known/openid-configuration',
    client_kwargs={'scope': 'openid email profile'}
)


@dataclass(frozen=True)
class GoogleIdentity:
    email: str
    subject: str


class GoogleTokenVerifier:
    """Checks a Google ID token's signature against Google's JWKS and its audience against our client id."""

    def __init__(self, client, client_id: str, leeway: int = 60):
        self.client = client
        self.client_id = client_id
        self.leeway = leeway
        self._jwt = JsonWebToken(["RS256"])

    @property
    def claims_options(self):
        return {
            "iss": {"essential": True, "values": GOOGLE_ISSUERS},
            "aud": {"essential": True, "value": self.client_id},
            "sub": {"essential": True},
            "email": {"essential": True},
        }

    def _decode(self, id_token: str, jwk_set):
        claims = self._jwt.decode(
            id_token,
            key=JsonWebKey.import_key_set(jwk_set),
            claims_options=self.claims_options,
        )
        claims.validate(leeway=self.leeway)
        return claims

    async def verify(self, id_token: str) -> GoogleIdentity:
        try:
            jwk_set = await self.client.fetch_jwk_set()
            try:
                claims = self._decode(id_token, jwk_set)
            except ValueError:
                # unknown kid: Google rotated its keys since we cached them
                jwk_set = await self.client.fetch_jwk_set(force=True)
                claims = self._decode(id_token, jwk_set)
        except (JoseError, ValueError, httpx.HTTPError) as e:
            logger.warning("Google token verification failed: %r", e)
            raise OAuthVerificationError() from e

        if claims.get("email_verified") is False:
            logger.warning("Google token rejected: email not verified")
            raise OAuthVerificationError()

        return GoogleIdentity(email=claims["email"], subject=str(claims["sub"]))


google_verifier = GoogleTokenVerifier(oauth.google, settings.GOOGLE_CLIENT_ID)
