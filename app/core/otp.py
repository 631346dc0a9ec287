from __future__ import annotations
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable

from .config import Settings
from .exceptions import OtpExpired, OtpMismatch, OtpNotFound
from .store import KeyValueStore

logger = logging.getLogger(__name__)

OTP_MIN = 100000
OTP_MAX = 999999


def generate_otp() -> str:
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


@dataclass(frozen=True)
class OtpEntry:
    code: str
    expires_at: float


class OtpRegistry:
    """
    One active code per email.

    A new ``request`` always replaces the previous entry. A wrong guess keeps
    the entry so the user can retry until it expires; a correct guess or an
    expired attempt deletes it. Entries are stored without a store ttl, so an
    attempt at any time after expiry reports "expired", not "not found".
    """

    key_prefix = "otp:"

    def __init__(
            self,
            store: KeyValueStore,
            ttl_seconds: float = 5 * 60,
            clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, store: KeyValueStore, config: Settings, clock: Callable[[], float] = time.time):
        return cls(
            store,
            ttl_seconds=config.OTP_EXPIRE_MINUTES * 60,
            clock=clock,
        )

    def _key(self, email: str) -> str:
        return f"{self.key_prefix}{email}"

    def request(self, email: str) -> str:
        code = generate_otp()
        entry = OtpEntry(code=code, expires_at=self._clock() + self.ttl_seconds)
        self.store.put(self._key(email), entry, None)
        return code

    def peek(self, email: str) -> OtpEntry | None:
        return self.store.get(self._key(email))

    def verify(self, email: str, code: str) -> None:
        key = self._key(email)
        entry: OtpEntry | None = self.store.get(key)
        if entry is None:
            raise OtpNotFound()

        if self._clock() > entry.expires_at:
            self.store.delete(key)
            raise OtpExpired()

        if not secrets.compare_digest(entry.code.encode(), str(code).encode()):
            raise OtpMismatch()

        self.store.delete(key)
