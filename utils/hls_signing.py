# utils/hls_signing.py
import hmac
import time
import hashlib
from datetime import timedelta
from typing import Callable, NamedTuple, Tuple, Union


class AccessToken(NamedTuple):
    subject: str
    expires_at: int
    signature: str

    @property
    def query(self) -> str:
        return f"t={self.signature}&e={self.expires_at}"


def _ttl_seconds(ttl: Union[timedelta, int, float]) -> int:
    if isinstance(ttl, timedelta):
        return int(ttl.total_seconds())
    return int(ttl)


class TokenSigner:
    """
    Stateless expiring tokens bound to a stream id:
    token = hex(HMAC-SHA256(secret, "<subject>|<expires_at>")).
    Nothing is persisted; validation recomputes the token from its inputs.
    """

    def __init__(self, secret: bytes, clock: Callable[[], float] = time.time):
        if not secret:
            raise ValueError("signing secret must not be empty")
        self._secret = bytes(secret)
        self._clock = clock

    def __repr__(self) -> str:
        return "TokenSigner(secret=<hidden>)"

    def _now(self) -> int:
        return int(self._clock())

    def _sign(self, subject: str, expires_at: int) -> str:
        msg = f"{subject}|{expires_at}".encode("utf-8")
        return hmac.new(self._secret, msg, hashlib.sha256).hexdigest()

    def generate(self, subject: str, ttl: Union[timedelta, int, float]) -> Tuple[str, int]:
        """Return (token, expires_at). TTL is a timedelta or a number of seconds."""
        expires_at = self._now() + _ttl_seconds(ttl)
        return self._sign(subject, expires_at), expires_at

    def issue(self, subject: str, ttl: Union[timedelta, int, float]) -> AccessToken:
        token, expires_at = self.generate(subject, ttl)
        return AccessToken(subject=subject, expires_at=expires_at, signature=token)

    def validate(self, subject: str, token: str, expires_at: int) -> bool:
        # expiry is checked against the clock at validation time, on every request
        if expires_at < self._now():
            return False
        if not isinstance(token, str):
            return False
        expected = self._sign(subject, expires_at)
        return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))
