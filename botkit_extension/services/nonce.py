import hmac
import time
from hashlib import sha256

NONCE_LIFETIME_S = 86400


def _tick(now: float) -> int:
    return int(now // (NONCE_LIFETIME_S / 2))


def _digest(secret: str, action: str, tick: int) -> str:
    return hmac.new(secret.encode(), f"{tick}|{action}".encode(), sha256).hexdigest()[:10]


def create_nonce(secret: str, action: str, now: float | None = None) -> str:
    now = time.time() if now is None else now
    return _digest(secret, action, _tick(now))


def verify_nonce(secret: str, action: str, nonce: str, now: float | None = None) -> bool:
    """Accepts nonces from the current and the previous 12 hour window."""
    if not nonce:
        return False
    now = time.time() if now is None else now
    tick = _tick(now)
    return any(hmac.compare_digest(nonce.encode(), _digest(secret, action, t).encode()) for t in (tick, tick - 1))
