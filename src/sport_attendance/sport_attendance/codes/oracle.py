"""Rotating check-in codes.

A code is derived from the session secret and the current 30 second window,
like TOTP but with HMAC-SHA256 and the decimal window counter as the message.
Nothing is stored server-side: any process holding the secret derives the
same code.

Known limitation: the 6-digit space is shared by every active session and the
code carries no session discriminator, so two sessions active in the same
window can collide. Check-in resolves to the first matching session.
"""

from __future__ import annotations

import hashlib
import hmac
import math
import secrets

from ..core.constants import CODE_DIGITS, CODE_PERIOD_MS, SESSION_SECRET_BYTES

_MODULUS = 10**CODE_DIGITS


def generate_code(secret: str, time_ms: int) -> str:
    period = int(time_ms) // CODE_PERIOD_MS
    digest = hmac.new(secret.encode("utf-8"), str(period).encode("ascii"), hashlib.sha256).digest()
    number = int.from_bytes(digest[:4], "big") % _MODULUS
    return str(number).zfill(CODE_DIGITS)


def verify_code(secret: str, code: str, now_ms: int) -> bool:
    """Accept the current window's code or the previous one, nothing older."""
    if not isinstance(code, str) or not code.isascii():
        return False
    current = generate_code(secret, now_ms)
    previous = generate_code(secret, now_ms - CODE_PERIOD_MS)
    return hmac.compare_digest(code, current) or hmac.compare_digest(code, previous)


def seconds_until_rotate(now_ms: int) -> int:
    next_period_start = (int(now_ms) // CODE_PERIOD_MS + 1) * CODE_PERIOD_MS
    return math.ceil((next_period_start - now_ms) / 1000)


def generate_session_secret() -> str:
    return secrets.token_hex(SESSION_SECRET_BYTES)
