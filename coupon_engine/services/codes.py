from __future__ import annotations

import re
import secrets
import string
from collections.abc import Callable

COUPON_CODE_ALPHABET = string.ascii_uppercase + string.digits
COUPON_CODE_MAX_LENGTH = 40


def generate_coupon_code(*, prefix: str = "", length: int = 6, alphabet: str = COUPON_CODE_ALPHABET) -> str:
    """Opaque uppercase code, optionally prefixed (``SPRING-7Q2K9Z``)."""
    size = max(1, min(int(length or 6), COUPON_CODE_MAX_LENGTH))
    suffix = "".join(secrets.choice(alphabet) for _ in range(size))
    prefix_clean = re.sub(r"[^A-Z0-9-]+", "-", (prefix or "").strip().upper()).strip("-")
    base = f"{prefix_clean}-{suffix}" if prefix_clean else suffix
    return base[:COUPON_CODE_MAX_LENGTH]


def code_generator(*, prefix: str = "", length: int = 6) -> Callable[[], str]:
    def _generate() -> str:
        return generate_coupon_code(prefix=prefix, length=length)

    return _generate
