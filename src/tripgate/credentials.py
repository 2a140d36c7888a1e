"""
Login credential tuple and identifier normalisation.

Handles:
- Building a trimmed Credentials tuple from a request payload
- Digits-only phone normalisation
- Recognising legacy numbered identifiers (user1 .. user10)
"""
import re
from functools import lru_cache
from typing import Any, NamedTuple, Optional

from .config_defaults import get_config

DEFAULT_LEGACY_PATTERN = r'^user(10|[1-9])$'

_NON_DIGITS = re.compile(r'\D+')


class Credentials(NamedTuple):
    """One login attempt, every field trimmed."""
    name: str = ''
    phone: str = ''
    password: str = ''
    mode: str = ''
    intent: str = ''
    trial_code: str = ''
    affiliate_code: str = ''

    @property
    def digits_phone(self) -> str:
        return normalize_phone(self.phone)


def _clean(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()


def from_payload(payload: Optional[dict]) -> Credentials:
    """Build Credentials from the JSON login body (camelCase keys)."""
    payload = payload or {}
    return Credentials(
        name=_clean(payload.get('name')),
        phone=_clean(payload.get('phone')),
        password=_clean(payload.get('password')),
        mode=_clean(payload.get('mode')).lower(),
        intent=_clean(payload.get('intent')).lower(),
        trial_code=_clean(payload.get('trialCode')),
        affiliate_code=_clean(payload.get('affiliateCode')),
    )


def normalize_phone(phone: Optional[str]) -> str:
    """Strip everything but digits ('010-1234 5678' -> '01012345678')."""
    if not phone:
        return ''
    return _NON_DIGITS.sub('', phone)


def canonical_phone(phone: Optional[str]) -> str:
    """Stored form of a customer phone: digits only, or the input when it has none."""
    return normalize_phone(phone) or (phone or '')


@lru_cache(maxsize=8)
def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


def legacy_pattern() -> re.Pattern:
    return _compile(get_config('LEGACY_NUMBERED_PATTERN', DEFAULT_LEGACY_PATTERN))


def is_legacy_numbered(phone: Optional[str]) -> bool:
    """True for the reserved legacy identifiers (user1 .. user10 by default)."""
    if not phone:
        return False
    return bool(legacy_pattern().match(phone.strip()))
