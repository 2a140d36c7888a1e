"""
Credential classification.

Maps one Credentials tuple to exactly one LoginPath. The password field doubles
as an out-of-band status code for a handful of reserved values; those are
translated into an explicit LoginIntent first, so every downstream decision
branches on the intent rather than on magic strings.

Classification order (first match wins):
1. PARTNER            mode=partner or intent partner
2. TRIAL              intent trial, phone not legacy-numbered, mode!=admin
3. LOCKED_REJECTION   intent locked or the locked sentinel password
4. COMMUNITY          mode=community
5. ADMIN              mode=admin
6. DORMANT            intent activate and name == phone
7. ACTIVE             intent activate
8. LEGACY_NUMBERED    legacy-numbered phone and intent trial
9. STANDARD           everything else
"""
import logging
from enum import Enum
from typing import Callable, Optional

from .credentials import Credentials, is_legacy_numbered
from .errors import ValidationError

logger = logging.getLogger(__name__)


class LoginIntent(str, Enum):
    PARTNER = 'partner'
    TRIAL = 'trial'
    LOCKED = 'locked'
    ACTIVATE = 'activate'
    CREDENTIAL = 'credential'


class LoginPath(str, Enum):
    PARTNER = 'partner'
    TRIAL = 'trial'
    LOCKED_REJECTION = 'locked_rejection'
    COMMUNITY = 'community'
    ADMIN = 'admin'
    DORMANT_REACTIVATION = 'dormant_reactivation'
    ACTIVE_REACTIVATION = 'active_reactivation'
    LEGACY_NUMBERED = 'legacy_numbered'
    STANDARD = 'standard'


MODE_PARTNER = 'partner'
MODE_COMMUNITY = 'community'
MODE_ADMIN = 'admin'

LOCKED_SENTINEL = '8300'

# Reserved password values and the intent each one stands for
SENTINEL_INTENTS = {
    'qwe1': LoginIntent.PARTNER,
    '1101': LoginIntent.TRIAL,
    LOCKED_SENTINEL: LoginIntent.LOCKED,
    '3800': LoginIntent.ACTIVATE,
}

Predicate = Callable[[Credentials, LoginIntent], bool]


def derive_intent(creds: Credentials) -> LoginIntent:
    """
    Resolve the login intent.

    The locked sentinel always means LOCKED. Otherwise an explicit `intent`
    from the client wins and must name a known intent; without one the
    password sentinel decides, defaulting to CREDENTIAL.
    """
    if creds.password == LOCKED_SENTINEL:
        if creds.intent and creds.intent != LoginIntent.LOCKED.value:
            logger.warning(f"Explicit intent '{creds.intent}' ignored for the locked sentinel")
        return LoginIntent.LOCKED
    if creds.intent:
        try:
            return LoginIntent(creds.intent)
        except ValueError:
            raise ValidationError('intent', f"Unknown login intent '{creds.intent}'.")
    return SENTINEL_INTENTS.get(creds.password, LoginIntent.CREDENTIAL)


# ============================================================================
# Rules
# ============================================================================

def _is_partner(creds: Credentials, intent: LoginIntent) -> bool:
    return creds.mode == MODE_PARTNER or intent is LoginIntent.PARTNER


def _is_trial(creds: Credentials, intent: LoginIntent) -> bool:
    return (
        intent is LoginIntent.TRIAL
        and not is_legacy_numbered(creds.phone)
        and creds.mode != MODE_ADMIN
    )


def _is_locked(creds: Credentials, intent: LoginIntent) -> bool:
    return intent is LoginIntent.LOCKED or creds.password == LOCKED_SENTINEL


def _is_community(creds: Credentials, intent: LoginIntent) -> bool:
    return creds.mode == MODE_COMMUNITY


def _is_admin(creds: Credentials, intent: LoginIntent) -> bool:
    return creds.mode == MODE_ADMIN


def _is_dormant(creds: Credentials, intent: LoginIntent) -> bool:
    return intent is LoginIntent.ACTIVATE and bool(creds.name) and creds.name == creds.phone


def _is_activation(creds: Credentials, intent: LoginIntent) -> bool:
    return intent is LoginIntent.ACTIVATE


def _is_legacy_numbered(creds: Credentials, intent: LoginIntent) -> bool:
    return is_legacy_numbered(creds.phone) and intent is LoginIntent.TRIAL


def _always(creds: Credentials, intent: LoginIntent) -> bool:
    return True


RULES: tuple[tuple[LoginPath, Predicate], ...] = (
    (LoginPath.PARTNER, _is_partner),
    (LoginPath.TRIAL, _is_trial),
    (LoginPath.LOCKED_REJECTION, _is_locked),
    (LoginPath.COMMUNITY, _is_community),
    (LoginPath.ADMIN, _is_admin),
    (LoginPath.DORMANT_REACTIVATION, _is_dormant),
    (LoginPath.ACTIVE_REACTIVATION, _is_activation),
    (LoginPath.LEGACY_NUMBERED, _is_legacy_numbered),
    (LoginPath.STANDARD, _always),
)


def classify(creds: Credentials, intent: Optional[LoginIntent] = None) -> LoginPath:
    """Return the first LoginPath whose rule matches."""
    if not creds.password:
        raise ValidationError('password', "Password is required.")

    if intent is None:
        intent = derive_intent(creds)

    for path, predicate in RULES:
        if predicate(creds, intent):
            logger.debug(f"Classified login as {path.value} (intent={intent.value}, mode={creds.mode or '-'})")
            return path

    # Unreachable: the last rule always matches
    return LoginPath.STANDARD
