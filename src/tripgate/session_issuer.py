"""
Login session issuance.

Handles:
- Creating a session record (random id + separate anti-forgery token)
- Per-role invalidation policy: 'single' drops the account's other sessions,
  'multi' lets them accumulate until expiry
- Resolving a session id back to a live session
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import NamedTuple, Optional

from .config_defaults import get_config, get_int
from .models import ROLE_STAFF, Account, LoginSession, db

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = 'cg.sid.v2'
DEFAULT_LIFETIME_DAYS = 30

POLICY_SINGLE = 'single'
POLICY_MULTI = 'multi'


class IssuedSession(NamedTuple):
    session_id: str
    csrf_token: str
    expires_at: datetime


def session_lifetime() -> timedelta:
    return timedelta(days=get_int('SESSION_LIFETIME_DAYS', DEFAULT_LIFETIME_DAYS))


def session_policy(role: str) -> str:
    """SESSION_POLICY_<ROLE>; staff default to multi, everyone else to single."""
    key = f"SESSION_POLICY_{role.upper().replace('-', '_')}"
    default = POLICY_MULTI if role == ROLE_STAFF else POLICY_SINGLE
    policy = (get_config(key, default) or default).strip().lower()
    if policy not in (POLICY_SINGLE, POLICY_MULTI):
        logger.warning(f"Invalid {key}={policy!r}; using {default}")
        return default
    return policy


def issue_session(account: Account, now: Optional[datetime] = None) -> IssuedSession:
    """Persist a new session for the account and return its tokens."""
    now = now or datetime.utcnow()

    if session_policy(account.role) == POLICY_SINGLE:
        removed = LoginSession.query.filter_by(account_id=account.id).delete(synchronize_session=False)
        if removed:
            logger.debug(f"Dropped {removed} previous session(s) for account {account.id}")

    session = LoginSession(
        id=secrets.token_hex(32),
        account_id=account.id,
        csrf_token=secrets.token_urlsafe(32),
        expires_at=now + session_lifetime(),
        created_at=now,
    )
    db.session.add(session)
    db.session.commit()

    logger.info(f"Session issued for account {account.id} (expires {session.expires_at:%Y-%m-%d})")
    return IssuedSession(session.id, session.csrf_token, session.expires_at)


def resolve_session(session_id: Optional[str], now: Optional[datetime] = None) -> Optional[LoginSession]:
    """Return the live session for `session_id`; expired sessions are deleted."""
    if not session_id:
        return None
    session = db.session.get(LoginSession, session_id)
    if session is None:
        return None
    if session.is_expired(now):
        logger.info(f"Session for account {session.account_id} expired; removing it")
        db.session.delete(session)
        db.session.commit()
        return None
    return session


def verify_csrf(session: LoginSession, token: Optional[str]) -> bool:
    if not token:
        return False
    return secrets.compare_digest(session.csrf_token, token)
