"""
Login pipeline.

request → rate limit → classify → resolve account → (trip provisioning,
referral; best-effort) → session → redirect

Handles:
- Translating LoginError subclasses into status codes and client payloads
- Hiding unexpected failures behind a generic error (details only with
  DEBUG_ERRORS)
- Writing the login audit trail
"""
import logging
from datetime import datetime
from typing import Any, NamedTuple, Optional

from .account_resolver import Resolution, resolve
from .audit_logger import get_audit_logger
from .classifier import LoginPath, classify, derive_intent
from .config_defaults import get_bool
from .credentials import Credentials, canonical_phone, from_payload
from .errors import LoginError, RateLimitError
from .models import db
from .rate_limiter import get_rate_limiter, login_key, login_policy
from .redirect_router import next_url
from .referral import record_lead
from .session_issuer import IssuedSession, issue_session
from .trip_provisioner import provision_trip

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Login failed. Please try again later."


class LoginResult(NamedTuple):
    """Result of login attempt."""
    status_code: int
    body: dict[str, Any]
    session: Optional[IssuedSession] = None
    retry_after: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.status_code == 200


def _failure(error: LoginError) -> LoginResult:
    return LoginResult(
        status_code=error.status_code,
        body=error.to_dict(),
        retry_after=getattr(error, 'retry_after', None),
    )


def _internal_failure(error: Exception) -> LoginResult:
    body = {'ok': False, 'error': GENERIC_ERROR}
    if get_bool('DEBUG_ERRORS', False):
        body['details'] = f"{type(error).__name__}: {error}"
    return LoginResult(status_code=500, body=body)


def _success_body(resolution: Resolution, issued: IssuedSession) -> dict[str, Any]:
    body = {
        'ok': True,
        'next': next_url(resolution.path, resolution.account),
        'csrfToken': issued.csrf_token,
    }
    if resolution.path is LoginPath.TRIAL:
        body['trialMode'] = True
        body['trialRemainingHours'] = resolution.trial_remaining_hours
        body['trialExpired'] = resolution.trial_expired
    if resolution.path is LoginPath.PARTNER:
        body['partnerId'] = resolution.partner_id
    return body


def login(payload: Optional[dict], client_ip: Optional[str], now: Optional[datetime] = None) -> LoginResult:
    """Run one login attempt end to end."""
    now = now or datetime.utcnow()
    audit = get_audit_logger()
    ip_address = client_ip or 'unknown'
    creds: Credentials = from_payload(payload)

    status = get_rate_limiter().check(login_key(client_ip), login_policy())
    if status.limited:
        error = RateLimitError(status.retry_after())
        audit.log_security_event('rate_limited', f"login attempts over {login_policy()}",
                                 ip_address=ip_address, identifier=creds.phone)
        return _failure(error)

    path: Optional[LoginPath] = None
    try:
        path = classify(creds, derive_intent(creds))
        resolution = resolve(path, creds, now)
    except LoginError as e:
        db.session.rollback()
        if path is LoginPath.LOCKED_REJECTION:
            audit.log_security_event('locked_login', e.message, ip_address=ip_address, identifier=creds.phone)
        else:
            audit.log_login_attempt(creds.phone, ip_address, success=False,
                                    login_path=path.value if path else None, reason=e.message)
        if not e.expose:
            logger.error(f"Login failed internally on path {path.value if path else '-'}: {e.message}")
            return _internal_failure(e)
        return _failure(e)
    except Exception as e:
        db.session.rollback()
        logger.exception(f"Login pipeline failed on path {path.value if path else '-'}")
        audit.log_login_attempt(creds.phone, ip_address, success=False,
                                login_path=path.value if path else None, reason='internal error')
        return _internal_failure(e)

    account = resolution.account

    if resolution.provision:
        provision_trip(account, resolution.provision, now)
    if resolution.path is LoginPath.TRIAL:
        record_lead(creds.name, canonical_phone(creds.phone), creds.trial_code, creds.affiliate_code, now)

    try:
        issued = issue_session(account, now)
    except Exception as e:
        db.session.rollback()
        logger.exception(f"Session issuance failed for account {account.id}")
        return _internal_failure(e)

    body = _success_body(resolution, issued)
    audit.log_login_attempt(
        creds.phone, ip_address, success=True,
        login_path=resolution.path.value,
        account_id=account.id,
        details={'next': body['next'], 'created': resolution.created},
    )
    logger.info(f"Login ok: account {account.id} via {resolution.path.value} -> {body['next']}")
    return LoginResult(status_code=200, body=body, session=issued)
