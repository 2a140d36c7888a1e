"""
Account resolution and provisioning for each login path.

Handles:
- Finding or creating the account a login path refers to
- Lifecycle transitions (trial start/expiry/re-entry, dormant and locked
  reactivation)
- Credential checks (bcrypt, legacy plaintext, admin allow-list)

Every resolver leaves the account in its terminal state with a single commit.
Creates are optimistic: a unique-constraint violation means another request
created the same account first, so the transaction is rolled back and the
account re-read by its natural key.
"""
import logging
import math
import time
from datetime import datetime, timedelta
from typing import Any, Callable, NamedTuple, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from .affiliate_setup import (
    PREFIX_SUBSCRIPTION_AGENT,
    SUBSCRIPTION_RESET_ID,
    ensure_affiliate_profile,
    ensure_subscription_trial,
    staff_display_name,
)
from .classifier import LoginPath
from .config_defaults import get_int, get_json
from .credentials import Credentials, canonical_phone, normalize_phone
from .errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    CrossRoleConflictError,
    ValidationError,
)
from .models import (
    PRIVILEGED_ROLES,
    ROLE_ADMIN,
    ROLE_COMMUNITY,
    ROLE_CUSTOMER,
    ROLE_STAFF,
    STATUS_ACTIVE,
    STATUS_DORMANT,
    STATUS_LOCKED,
    STATUS_TRIAL,
    STATUS_TRIAL_EXPIRED,
    Account,
    AffiliateProfile,
    check_password,
    db,
    hash_password,
    mask_phone,
)

logger = logging.getLogger(__name__)

# Passwords every staff account accepts in partner mode
STAFF_DEFAULT_PASSWORDS = frozenset({'1101', 'qwe1', 'zxc1'})

SOURCE_PARTNER_TEST = 'partner-test'
SOURCE_TRIAL_INVITE = 'trial-invite-link'
SOURCE_TEST_GUIDE = 'test-guide'
SOURCE_CRUISE_GUIDE = 'cruise-guide'
SOURCE_CRUISE_MALL = 'cruise-mall'
SOURCE_MALL_SIGNUP = 'mall-signup'

DEFAULT_TRIAL_NAME = 'Trial Guest'
DEFAULT_TRIAL_HOURS = 72

PROVISION_TRIAL = 'trial'
PROVISION_ACTIVE = 'active'


class Resolution(NamedTuple):
    """Resolved account plus the path-specific facts later stages need."""
    account: Account
    path: LoginPath
    created: bool = False
    provision: Optional[str] = None  # 'trial' | 'active' | None
    trial_remaining_hours: Optional[int] = None
    trial_expired: bool = False
    partner_id: Optional[str] = None


# ============================================================================
# Lookups
# ============================================================================

def _find_customer(name: str, phone: str) -> Optional[Account]:
    """Customer by (name, phone), matching the phone as typed or digits-only."""
    return (
        Account.query
        .filter(Account.name == name, Account.role == ROLE_CUSTOMER, Account.phone.in_(_phone_variants(phone)))
        .order_by(Account.id)
        .first()
    )


def _find_staff(identifier: str) -> Optional[Account]:
    candidates = [Account.mall_user_id == identifier, Account.phone == identifier]
    digits = normalize_phone(identifier)
    if digits and digits != identifier:
        candidates.append(Account.phone == digits)
    return Account.query.filter(Account.role == ROLE_STAFF, or_(*candidates)).first()


def _find_community(identifier: str) -> Optional[Account]:
    base = Account.query.filter_by(role=ROLE_COMMUNITY, source=SOURCE_MALL_SIGNUP)
    account = base.filter(Account.mall_user_id == identifier).first()
    if account is None:
        # Records created before login ids existed only carry the phone
        account = base.filter(Account.phone == identifier).first()
    return account


def _phone_variants(phone: str) -> list[str]:
    variants = [phone]
    digits = normalize_phone(phone)
    if digits and digits != phone:
        variants.append(digits)
    return variants


def _find_by_phone(phone: str) -> list[Account]:
    return Account.query.filter(Account.phone.in_(_phone_variants(phone))).all()


def _create_account(lookup: Callable[[], Optional[Account]], **fields: Any) -> tuple[Account, bool]:
    """
    Insert a new account; on a unique conflict re-read it instead.

    Returns (account, created).
    """
    account = Account(**fields)
    db.session.add(account)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        existing = lookup()
        if existing is None:
            raise ConflictError("Account create conflicted and could not be re-read")
        logger.info(f"Account {existing.id} was created concurrently, reusing it")
        return existing, False

    logger.info(f"Account created: role={account.role} status={account.status} phone={mask_phone(account.phone)}")
    return account, True


def _require(creds: Credentials, *fields: str):
    for field in fields:
        if not getattr(creds, field):
            raise ValidationError(field)


def _backfill_source(account: Account, source: str):
    if not account.source:
        account.source = source


# ============================================================================
# Admin allow-list
# ============================================================================

def load_admin_allowlist() -> list[dict[str, Any]]:
    """Allow-list entries from ADMIN_ALLOWLIST (JSON list), phones digits-only."""
    raw = get_json('ADMIN_ALLOWLIST', [])
    if not isinstance(raw, list):
        logger.error("ADMIN_ALLOWLIST must be a JSON list; treating it as empty")
        return []

    entries = []
    for item in raw:
        if not isinstance(item, dict) or not item.get('name') or not item.get('phone'):
            logger.warning("Skipping malformed ADMIN_ALLOWLIST entry")
            continue
        entries.append({
            'name': str(item['name']).strip(),
            'phone': normalize_phone(str(item['phone'])),
            'secret': item.get('password_hash') or item.get('password') or '',
        })
    return entries


def find_allowlist_entry(name: str, phone: str) -> Optional[dict[str, Any]]:
    digits = normalize_phone(phone)
    for entry in load_admin_allowlist():
        if entry['name'] == name and entry['phone'] == digits:
            return entry
    return None


# ============================================================================
# Resolvers
# ============================================================================

def resolve_partner(creds: Credentials, now: datetime) -> Resolution:
    identifier = creds.phone.lower()
    if not identifier:
        raise ValidationError('phone', "Partner ID is required.")

    is_staff_default = creds.password in STAFF_DEFAULT_PASSWORDS
    account = _find_staff(identifier)
    created = False

    if account is None:
        if not is_staff_default:
            logger.info(f"Partner login failed: unknown id {mask_phone(identifier)}")
            raise AuthenticationError()
        if Account.query.filter_by(mall_user_id=identifier).first() is not None:
            logger.warning(f"Partner login refused: id {mask_phone(identifier)} belongs to a non-staff account")
            raise AuthenticationError()
        account, created = _create_account(
            lambda: _find_staff(identifier),
            name=staff_display_name(identifier),
            phone=identifier,
            mall_user_id=identifier,
            role=ROLE_STAFF,
            status=STATUS_ACTIVE,
            onboarded=True,
            source=SOURCE_PARTNER_TEST,
        )
    elif not is_staff_default:
        if not account.verify_password(creds.password):
            logger.info(f"Partner login failed: bad credential for account {account.id}")
            raise AuthenticationError()
        if account.has_legacy_credential():
            account.set_password(creds.password)
            logger.info(f"Rehashed legacy credential for partner account {account.id}")

    if not account.mall_user_id:
        account.mall_user_id = identifier
    account.record_login()
    db.session.commit()

    ensure_affiliate_profile(account)
    if identifier.startswith(PREFIX_SUBSCRIPTION_AGENT):
        ensure_subscription_trial(account, reset=identifier == SUBSCRIPTION_RESET_ID, now=now)

    return Resolution(
        account=account,
        path=LoginPath.PARTNER,
        created=created,
        partner_id=account.mall_user_id,
    )


def trial_window() -> timedelta:
    return timedelta(hours=get_int('TRIAL_WINDOW_HOURS', DEFAULT_TRIAL_HOURS))


def resolve_trial(creds: Credentials, now: datetime) -> Resolution:
    matches = _find_by_phone(creds.phone) if creds.phone else []

    for match in matches:
        has_profile = AffiliateProfile.query.filter_by(account_id=match.id).first() is not None
        if match.role in PRIVILEGED_ROLES or has_profile:
            logger.warning(f"Trial login refused: phone {mask_phone(creds.phone)} belongs to a {match.role} account")
            raise CrossRoleConflictError()

    customers = [m for m in matches if m.role == ROLE_CUSTOMER]
    account = next((m for m in customers if m.name == creds.name), None)
    if account is None and customers:
        account = customers[0]
    created = False

    if account is None:
        name = creds.name or DEFAULT_TRIAL_NAME
        phone = canonical_phone(creds.phone) if creds.phone else f"test-{int(time.time() * 1000)}"
        account, created = _create_account(
            lambda: _find_customer(name, phone),
            name=name,
            phone=phone,
            role=ROLE_CUSTOMER,
            status=STATUS_TRIAL,
            trial_started_at=now,
            onboarded=False,
            source=SOURCE_TRIAL_INVITE if creds.trial_code else SOURCE_TEST_GUIDE,
        )

    if not created:
        if account.status == STATUS_TRIAL_EXPIRED:
            # Re-entry after an expired window starts a fresh one
            logger.info(f"Trial re-entry for account {account.id}; timer reset")
            account.trial_started_at = now
        elif account.trial_started_at is None:
            account.trial_started_at = now
        account.status = STATUS_TRIAL
        _backfill_source(account, SOURCE_TRIAL_INVITE if creds.trial_code else SOURCE_TEST_GUIDE)

    account.clear_lock()
    account.clear_hibernation()

    expires_at = account.trial_started_at + trial_window()
    expired = now > expires_at
    if expired:
        account.status = STATUS_TRIAL_EXPIRED
        remaining_hours = 0
        logger.info(f"Trial window elapsed for account {account.id}")
    else:
        remaining_hours = max(0, math.ceil((expires_at - now).total_seconds() / 3600))

    account.record_login()
    db.session.commit()

    return Resolution(
        account=account,
        path=LoginPath.TRIAL,
        created=created,
        provision=PROVISION_TRIAL,
        trial_remaining_hours=remaining_hours,
        trial_expired=expired,
    )


def resolve_locked(creds: Credentials, now: datetime) -> Resolution:
    raise AuthorizationError("This account is locked. Please contact customer support.")


def resolve_community(creds: Credentials, now: datetime) -> Resolution:
    identifier = creds.phone
    if not identifier:
        raise ValidationError('phone', "Login ID is required.")

    account = _find_community(identifier)
    if account is None or not account.verify_password(creds.password):
        logger.info(f"Community login failed for {mask_phone(identifier)}")
        raise AuthenticationError()

    if not account.mall_user_id:
        account.mall_user_id = identifier
        logger.info(f"Backfilled login id for community account {account.id}")
    if account.has_legacy_credential():
        account.set_password(creds.password)
        logger.info(f"Rehashed legacy credential for community account {account.id}")

    account.record_login()
    db.session.commit()
    return Resolution(account=account, path=LoginPath.COMMUNITY)


def resolve_admin(creds: Credentials, now: datetime) -> Resolution:
    _require(creds, 'name', 'phone', 'password')
    phone = normalize_phone(creds.phone)

    entry = find_allowlist_entry(creds.name, phone)
    if entry is None:
        logger.warning(f"Admin login refused: {mask_phone(phone)} is not on the allow-list")
        raise AuthorizationError("This account is not authorized for administrator access.")
    if not check_password(creds.password, entry['secret']):
        logger.warning(f"Admin login failed: bad password for {mask_phone(phone)}")
        raise AuthenticationError()

    lookup = lambda: Account.query.filter_by(name=creds.name, phone=phone, role=ROLE_ADMIN).first()  # noqa: E731
    account = lookup()
    created = False
    if account is None:
        account, created = _create_account(
            lookup,
            name=creds.name,
            phone=phone,
            role=ROLE_ADMIN,
            status=STATUS_ACTIVE,
            onboarded=True,
        )

    account.record_login()
    db.session.commit()
    return Resolution(account=account, path=LoginPath.ADMIN, created=created)


def resolve_dormant(creds: Credentials, now: datetime) -> Resolution:
    account = None
    for phone in _phone_variants(creds.phone):
        candidate = Account.query.filter_by(name=creds.name, phone=phone, role=ROLE_CUSTOMER).first()
        if candidate is not None and (
            candidate.status == STATUS_DORMANT or candidate.verify_password(creds.phone)
        ):
            account = candidate
            break

    if account is None:
        logger.info(f"No dormant record for {mask_phone(creds.phone)}; treating as activation")
        return resolve_active(creds, now)

    account.status = STATUS_ACTIVE
    account.clear_hibernation()
    account.trial_started_at = None
    account.password_hash = None
    _backfill_source(account, SOURCE_CRUISE_GUIDE)
    account.record_login()
    db.session.commit()

    logger.info(f"Dormant account {account.id} reactivated")
    return Resolution(account=account, path=LoginPath.DORMANT_REACTIVATION, provision=PROVISION_ACTIVE)


def resolve_active(creds: Credentials, now: datetime) -> Resolution:
    _require(creds, 'name', 'phone')
    phone = normalize_phone(creds.phone)
    if not phone:
        raise ValidationError('phone', "Phone number must contain digits.")

    account = _find_customer(creds.name, creds.phone)
    created = False
    if account is None:
        account, created = _create_account(
            lambda: _find_customer(creds.name, creds.phone),
            name=creds.name,
            phone=phone,
            role=ROLE_CUSTOMER,
            status=STATUS_ACTIVE,
            onboarded=False,
            source=SOURCE_CRUISE_GUIDE,
        )

    if not created:
        if account.status != STATUS_ACTIVE:
            logger.info(f"Account {account.id} reactivated from {account.status}")
        account.status = STATUS_ACTIVE
        account.clear_lock()
        account.clear_hibernation()
        account.trial_started_at = None
        _backfill_source(account, SOURCE_CRUISE_GUIDE)

    account.record_login()
    db.session.commit()
    return Resolution(
        account=account,
        path=LoginPath.ACTIVE_REACTIVATION,
        created=created,
        provision=PROVISION_ACTIVE,
    )


def resolve_legacy_numbered(creds: Credentials, now: datetime) -> Resolution:
    identifier = creds.phone.lower()
    name = creds.name or identifier

    lookup = lambda: Account.query.filter_by(phone=identifier, role=ROLE_CUSTOMER).first()  # noqa: E731
    account = lookup()
    created = False
    if account is None:
        account, created = _create_account(
            lookup,
            name=name,
            phone=identifier,
            role=ROLE_CUSTOMER,
            status=STATUS_ACTIVE,
            source=SOURCE_CRUISE_MALL,
        )

    account.record_login()
    db.session.commit()
    return Resolution(account=account, path=LoginPath.LEGACY_NUMBERED, created=created)


def _service_ended(account: Account, now: datetime) -> bool:
    """True once the day after the latest trip's end has passed."""
    trip = account.latest_trip()
    if trip is None:
        return False
    last_day = (trip.end_date + timedelta(days=1)).replace(hour=23, minute=59, second=59, microsecond=999999)
    return now > last_day


def resolve_standard(creds: Credentials, now: datetime) -> Resolution:
    _require(creds, 'name', 'phone')

    account = _find_customer(creds.name, creds.phone)
    created = False

    if account is None:
        entry = find_allowlist_entry(creds.name, creds.phone)
        if entry is not None and check_password(creds.password, entry['secret']):
            logger.info(f"Customer login attempted with admin identity {mask_phone(creds.phone)}")
            raise AuthorizationError("Administrator accounts must sign in through the administrator login.")

        account, created = _create_account(
            lambda: _find_customer(creds.name, creds.phone),
            name=creds.name,
            phone=canonical_phone(creds.phone),
            role=ROLE_CUSTOMER,
            status=STATUS_ACTIVE,
            onboarded=False,
            password_hash=hash_password(creds.password),
        )

    if not created:
        if not account.verify_password(creds.password):
            logger.info(f"Standard login failed: bad credential for account {account.id}")
            raise AuthenticationError()
        if account.is_locked or account.status == STATUS_LOCKED:
            raise AuthorizationError("This account is locked. Please contact customer support.")
        if _service_ended(account, now):
            logger.info(f"Standard login refused: service period ended for account {account.id}")
            raise AuthorizationError("Your service period has ended. Please contact customer support.")
        if account.has_legacy_credential():
            account.set_password(creds.password)

    account.record_login()
    db.session.commit()
    return Resolution(account=account, path=LoginPath.STANDARD, created=created)


RESOLVERS: dict[LoginPath, Callable[[Credentials, datetime], Resolution]] = {
    LoginPath.PARTNER: resolve_partner,
    LoginPath.TRIAL: resolve_trial,
    LoginPath.LOCKED_REJECTION: resolve_locked,
    LoginPath.COMMUNITY: resolve_community,
    LoginPath.ADMIN: resolve_admin,
    LoginPath.DORMANT_REACTIVATION: resolve_dormant,
    LoginPath.ACTIVE_REACTIVATION: resolve_active,
    LoginPath.LEGACY_NUMBERED: resolve_legacy_numbered,
    LoginPath.STANDARD: resolve_standard,
}


def resolve(path: LoginPath, creds: Credentials, now: Optional[datetime] = None) -> Resolution:
    """Resolve the account for a classified login."""
    return RESOLVERS[path](creds, now or datetime.utcnow())
