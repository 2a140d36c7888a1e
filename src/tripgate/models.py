"""
Database models for tripgate (Account → Session, Account → Trips).

This module defines:
- Account: one login identity per (name, phone, role)
- LoginSession: short-lived proof of authentication with an anti-forgery token
- CruiseProduct / UserTrip / Itinerary / VisitedCountry: travel context that the
  login flow provisions for trial and active customers
- AffiliateProfile / AffiliateRelation / AffiliateLink / AffiliateContract:
  partner (staff) records and invite links
- AffiliateLead: attribution records written on trial login
- ActivityLog: login audit trail

Credentials: bcrypt hashed. Records migrated from the legacy system may still
hold a plaintext value; verify_password() accepts either and
has_legacy_credential() tells the caller to rehash.
"""
import json
import logging
import secrets
from datetime import datetime
from typing import Any, Optional

import bcrypt
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import UniqueConstraint

logger = logging.getLogger(__name__)

db = SQLAlchemy()

# Roles
ROLE_CUSTOMER = 'customer'
ROLE_STAFF = 'staff-affiliate'
ROLE_COMMUNITY = 'community-member'
ROLE_ADMIN = 'admin'
PRIVILEGED_ROLES = frozenset({ROLE_STAFF, ROLE_COMMUNITY, ROLE_ADMIN})

# Lifecycle status
STATUS_ACTIVE = 'active'
STATUS_TRIAL = 'test-trial'
STATUS_TRIAL_EXPIRED = 'test-trial-expired'
STATUS_DORMANT = 'dormant'
STATUS_LOCKED = 'locked'

# Trip origin
TRIP_ORIGIN_AUTO = 'auto'
TRIP_ORIGIN_ADMIN = 'admin'

# Affiliate profile types
PROFILE_BRANCH_MANAGER = 'BRANCH_MANAGER'
PROFILE_SALES_AGENT = 'SALES_AGENT'
PROFILE_ACTIVE = 'ACTIVE'

BCRYPT_PREFIX = '$2'
BCRYPT_MAX_BYTES = 72


def _bcrypt_secret(password: str) -> bytes:
    """bcrypt only uses the first 72 bytes; truncate explicitly."""
    return password.encode('utf-8')[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    """Return a bcrypt hash as a UTF-8 string."""
    return bcrypt.hashpw(_bcrypt_secret(password), bcrypt.gensalt()).decode('utf-8')


def is_bcrypt_hash(value: str | None) -> bool:
    return bool(value) and value.startswith(BCRYPT_PREFIX)


def check_password(password: str, stored: str | None) -> bool:
    """
    Verify a password against a stored credential.

    Accepts a bcrypt hash or, for records migrated from the legacy store, a
    plaintext value (compared in constant time).
    """
    if not stored or not password:
        return False
    if is_bcrypt_hash(stored):
        try:
            return bcrypt.checkpw(_bcrypt_secret(password), stored.encode('utf-8'))
        except (ValueError, TypeError):
            return False
    return secrets.compare_digest(stored.encode('utf-8'), password.encode('utf-8'))


def mask_phone(phone: str | None) -> str:
    """Mask a phone/identifier for log lines."""
    if not phone:
        return 'empty'
    return f"{phone[:3]}***"


class Account(db.Model):
    """
    Login identity.

    role + status jointly decide which login paths may touch the account.
    Accounts are mutated in place by every login and never hard-deleted here.
    """
    __tablename__ = 'accounts'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), index=True)
    phone = db.Column(db.String(64), index=True)  # synthetic identifier for staff accounts
    mall_user_id = db.Column(db.String(64), unique=True, index=True)  # staff/community login id
    password_hash = db.Column(db.String(255))  # NULL = no secret (sentinel-driven accounts)

    role = db.Column(db.String(20), nullable=False, default=ROLE_CUSTOMER, index=True)
    status = db.Column(db.String(20), nullable=False, default=STATUS_ACTIVE, index=True)
    trial_started_at = db.Column(db.DateTime)
    onboarded = db.Column(db.Boolean, nullable=False, default=False)
    login_count = db.Column(db.Integer, nullable=False, default=0)
    source = db.Column(db.String(50))  # attribution tag

    # Hibernation / lock markers
    is_hibernated = db.Column(db.Boolean, nullable=False, default=False)
    hibernated_at = db.Column(db.DateTime)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    locked_at = db.Column(db.DateTime)
    locked_reason = db.Column(db.String(255))

    total_trip_count = db.Column(db.Integer, nullable=False, default=0)
    last_active_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    sessions = db.relationship('LoginSession', back_populates='account', cascade='all, delete-orphan')
    trips = db.relationship('UserTrip', back_populates='account', cascade='all, delete-orphan',
                            order_by='UserTrip.created_at.desc()')
    affiliate_profile = db.relationship('AffiliateProfile', back_populates='account', uselist=False)

    __table_args__ = (
        UniqueConstraint('name', 'phone', 'role', name='uq_account_identity'),
    )

    def set_password(self, password: str):
        """Hash and set password."""
        self.password_hash = hash_password(password)

    def verify_password(self, password: str) -> bool:
        return check_password(password, self.password_hash)

    def has_legacy_credential(self) -> bool:
        """True when the stored credential is a legacy plaintext value."""
        return bool(self.password_hash) and not is_bcrypt_hash(self.password_hash)

    def record_login(self):
        """Bump the login counter and activity stamp."""
        self.login_count = (self.login_count or 0) + 1
        self.last_active_at = datetime.utcnow()

    def clear_hibernation(self):
        self.is_hibernated = False
        self.hibernated_at = None

    def clear_lock(self):
        self.is_locked = False
        self.locked_at = None
        self.locked_reason = None

    def latest_trip(self) -> Optional['UserTrip']:
        return UserTrip.query.filter_by(account_id=self.id).order_by(
            UserTrip.created_at.desc(), UserTrip.id.desc()
        ).first()

    def __repr__(self):
        return f'<Account {self.id} {self.role}/{self.status}>'


class LoginSession(db.Model):
    """
    Authenticated session.

    expires_at is absolute (issuance + lifetime), never extended.
    """
    __tablename__ = 'sessions'

    id = db.Column(db.String(64), primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False, index=True)
    csrf_token = db.Column(db.String(64), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    account = db.relationship('Account', back_populates='sessions')

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at < (now or datetime.utcnow())

    def __repr__(self):
        return f'<LoginSession {self.id[:8]}... account={self.account_id}>'


class CruiseProduct(db.Model):
    """Catalog product. Read-only from the login flow."""
    __tablename__ = 'cruise_products'

    id = db.Column(db.Integer, primary_key=True)
    product_code = db.Column(db.String(50), unique=True, nullable=False, index=True)
    cruise_line = db.Column(db.String(100), nullable=False)
    ship_name = db.Column(db.String(100), nullable=False)
    nights = db.Column(db.Integer, nullable=False)
    days = db.Column(db.Integer, nullable=False)
    itinerary_pattern = db.Column(db.Text)  # JSON list of day entries

    def get_itinerary_pattern(self) -> Any:
        try:
            return json.loads(self.itinerary_pattern) if self.itinerary_pattern else []
        except (json.JSONDecodeError, TypeError):
            return []

    def set_itinerary_pattern(self, pattern: list[dict[str, Any]]):
        self.itinerary_pattern = json.dumps(pattern) if pattern else None

    @property
    def display_name(self) -> str:
        return f"{self.cruise_line} {self.ship_name}"

    def __repr__(self):
        return f'<CruiseProduct {self.product_code}>'


class UserTrip(db.Model):
    """
    Travel record attached to an account.

    origin='admin' marks trips registered by the back office; the login flow
    never replaces those.
    """
    __tablename__ = 'user_trips'

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('cruise_products.id', ondelete='SET NULL'), index=True)

    reservation_code = db.Column(db.String(32), index=True)
    cruise_name = db.Column(db.String(200))
    companion_type = db.Column(db.String(50))
    destinations = db.Column(db.Text)  # JSON list of port names
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    nights = db.Column(db.Integer, nullable=False, default=0)
    days = db.Column(db.Integer, nullable=False, default=0)
    visit_count = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='Upcoming')
    origin = db.Column(db.String(10), nullable=False, default=TRIP_ORIGIN_AUTO)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    account = db.relationship('Account', back_populates='trips')
    product = db.relationship('CruiseProduct')
    itineraries = db.relationship('Itinerary', back_populates='trip', cascade='all, delete-orphan',
                                  order_by='Itinerary.day')

    def get_destinations(self) -> list[str]:
        try:
            return json.loads(self.destinations) if self.destinations else []
        except (json.JSONDecodeError, TypeError):
            return []

    def set_destinations(self, destinations: list[str]):
        self.destinations = json.dumps(destinations, ensure_ascii=False) if destinations else None

    def is_finished(self, now: datetime | None = None) -> bool:
        return self.end_date < (now or datetime.utcnow())

    def __repr__(self):
        return f'<UserTrip {self.reservation_code} account={self.account_id}>'


class Itinerary(db.Model):
    """One day of a trip."""
    __tablename__ = 'itineraries'

    id = db.Column(db.Integer, primary_key=True)
    trip_id = db.Column(db.Integer, db.ForeignKey('user_trips.id', ondelete='CASCADE'), nullable=False, index=True)
    day = db.Column(db.Integer, nullable=False)
    date = db.Column(db.DateTime, nullable=False)
    type = db.Column(db.String(30), nullable=False)  # 'Embarkation', 'PortVisit', 'Cruising', ...
    location = db.Column(db.String(100))
    country = db.Column(db.String(10))
    currency = db.Column(db.String(10))
    language = db.Column(db.String(50))
    arrival = db.Column(db.String(10))
    departure = db.Column(db.String(10))
    time = db.Column(db.String(20))

    trip = db.relationship('UserTrip', back_populates='itineraries')

    def __repr__(self):
        return f'<Itinerary trip={self.trip_id} day={self.day} {self.type}>'


class VisitedCountry(db.Model):
    """Per-account country visit aggregate."""
    __tablename__ = 'visited_countries'

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False, index=True)
    country_code = db.Column(db.String(10), nullable=False)
    country_name = db.Column(db.String(100))
    visit_count = db.Column(db.Integer, nullable=False, default=0)
    last_visited = db.Column(db.DateTime)

    __table_args__ = (
        UniqueConstraint('account_id', 'country_code', name='uq_visited_country'),
    )

    def __repr__(self):
        return f'<VisitedCountry {self.country_code} x{self.visit_count}>'


class AffiliateProfile(db.Model):
    """Partner profile owned by a staff account."""
    __tablename__ = 'affiliate_profiles'

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('accounts.id', ondelete='CASCADE'), unique=True, nullable=False)
    affiliate_code = db.Column(db.String(64), unique=True, nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False, default=PROFILE_SALES_AGENT)
    status = db.Column(db.String(20), nullable=False, default=PROFILE_ACTIVE)
    display_name = db.Column(db.String(100))
    landing_slug = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    account = db.relationship('Account', back_populates='affiliate_profile')

    def __repr__(self):
        return f'<AffiliateProfile {self.affiliate_code} {self.type}>'


class AffiliateRelation(db.Model):
    """Branch manager → sales agent pairing."""
    __tablename__ = 'affiliate_relations'

    id = db.Column(db.Integer, primary_key=True)
    manager_id = db.Column(db.Integer, db.ForeignKey('affiliate_profiles.id', ondelete='CASCADE'), nullable=False)
    agent_id = db.Column(db.Integer, db.ForeignKey('affiliate_profiles.id', ondelete='CASCADE'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=PROFILE_ACTIVE)


class AffiliateLink(db.Model):
    """Invite link handed out by partners (trial invites carry its code)."""
    __tablename__ = 'affiliate_links'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)
    manager_id = db.Column(db.Integer, db.ForeignKey('affiliate_profiles.id', ondelete='SET NULL'))
    agent_id = db.Column(db.Integer, db.ForeignKey('affiliate_profiles.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class AffiliateContract(db.Model):
    """Partner contract. Only subscription-agent trial contracts are written here."""
    __tablename__ = 'affiliate_contracts'

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False, index=True)
    contract_type = db.Column(db.String(30), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)
    is_trial = db.Column(db.Boolean, nullable=False, default=False)
    trial_ends_at = db.Column(db.DateTime)
    contract_start = db.Column(db.DateTime)
    contract_end = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class AffiliateLead(db.Model):
    """Prospect record keyed by phone. Owned by the CRM; login only upserts."""
    __tablename__ = 'affiliate_leads'

    id = db.Column(db.Integer, primary_key=True)
    customer_name = db.Column(db.String(100))
    customer_phone = db.Column(db.String(64), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)
    source = db.Column(db.String(50))
    manager_id = db.Column(db.Integer, db.ForeignKey('affiliate_profiles.id', ondelete='SET NULL'))
    agent_id = db.Column(db.Integer, db.ForeignKey('affiliate_profiles.id', ondelete='SET NULL'))
    link_id = db.Column(db.Integer, db.ForeignKey('affiliate_links.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<AffiliateLead {mask_phone(self.customer_phone)} {self.status}>'


class ActivityLog(db.Model):
    """
    Login audit trail.

    One row per login attempt or security event, successful or not.
    """
    __tablename__ = 'activity_log'

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('accounts.id', ondelete='SET NULL'), index=True)

    action = db.Column(db.String(50), nullable=False, index=True)  # 'login', 'rate_limited'
    login_path = db.Column(db.String(30))
    identifier = db.Column(db.String(64))  # masked phone / login id
    source_ip = db.Column(db.String(45), nullable=False, index=True)
    user_agent = db.Column(db.Text)

    status = db.Column(db.String(20), nullable=False, index=True)  # 'success', 'denied', 'error'
    status_reason = db.Column(db.Text)
    details = db.Column(db.Text)  # JSON

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def set_details(self, data: dict[str, Any] | None):
        """Store details as JSON (password-like keys masked)."""
        if data:
            masked = data.copy()
            for key in ('password', 'csrfToken', 'csrf_token', 'session_id'):
                if key in masked:
                    masked[key] = '***MASKED***'
            self.details = json.dumps(masked, default=str)
        else:
            self.details = None

    def get_details(self) -> dict[str, Any]:
        try:
            return json.loads(self.details) if self.details else {}
        except (json.JSONDecodeError, TypeError):
            return {}

    def __repr__(self):
        return f'<ActivityLog {self.action} {self.status} {self.created_at}>'
