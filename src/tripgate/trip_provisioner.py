"""
Automatic trip provisioning after login.

Handles:
- Picking the catalog product for trial / active accounts
- Replacing stale auto-provisioned trips (admin-registered trips are kept)
- Generating the day-by-day itinerary and visited-country aggregates

Provisioning runs after the account commit and is best-effort: any failure is
rolled back, logged and swallowed so the login itself still succeeds.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from .config_defaults import get_int, get_list
from .errors import ProvisioningError
from .itinerary_pattern import extract_destinations, extract_visited_countries, normalize_pattern
from .models import (
    TRIP_ORIGIN_ADMIN,
    TRIP_ORIGIN_AUTO,
    Account,
    CruiseProduct,
    Itinerary,
    UserTrip,
    VisitedCountry,
    db,
)

logger = logging.getLogger(__name__)

KIND_TRIAL = 'trial'
KIND_ACTIVE = 'active'

DEFAULT_TRIAL_PRODUCTS = ['SAMPLE-MED-001', 'TEST-001']
DEFAULT_ACTIVE_PRODUCTS = ['REAL-CRUISE-01']
DEFAULT_ACTIVE_OFFSET_DAYS = 30

COMPANION_FAMILY = 'family'
TRIP_STATUS_UPCOMING = 'Upcoming'


def product_codes(kind: str) -> list[str]:
    if kind == KIND_TRIAL:
        return get_list('TRIAL_PRODUCT_CODES', DEFAULT_TRIAL_PRODUCTS)
    return get_list('ACTIVE_PRODUCT_CODES', DEFAULT_ACTIVE_PRODUCTS)


def find_product(codes: list[str]) -> Optional[CruiseProduct]:
    """First catalog product matching the ordered code list."""
    for code in codes:
        product = CruiseProduct.query.filter_by(product_code=code).first()
        if product is not None:
            return product
    return None


def generate_reservation_code(now: datetime) -> str:
    """CRD-YYYYMMDD-NNNN"""
    return f"CRD-{now.strftime('%Y%m%d')}-{secrets.randbelow(10000):04d}"


def trip_dates(kind: str, product: CruiseProduct, now: datetime) -> tuple[datetime, datetime]:
    """Start at midnight (today, or the configured offset for active accounts), end on the last day."""
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if kind == KIND_ACTIVE:
        start += timedelta(days=get_int('ACTIVE_TRIP_OFFSET_DAYS', DEFAULT_ACTIVE_OFFSET_DAYS))
    days = max(product.days or 1, 1)
    end = (start + timedelta(days=days - 1)).replace(hour=23, minute=59, second=59, microsecond=999999)
    return start, end


def provision_trip(account: Account, kind: str, now: Optional[datetime] = None) -> Optional[UserTrip]:
    """
    Make sure the account has a current trip for `kind` ('trial' or 'active').

    Returns the trip in effect, or None when provisioning failed.
    """
    now = now or datetime.utcnow()
    try:
        return _provision(account, kind, now)
    except ProvisioningError as e:
        db.session.rollback()
        logger.warning(f"Trip provisioning skipped for account {account.id}: {e.message}")
        return None
    except Exception:
        db.session.rollback()
        logger.exception(f"Trip provisioning failed for account {account.id}")
        return None


def _provision(account: Account, kind: str, now: datetime) -> UserTrip:
    admin_trip = UserTrip.query.filter_by(account_id=account.id, origin=TRIP_ORIGIN_ADMIN).first()
    if admin_trip is not None:
        logger.info(f"Account {account.id} has an admin-registered trip; leaving it untouched")
        return admin_trip

    codes = product_codes(kind)
    product = find_product(codes)
    if product is None:
        raise ProvisioningError(f"no catalog product for codes {codes}")

    existing = account.latest_trip()
    if existing is not None:
        if existing.product_id == product.id and not existing.is_finished(now):
            logger.debug(f"Account {account.id} already has a current {product.product_code} trip")
            return existing
        logger.info(f"Replacing trip {existing.reservation_code} for account {account.id}")
        db.session.delete(existing)
        db.session.flush()

    trip = _create_trip(account, product, kind, now)

    if kind == KIND_TRIAL:
        account.onboarded = True
    account.total_trip_count = (account.total_trip_count or 0) + 1
    db.session.commit()

    logger.info(
        f"Provisioned {kind} trip {trip.reservation_code} ({product.product_code}) "
        f"for account {account.id}: {trip.start_date:%Y-%m-%d} to {trip.end_date:%Y-%m-%d}"
    )
    return trip


def _create_trip(account: Account, product: CruiseProduct, kind: str, now: datetime) -> UserTrip:
    raw_pattern = product.get_itinerary_pattern()
    pattern = normalize_pattern(raw_pattern)
    destinations = extract_destinations(raw_pattern)
    start, end = trip_dates(kind, product, now)

    trip = UserTrip(
        account_id=account.id,
        product_id=product.id,
        reservation_code=generate_reservation_code(now),
        cruise_name=product.display_name,
        companion_type=COMPANION_FAMILY,
        start_date=start,
        end_date=end,
        nights=product.nights,
        days=product.days,
        visit_count=len(destinations),
        status=TRIP_STATUS_UPCOMING,
        origin=TRIP_ORIGIN_AUTO,
    )
    trip.set_destinations(destinations)
    db.session.add(trip)
    db.session.flush()

    for entry in pattern:
        db.session.add(Itinerary(
            trip_id=trip.id,
            day=entry['day'],
            date=start + timedelta(days=entry['day'] - 1),
            type=entry['type'],
            location=entry['location'],
            country=entry['country'],
            currency=entry['currency'],
            language=entry['language'],
            arrival=entry['arrival'],
            departure=entry['departure'],
            time=entry['time'],
        ))

    _record_visited_countries(account, extract_visited_countries(raw_pattern), start)
    return trip


def _record_visited_countries(account: Account, countries: dict[str, str], visited_at: datetime):
    for code, name in countries.items():
        visited = VisitedCountry.query.filter_by(account_id=account.id, country_code=code).first()
        if visited is None:
            db.session.add(VisitedCountry(
                account_id=account.id,
                country_code=code,
                country_name=name,
                visit_count=1,
                last_visited=visited_at,
            ))
        else:
            visited.visit_count = (visited.visit_count or 0) + 1
            visited.last_visited = visited_at
