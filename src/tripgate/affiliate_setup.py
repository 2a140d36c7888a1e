"""
Partner (staff) account setup on login.

Handles:
- Ensuring every staff account owns an ACTIVE AffiliateProfile
- Subscription-agent (gest*) trial contracts
"""
import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .errors import LoginError
from .models import (
    PROFILE_ACTIVE,
    PROFILE_BRANCH_MANAGER,
    PROFILE_SALES_AGENT,
    AffiliateContract,
    AffiliateProfile,
    Account,
    db,
)

logger = logging.getLogger(__name__)

PREFIX_BRANCH_MANAGER = 'boss'
PREFIX_SUBSCRIPTION_AGENT = 'gest'
SUBSCRIPTION_RESET_ID = 'gest1'

CONTRACT_SUBSCRIPTION_AGENT = 'SUBSCRIPTION_AGENT'
CONTRACT_STATUS_COMPLETED = 'completed'
SUBSCRIPTION_TRIAL_DAYS = 7


def staff_display_name(identifier: str) -> str:
    """Default display name for an auto-created staff account."""
    if identifier.startswith(PREFIX_BRANCH_MANAGER):
        return f"Branch Manager {identifier}"
    if identifier.startswith(PREFIX_SUBSCRIPTION_AGENT):
        return f"Subscription Agent {identifier}"
    return f"Sales Agent {identifier}"


def profile_type_for(identifier: str) -> str:
    if identifier.startswith(PREFIX_BRANCH_MANAGER):
        return PROFILE_BRANCH_MANAGER
    return PROFILE_SALES_AGENT


def generate_affiliate_code(login_id: str) -> str:
    """AFF-<LOGIN ID>-<4 hex chars>"""
    return f"AFF-{login_id.upper()}-{secrets.token_hex(2)}"


def ensure_affiliate_profile(account: Account) -> AffiliateProfile:
    """
    Return the account's ACTIVE affiliate profile, creating it on demand.

    A concurrent create is recovered by re-reading. Any other failure is fatal
    for the partner login.
    """
    profile = AffiliateProfile.query.filter_by(account_id=account.id).first()
    if profile is not None:
        if profile.status != PROFILE_ACTIVE:
            logger.info(f"Re-activating affiliate profile {profile.affiliate_code}")
            profile.status = PROFILE_ACTIVE
            db.session.commit()
        return profile

    login_id = account.mall_user_id or str(account.id)
    profile = AffiliateProfile(
        account_id=account.id,
        affiliate_code=generate_affiliate_code(login_id),
        type=profile_type_for(login_id),
        status=PROFILE_ACTIVE,
        display_name=account.name,
        landing_slug=login_id,
    )
    db.session.add(profile)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        profile = AffiliateProfile.query.filter_by(account_id=account.id).first()
        if profile is None:
            logger.error(f"Affiliate profile for account {account.id} could not be created")
            raise LoginError("Partner profile could not be prepared. Please try again.")
        logger.info(f"Affiliate profile for account {account.id} created concurrently, reusing it")
        return profile

    logger.info(f"Affiliate profile created: {profile.affiliate_code} ({profile.type})")
    return profile


def ensure_subscription_trial(account: Account, reset: bool = False, now: datetime | None = None):
    """
    Make sure a subscription-agent account has a trial contract.

    With reset=True (the shared demo id) the trial window restarts on every
    login. Best-effort: failures are logged and the login proceeds.
    """
    now = now or datetime.utcnow()
    ends_at = now + timedelta(days=SUBSCRIPTION_TRIAL_DAYS)
    try:
        contract = AffiliateContract.query.filter_by(
            account_id=account.id,
            contract_type=CONTRACT_SUBSCRIPTION_AGENT,
        ).first()

        if contract is None:
            contract = AffiliateContract(
                account_id=account.id,
                contract_type=CONTRACT_SUBSCRIPTION_AGENT,
                status=CONTRACT_STATUS_COMPLETED,
                is_trial=True,
                trial_ends_at=ends_at,
                contract_start=now,
                contract_end=ends_at,
            )
            db.session.add(contract)
            logger.info(f"Subscription trial contract created for account {account.id}")
        elif reset:
            contract.is_trial = True
            contract.trial_ends_at = ends_at
            contract.contract_start = now
            contract.contract_end = ends_at
            logger.info(f"Subscription trial contract reset for account {account.id}")
        else:
            return contract

        db.session.commit()
        return contract
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Subscription trial contract setup failed for account {account.id}: {e}")
        return None
