"""
Referral attribution for trial logins.

A trial login may arrive through a partner's invite link (trialCode) or carry a
partner's affiliate code directly. Either way the prospect is saved as an
AffiliateLead keyed by phone, attributed to whichever manager/agent the code
resolves to. Best-effort: failures never affect the login.
"""
import logging
from datetime import datetime
from typing import NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError

from .models import (
    PROFILE_ACTIVE,
    PROFILE_BRANCH_MANAGER,
    PROFILE_SALES_AGENT,
    AffiliateLead,
    AffiliateLink,
    AffiliateProfile,
    AffiliateRelation,
    db,
    mask_phone,
)

logger = logging.getLogger(__name__)

LEAD_STATUS_IN_PROGRESS = 'IN_PROGRESS'

SOURCE_TRIAL_INVITE = 'trial-invite-link'
SOURCE_AFFILIATE_LINK = 'affiliate-link'
SOURCE_TEST_GUIDE = 'test-guide'


class Attribution(NamedTuple):
    manager_id: Optional[int] = None
    agent_id: Optional[int] = None
    link_id: Optional[int] = None


def lead_source(trial_code: str = '', affiliate_code: str = '') -> str:
    if trial_code:
        return SOURCE_TRIAL_INVITE
    if affiliate_code:
        return SOURCE_AFFILIATE_LINK
    return SOURCE_TEST_GUIDE


def resolve_attribution(trial_code: str = '', affiliate_code: str = '') -> Attribution:
    """Map an invite-link code or affiliate code to manager/agent profile ids."""
    if trial_code:
        link = AffiliateLink.query.filter_by(code=trial_code).first()
        if link is None:
            logger.info(f"Unknown trial invite code {trial_code!r}")
            return Attribution()
        return Attribution(manager_id=link.manager_id, agent_id=link.agent_id, link_id=link.id)

    if affiliate_code:
        profile = AffiliateProfile.query.filter_by(affiliate_code=affiliate_code).first()
        if profile is None:
            logger.info(f"Unknown affiliate code {affiliate_code!r}")
            return Attribution()
        if profile.type == PROFILE_BRANCH_MANAGER:
            return Attribution(manager_id=profile.id)
        if profile.type == PROFILE_SALES_AGENT:
            relation = AffiliateRelation.query.filter_by(agent_id=profile.id, status=PROFILE_ACTIVE).first()
            return Attribution(manager_id=relation.manager_id if relation else None, agent_id=profile.id)

    return Attribution()


def record_lead(name: str, phone: str, trial_code: str = '', affiliate_code: str = '',
                now: Optional[datetime] = None) -> Optional[AffiliateLead]:
    """
    Create or update the lead for `phone`.

    Skipped when name or phone is missing. Existing attribution is kept unless
    the new code resolves to a partner.
    """
    if not name or not phone:
        return None

    now = now or datetime.utcnow()
    try:
        attribution = resolve_attribution(trial_code, affiliate_code)
        source = lead_source(trial_code, affiliate_code)

        lead = AffiliateLead.query.filter_by(customer_phone=phone).first()
        if lead is None:
            lead = AffiliateLead(
                customer_name=name,
                customer_phone=phone,
                status=LEAD_STATUS_IN_PROGRESS,
                source=source,
                manager_id=attribution.manager_id,
                agent_id=attribution.agent_id,
                link_id=attribution.link_id,
            )
            db.session.add(lead)
        else:
            lead.customer_name = name
            lead.status = LEAD_STATUS_IN_PROGRESS
            lead.source = source
            lead.manager_id = attribution.manager_id or lead.manager_id
            lead.agent_id = attribution.agent_id or lead.agent_id
            lead.link_id = attribution.link_id or lead.link_id
            lead.updated_at = now

        db.session.commit()
        logger.info(f"Lead recorded for {mask_phone(phone)} (source={source}, manager={attribution.manager_id}, agent={attribution.agent_id})")
        return lead
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Failed to record lead for {mask_phone(phone)}: {e}")
        return None
    except Exception:
        db.session.rollback()
        logger.exception(f"Unexpected error recording lead for {mask_phone(phone)}")
        return None
