"""End-to-end login behaviour per lifecycle path, through the HTTP endpoint."""

from datetime import datetime, timedelta

from conftest import ADMIN_NAME, ADMIN_PASSWORD, make_account, reload

from tripgate.database import db
from tripgate.models import (
    ROLE_ADMIN,
    ROLE_COMMUNITY,
    ROLE_CUSTOMER,
    ROLE_STAFF,
    STATUS_ACTIVE,
    STATUS_DORMANT,
    STATUS_LOCKED,
    Account,
    ActivityLog,
    AffiliateContract,
    AffiliateProfile,
    UserTrip,
)


class TestPartnerLogin:
    def test_staff_default_creates_partner_with_profile(self, login):
        resp = login(phone="Boss1", password="qwe1", mode="partner")

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["ok"] is True
        assert data["next"] == "/partner/boss1/dashboard"
        assert data["partnerId"] == "boss1"

        account = Account.query.filter_by(mall_user_id="boss1").one()
        assert account.role == ROLE_STAFF
        assert account.source == "partner-test"
        assert account.name == "Branch Manager boss1"

        profile = AffiliateProfile.query.filter_by(account_id=account.id).one()
        assert profile.type == "BRANCH_MANAGER"
        assert profile.status == "ACTIVE"
        assert profile.affiliate_code.startswith("AFF-BOSS1-")

    def test_sales_agent_profile_type(self, login):
        login(phone="agent3", password="zxc1", mode="partner")
        account = Account.query.filter_by(mall_user_id="agent3").one()
        assert AffiliateProfile.query.filter_by(account_id=account.id).one().type == "SALES_AGENT"

    def test_unknown_partner_with_real_password_is_rejected(self, login):
        resp = login(phone="nobody", password="not-a-default", mode="partner")
        assert resp.status_code == 401
        assert Account.query.count() == 0

    def test_existing_partner_verifies_stored_credential(self, login):
        make_account(name="Sales Kim", phone="skim", mall_user_id="skim", role=ROLE_STAFF, password="s3cret!")

        assert login(phone="skim", password="wrong", mode="partner").status_code == 401
        assert login(phone="skim", password="s3cret!", mode="partner").status_code == 200

    def test_legacy_plaintext_partner_credential_is_rehashed(self, login):
        account = make_account(name="Old Agent", phone="oldagent", role=ROLE_STAFF, password_hash="legacy-pw")

        resp = login(phone="oldagent", password="legacy-pw", mode="partner")

        assert resp.status_code == 200
        account = reload(Account, account.id)
        assert account.password_hash.startswith("$2")
        assert account.mall_user_id == "oldagent"

    def test_profile_is_created_once(self, login):
        login(phone="agent9", password="qwe1")
        login(phone="agent9", password="qwe1")
        account = Account.query.filter_by(mall_user_id="agent9").one()
        assert AffiliateProfile.query.filter_by(account_id=account.id).count() == 1
        assert account.login_count == 2

    def test_subscription_agent_gets_trial_contract(self, login):
        login(phone="gest2", password="qwe1")
        account = Account.query.filter_by(mall_user_id="gest2").one()
        contract = AffiliateContract.query.filter_by(account_id=account.id).one()
        assert contract.contract_type == "SUBSCRIPTION_AGENT"
        assert contract.is_trial is True
        assert contract.trial_ends_at - contract.contract_start == timedelta(days=7)

    def test_partner_id_taken_by_community_member(self, login):
        member = make_account(name="Mall Lee", phone="01066667777", mall_user_id="agent7",
                              role=ROLE_COMMUNITY, source="mall-signup", password="pw1234")

        resp = login(phone="agent7", password="qwe1", mode="partner")

        assert resp.status_code == 401
        assert Account.query.filter_by(role=ROLE_STAFF).count() == 0
        assert AffiliateProfile.query.count() == 0
        assert reload(Account, member.id).role == ROLE_COMMUNITY

    def test_shared_demo_subscription_trial_resets(self, login):
        login(phone="gest1", password="qwe1")
        account = Account.query.filter_by(mall_user_id="gest1").one()
        contract = AffiliateContract.query.filter_by(account_id=account.id).one()
        contract.trial_ends_at = datetime.utcnow() - timedelta(days=1)
        db.session.commit()

        login(phone="gest1", password="qwe1")

        contract = reload(AffiliateContract, contract.id)
        assert contract.trial_ends_at > datetime.utcnow() + timedelta(days=6)


class TestLockedRejection:
    def test_8300_is_rejected_even_for_active_accounts(self, login):
        make_account(name="Kim", phone="01099998888", status=STATUS_ACTIVE, password="secret")

        resp = login(name="Kim", phone="01099998888", password="8300")

        assert resp.status_code == 403
        assert resp.get_json()["ok"] is False
        assert ActivityLog.query.filter_by(action="locked_login").count() == 1

    def test_8300_without_any_account(self, login):
        assert login(name="Nobody", phone="01000000000", password="8300").status_code == 403
        assert Account.query.count() == 0

    def test_explicit_credential_intent_cannot_bypass_8300(self, login):
        resp = login(name="Choi", phone="01077776666", password="8300", intent="credential")

        assert resp.status_code == 403
        assert "Set-Cookie" not in resp.headers
        assert Account.query.count() == 0

    def test_stored_8300_credential_is_still_rejected(self, login):
        make_account(name="Choi", phone="01077776666", password="8300")

        resp = login(name="Choi", phone="01077776666", password="8300", intent="credential")

        assert resp.status_code == 403
        assert ActivityLog.query.filter_by(action="locked_login").count() == 1


class TestCommunityLogin:
    def test_legacy_record_is_migrated_on_login(self, login):
        account = make_account(
            name="Mall Kim", phone="01077778888", role=ROLE_COMMUNITY,
            source="mall-signup", password_hash="plainpw",
        )

        resp = login(phone="01077778888", password="plainpw", mode="community")

        assert resp.status_code == 200
        assert resp.get_json()["next"] == "/"
        account = reload(Account, account.id)
        assert account.mall_user_id == "01077778888"
        assert account.password_hash.startswith("$2")
        assert account.verify_password("plainpw")

    def test_login_by_mall_user_id(self, login):
        make_account(name="Mall Lee", phone="01066667777", mall_user_id="lee_mall",
                     role=ROLE_COMMUNITY, source="mall-signup", password="pw1234")
        assert login(phone="lee_mall", password="pw1234", mode="community").status_code == 200

    def test_wrong_password(self, login):
        make_account(name="Mall Lee", phone="01066667777", mall_user_id="lee_mall",
                     role=ROLE_COMMUNITY, source="mall-signup", password="pw1234")
        assert login(phone="lee_mall", password="nope", mode="community").status_code == 401

    def test_other_sources_are_not_community_logins(self, login):
        make_account(name="X", phone="x_user", mall_user_id="x_user",
                     role=ROLE_COMMUNITY, source="cruise-guide", password="pw1234")
        assert login(phone="x_user", password="pw1234", mode="community").status_code == 401


class TestAdminLogin:
    def test_allowlisted_admin_logs_in(self, login):
        resp = login(name=ADMIN_NAME, phone="01012345678", password=ADMIN_PASSWORD, mode="admin")

        assert resp.status_code == 200
        assert resp.get_json()["next"] == "/admin/dashboard"
        account = Account.query.filter_by(role=ROLE_ADMIN).one()
        assert account.phone == "01012345678"
        assert account.password_hash is None

    def test_phone_formatting_is_ignored(self, login):
        resp = login(name=ADMIN_NAME, phone="010 1234-5678", password=ADMIN_PASSWORD, mode="admin")
        assert resp.status_code == 200

    def test_identity_not_on_allowlist_is_rejected_and_creates_nothing(self, login):
        resp = login(name="Mallory", phone="01012345678", password=ADMIN_PASSWORD, mode="admin")

        assert resp.status_code == 403
        assert Account.query.count() == 0

    def test_wrong_password(self, login):
        resp = login(name=ADMIN_NAME, phone="01012345678", password="guess", mode="admin")
        assert resp.status_code == 401
        assert Account.query.count() == 0

    def test_missing_name(self, login):
        resp = login(phone="01012345678", password=ADMIN_PASSWORD, mode="admin")
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "name"


class TestDormantReactivation:
    def test_dormant_account_becomes_active(self, login):
        hibernated_at = datetime.utcnow() - timedelta(days=200)
        account = make_account(
            name="01011112222", phone="01011112222", status=STATUS_DORMANT,
            is_hibernated=True, hibernated_at=hibernated_at, password="01011112222",
        )

        resp = login(name="01011112222", phone="01011112222", password="3800")

        assert resp.status_code == 200
        assert resp.get_json()["next"] == "/onboarding"
        account = reload(Account, account.id)
        assert account.status == STATUS_ACTIVE
        assert account.is_hibernated is False
        assert account.hibernated_at is None
        assert account.password_hash is None
        assert account.source == "cruise-guide"

    def test_phone_as_password_marks_dormant_record(self, login):
        account = make_account(name="01022223333", phone="01022223333", password="01022223333", onboarded=True)

        resp = login(name="01022223333", phone="01022223333", password="3800")

        assert resp.get_json()["next"] == "/chat"
        assert reload(Account, account.id).password_hash is None

    def test_no_dormant_record_falls_through_to_activation(self, login):
        resp = login(name="01044445555", phone="01044445555", password="3800")

        assert resp.status_code == 200
        account = Account.query.one()
        assert account.status == STATUS_ACTIVE
        assert account.source == "cruise-guide"


class TestActiveReactivation:
    def test_new_customer_example(self, login):
        resp = login(name="Kim", phone="01099998888", password="3800")

        assert resp.status_code == 200
        assert resp.get_json()["next"] == "/onboarding"
        account = Account.query.one()
        assert account.role == ROLE_CUSTOMER
        assert account.status == STATUS_ACTIVE
        assert account.onboarded is False
        assert account.password_hash is None

    def test_locked_account_is_unlocked(self, login):
        account = make_account(
            name="Kim", phone="01099998888", status=STATUS_LOCKED, is_locked=True,
            locked_at=datetime.utcnow(), locked_reason="payment", onboarded=True,
        )

        resp = login(name="Kim", phone="010-9999-8888", password="3800")

        assert resp.get_json()["next"] == "/chat"
        account = reload(Account, account.id)
        assert account.status == STATUS_ACTIVE
        assert account.is_locked is False
        assert account.locked_reason is None

    def test_requires_name(self, login):
        resp = login(phone="01099998888", password="3800")
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "name"


class TestLegacyNumbered:
    def test_find_or_create_legacy_account(self, login):
        resp = login(phone="user3", password="1101")

        assert resp.status_code == 200
        assert resp.get_json()["next"] == "/chat"
        account = Account.query.one()
        assert account.phone == "user3"
        assert account.source == "cruise-mall"
        assert UserTrip.query.count() == 0

        login(phone="USER3", password="1101")
        assert Account.query.count() == 1


class TestStandardLogin:
    def test_new_customer_is_created_with_hashed_password(self, login):
        resp = login(name="Choi", phone="01055550000", password="blue-ocean")

        assert resp.status_code == 200
        assert resp.get_json()["next"] == "/onboarding"
        account = Account.query.one()
        assert account.password_hash.startswith("$2")
        assert account.verify_password("blue-ocean")

    def test_returning_customer(self, login):
        account = make_account(name="Choi", phone="01055550000", password="blue-ocean", onboarded=True)

        assert login(name="Choi", phone="01055550000", password="wrong").status_code == 401
        resp = login(name="Choi", phone="01055550000", password="blue-ocean")
        assert resp.get_json()["next"] == "/chat"
        assert reload(Account, account.id).login_count == 1

    def test_error_message_does_not_say_which_field_was_wrong(self, login):
        make_account(name="Choi", phone="01055550000", password="blue-ocean")
        body = login(name="Choi", phone="01055550000", password="wrong").get_json()
        assert "password" not in body["error"].lower()

    def test_admin_identity_on_customer_login_is_refused(self, login):
        resp = login(name=ADMIN_NAME, phone="01012345678", password=ADMIN_PASSWORD)
        assert resp.status_code == 403
        assert Account.query.count() == 0

    def test_service_period_ended(self, login):
        account = make_account(name="Choi", phone="01055550000", password="blue-ocean", onboarded=True)
        ended = datetime.utcnow() - timedelta(days=10)
        db.session.add(UserTrip(
            account_id=account.id, start_date=ended - timedelta(days=5), end_date=ended,
            nights=4, days=5, reservation_code="CRD-20240101-0001",
        ))
        db.session.commit()

        assert login(name="Choi", phone="01055550000", password="blue-ocean").status_code == 403

    def test_trip_ended_yesterday_still_allowed(self, login):
        account = make_account(name="Choi", phone="01055550000", password="blue-ocean", onboarded=True)
        ended = datetime.utcnow() - timedelta(days=1)
        db.session.add(UserTrip(
            account_id=account.id, start_date=ended - timedelta(days=5), end_date=ended,
            nights=4, days=5, reservation_code="CRD-20240101-0002",
        ))
        db.session.commit()

        assert login(name="Choi", phone="01055550000", password="blue-ocean").status_code == 200

    def test_missing_password(self, login):
        resp = login(name="Choi", phone="01055550000")
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "password"

    def test_every_attempt_is_audited(self, login):
        login(name="Choi", phone="01055550000", password="blue-ocean")
        login(name="Choi", phone="01055550000", password="wrong")

        entries = ActivityLog.query.filter_by(action="login").order_by(ActivityLog.id).all()
        assert [e.status for e in entries] == ["success", "denied"]
        assert entries[0].login_path == "standard"
        assert entries[0].identifier == "010***"


class TestPhoneFormats:
    def test_trial_then_activation_share_one_account(self, login):
        login(name="Kim", phone="010-5555-6666", password="1101")
        login(name="Kim", phone="010-5555-6666", password="3800")

        account = Account.query.one()
        assert account.phone == "01055556666"
        assert account.status == STATUS_ACTIVE

    def test_standard_then_activation_share_one_account(self, login):
        assert login(name="Park", phone="010-2222-3333", password="s3cret").status_code == 200
        assert login(name="Park", phone="010-2222-3333", password="3800").status_code == 200

        assert Account.query.filter_by(role=ROLE_CUSTOMER).count() == 1
        assert Account.query.one().phone == "01022223333"

    def test_record_stored_as_typed_is_reused(self, login):
        account = make_account(name="Park", phone="010-2222-3333", password="s3cret", onboarded=True)

        assert login(name="Park", phone="010-2222-3333", password="s3cret").status_code == 200
        assert login(name="Park", phone="010-2222-3333", password="3800").status_code == 200

        assert Account.query.count() == 1
        assert reload(Account, account.id).login_count == 2
