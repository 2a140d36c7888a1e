"""Credential classification: intent derivation and the ordered rule table."""

import pytest

from tripgate.classifier import RULES, LoginIntent, LoginPath, classify, derive_intent
from tripgate.credentials import Credentials, from_payload, is_legacy_numbered, normalize_phone
from tripgate.errors import ValidationError


def creds(**fields) -> Credentials:
    return Credentials(**fields)


class TestDeriveIntent:
    @pytest.mark.parametrize("password, intent", [
        ("qwe1", LoginIntent.PARTNER),
        ("1101", LoginIntent.TRIAL),
        ("8300", LoginIntent.LOCKED),
        ("3800", LoginIntent.ACTIVATE),
        ("correct horse", LoginIntent.CREDENTIAL),
    ])
    def test_sentinels_map_to_intents(self, password, intent):
        assert derive_intent(creds(password=password)) is intent

    def test_explicit_intent_wins_over_password(self):
        assert derive_intent(creds(password="secret", intent="trial")) is LoginIntent.TRIAL

    @pytest.mark.parametrize("intent", ["credential", "activate", "trial", "locked"])
    def test_locked_sentinel_ignores_explicit_intent(self, intent):
        assert derive_intent(creds(password="8300", intent=intent)) is LoginIntent.LOCKED

    def test_locked_sentinel_classifies_as_locked_with_any_intent(self):
        assert classify(creds(password="8300"), LoginIntent.CREDENTIAL) is LoginPath.LOCKED_REJECTION

    def test_unknown_explicit_intent_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            derive_intent(creds(password="secret", intent="superuser"))
        assert exc.value.field == "intent"
        assert exc.value.status_code == 400


class TestClassify:
    def test_rule_order_is_fixed(self):
        assert [path for path, _ in RULES] == [
            LoginPath.PARTNER,
            LoginPath.TRIAL,
            LoginPath.LOCKED_REJECTION,
            LoginPath.COMMUNITY,
            LoginPath.ADMIN,
            LoginPath.DORMANT_REACTIVATION,
            LoginPath.ACTIVE_REACTIVATION,
            LoginPath.LEGACY_NUMBERED,
            LoginPath.STANDARD,
        ]

    def test_missing_password_is_a_validation_error(self):
        with pytest.raises(ValidationError) as exc:
            classify(creds(name="Kim", phone="01099998888"))
        assert exc.value.field == "password"

    def test_partner_mode(self):
        assert classify(creds(phone="boss1", password="anything", mode="partner")) is LoginPath.PARTNER

    def test_partner_sentinel_without_mode(self):
        assert classify(creds(phone="agent7", password="qwe1")) is LoginPath.PARTNER

    def test_partner_beats_trial(self):
        assert classify(creds(phone="gest1", password="1101", mode="partner")) is LoginPath.PARTNER

    def test_trial(self):
        assert classify(creds(name="Lee", phone="01033334444", password="1101")) is LoginPath.TRIAL

    def test_trial_sentinel_in_admin_mode_is_not_trial(self):
        assert classify(creds(name="Lee", phone="01033334444", password="1101", mode="admin")) is LoginPath.ADMIN

    def test_locked_beats_community_and_admin(self):
        assert classify(creds(phone="01011112222", password="8300", mode="community")) is LoginPath.LOCKED_REJECTION
        assert classify(creds(phone="01011112222", password="8300", mode="admin")) is LoginPath.LOCKED_REJECTION

    def test_community(self):
        assert classify(creds(phone="mall_kim", password="pw", mode="community")) is LoginPath.COMMUNITY

    def test_dormant_requires_name_equal_to_phone(self):
        assert classify(creds(name="01011112222", phone="01011112222", password="3800")) is LoginPath.DORMANT_REACTIVATION
        assert classify(creds(name="Kim", phone="01011112222", password="3800")) is LoginPath.ACTIVE_REACTIVATION

    @pytest.mark.parametrize("phone", ["user1", "USER5", "user10"])
    def test_legacy_numbered_identifiers_skip_trial(self, phone):
        assert classify(creds(phone=phone, password="1101")) is LoginPath.LEGACY_NUMBERED

    @pytest.mark.parametrize("phone", ["user11", "user0", "user"])
    def test_other_user_ids_still_go_to_trial(self, phone):
        assert classify(creds(phone=phone, password="1101")) is LoginPath.TRIAL

    def test_legacy_identifier_with_real_password_is_standard(self):
        assert classify(creds(name="x", phone="user3", password="secret")) is LoginPath.STANDARD

    def test_everything_else_is_standard(self):
        assert classify(creds(name="Kim", phone="01099998888", password="secret")) is LoginPath.STANDARD


class TestCredentials:
    def test_from_payload_trims_and_lowercases_mode(self):
        parsed = from_payload({
            "name": "  Kim ", "phone": " 010-9999-8888 ", "password": " 3800 ",
            "mode": " Partner ", "trialCode": " INV1 ",
        })
        assert parsed.name == "Kim"
        assert parsed.phone == "010-9999-8888"
        assert parsed.password == "3800"
        assert parsed.mode == "partner"
        assert parsed.trial_code == "INV1"
        assert parsed.digits_phone == "01099998888"

    def test_from_payload_tolerates_missing_and_null_fields(self):
        parsed = from_payload({"password": "x", "name": None})
        assert parsed.name == ""
        assert parsed.phone == ""

    def test_normalize_phone(self):
        assert normalize_phone("010-1234 5678") == "01012345678"
        assert normalize_phone(None) == ""

    def test_legacy_pattern_is_configurable(self, monkeypatch):
        monkeypatch.setenv("LEGACY_NUMBERED_PATTERN", r"^guest\d$")
        assert is_legacy_numbered("guest4")
        assert not is_legacy_numbered("user4")
