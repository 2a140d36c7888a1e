"""Rate limiting, conflict recovery and error reporting at the service boundary."""

from conftest import make_account

from tripgate import account_resolver, login_service
from tripgate.models import Account, ActivityLog
from tripgate.rate_limiter import RateLimiter, login_key


class TestRateLimiter:
    def test_counts_per_key(self):
        limiter = RateLimiter("memory://")

        assert not limiter.check("login:1.1.1.1", "2 per minute").limited
        assert not limiter.check("login:1.1.1.1", "2 per minute").limited
        status = limiter.check("login:1.1.1.1", "2 per minute")
        assert status.limited
        assert 1 <= status.retry_after() <= 60

        assert not limiter.check("login:2.2.2.2", "2 per minute").limited

    def test_disabled_limiter_never_limits(self):
        limiter = RateLimiter("memory://", enabled=False)
        for _ in range(5):
            assert not limiter.check("login:1.1.1.1", "1 per minute").limited

    def test_login_key(self):
        assert login_key("10.0.0.1") == "login:10.0.0.1"
        assert login_key(None) == "login:unknown"


class TestLoginRateLimit:
    def test_too_many_attempts(self, login, monkeypatch):
        monkeypatch.setenv("LOGIN_RATE_LIMIT", "2 per minute")

        assert login(name="Kim", phone="01099998888", password="secret").status_code == 200
        assert login(name="Kim", phone="01099998888", password="wrong").status_code == 401
        resp = login(name="Kim", phone="01099998888", password="wrong")

        assert resp.status_code == 429
        data = resp.get_json()
        assert data["ok"] is False
        assert data["retryAfter"] >= 1
        assert resp.headers["Retry-After"] == str(data["retryAfter"])
        assert ActivityLog.query.filter_by(action="rate_limited").count() == 1

    def test_limit_applies_before_classification(self, login, monkeypatch):
        monkeypatch.setenv("LOGIN_RATE_LIMIT", "1 per minute")

        login(name="Kim", phone="01099998888", password="3800")
        resp = login(name="Lee", phone="01033334444", password="1101")

        assert resp.status_code == 429
        assert Account.query.count() == 1


class TestConflictRecovery:
    def test_racing_create_resolves_to_existing_account(self, login, monkeypatch):
        existing = make_account(name="Kim", phone="01099998888")
        real_lookup = account_resolver._find_customer
        calls = {"n": 0}

        def lookup_missing_once(name, phone):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return real_lookup(name, phone)

        monkeypatch.setattr(account_resolver, "_find_customer", lookup_missing_once)

        resp = login(name="Kim", phone="01099998888", password="3800")

        assert resp.status_code == 200
        assert calls["n"] >= 2
        accounts = Account.query.filter_by(name="Kim").all()
        assert [a.id for a in accounts] == [existing.id]


class TestInternalErrors:
    def test_unexpected_error_is_generic(self, login, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("database on fire")

        monkeypatch.setattr(login_service, "resolve", explode)

        resp = login(name="Kim", phone="01099998888", password="3800")

        assert resp.status_code == 500
        data = resp.get_json()
        assert data["ok"] is False
        assert "details" not in data
        assert "fire" not in data["error"]

    def test_debug_errors_include_details(self, login, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("database on fire")

        monkeypatch.setattr(login_service, "resolve", explode)
        monkeypatch.setenv("DEBUG_ERRORS", "true")

        data = login(name="Kim", phone="01099998888", password="3800").get_json()

        assert data["details"] == "RuntimeError: database on fire"

    def test_unknown_intent_is_a_bad_request(self, login):
        resp = login(name="Kim", phone="01099998888", password="x", intent="root")
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "intent"


class TestAppSurface:
    def test_health(self, client):
        assert client.get("/health").get_json() == {"status": "ok"}

    def test_unknown_api_path_is_json_404(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.get_json()["ok"] is False

    def test_non_json_body_is_a_validation_error(self, client):
        resp = client.post("/api/auth/login", data="name=Kim", content_type="application/x-www-form-urlencoded")
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "password"

    def test_explicit_intent_replaces_sentinel(self, login):
        resp = login(name="Lee", phone="01033334444", password="my-real-secret", intent="trial")
        assert resp.status_code == 200
        assert resp.get_json()["next"] == "/chat-test"
