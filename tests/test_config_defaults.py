"""Configuration lookup: environment over defaults files, typed helpers."""

import pytest

from tripgate.config_defaults import get_bool, get_config, get_int, get_json, get_list, require_default


def test_defaults_file_is_loaded():
    assert require_default("SESSION_LIFETIME_DAYS") == "30"
    assert get_config("TRIAL_PRODUCT_CODES") == "SAMPLE-MED-001,TEST-001"


def test_environment_wins(monkeypatch):
    monkeypatch.setenv("TRIAL_WINDOW_HOURS", "12")
    assert get_int("TRIAL_WINDOW_HOURS", 72) == 12


def test_empty_environment_value_is_ignored(monkeypatch):
    monkeypatch.setenv("SESSION_LIFETIME_DAYS", "")
    assert get_int("SESSION_LIFETIME_DAYS", 1) == 30


def test_fallback_for_unknown_key():
    assert get_config("TRIPGATE_NOT_A_KEY", "fallback") == "fallback"
    assert get_list("TRIPGATE_NOT_A_KEY", ["a"]) == ["a"]
    assert get_bool("TRIPGATE_NOT_A_KEY", True) is True


def test_typed_helpers(monkeypatch):
    monkeypatch.setenv("X_LIST", " a, b ,,c ")
    monkeypatch.setenv("X_BOOL", "Yes")
    monkeypatch.setenv("X_JSON", '[{"name": "n"}]')
    assert get_list("X_LIST") == ["a", "b", "c"]
    assert get_bool("X_BOOL") is True
    assert get_json("X_JSON") == [{"name": "n"}]


def test_bad_values_raise(monkeypatch):
    monkeypatch.setenv("X_INT", "many")
    monkeypatch.setenv("X_JSON", "{oops")
    with pytest.raises(RuntimeError):
        get_int("X_INT", 1)
    with pytest.raises(RuntimeError):
        get_json("X_JSON")


def test_require_default_missing():
    with pytest.raises(RuntimeError):
        require_default("TRIPGATE_NOT_A_KEY")
