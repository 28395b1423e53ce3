import pytest
from pydantic import ValidationError

from mailverdict.config import DEFAULT_BLOCKLIST, Settings


def test_comma_separated_blocklist_from_env(monkeypatch):
    monkeypatch.setenv("MALICIOUS_DOMAINS", " Evil.com, , phish.example ")
    settings = Settings(_env_file=None)
    assert settings.malicious_domains == ("evil.com", "phish.example")


def test_blank_blocklist_falls_back_to_defaults(monkeypatch):
    monkeypatch.setenv("MALICIOUS_DOMAINS", " , ")
    assert Settings(_env_file=None).malicious_domains == DEFAULT_BLOCKLIST


def test_nested_weights_from_env(monkeypatch):
    monkeypatch.setenv("WEIGHTS__CLASSIFIER_SPAM", "6.5")
    monkeypatch.setenv("SPAMD_PORT", "1783")
    settings = Settings(_env_file=None)
    assert settings.weights.classifier_spam == 6.5
    assert settings.spamd_port == 1783


def test_settings_are_immutable():
    settings = Settings(_env_file=None)
    with pytest.raises(ValidationError):
        settings.spamd_host = "elsewhere"


def test_request_timeout_in_seconds():
    assert Settings(_env_file=None, request_timeout_ms=2500).request_timeout_s == 2.5


def test_helo_domain_is_not_a_setting():
    assert "helo_domain" not in Settings.model_fields
