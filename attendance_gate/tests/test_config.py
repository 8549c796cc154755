"""
Tests for configuration validation
"""
import pytest
from pydantic import ValidationError
from attendance_gate.core.config import Settings


def make_settings(**overrides):
    values = {"DATABASE_URL": "postgresql://test", "JWT_SECRET_KEY": "test-key"}
    values.update(overrides)
    return Settings(**values)


def test_prod_settings_rejects_wildcard_origins():
    """Production settings reject wildcard origins"""
    settings = make_settings(JWT_SECRET_KEY="a" * 32, APP_ENV="prod", ALLOWED_ORIGINS="*")
    with pytest.raises(ValueError, match="ALLOWED_ORIGINS"):
        settings.validate_production()


def test_prod_settings_rejects_short_jwt_secret():
    """Production settings reject a short JWT secret"""
    settings = make_settings(JWT_SECRET_KEY="short", APP_ENV="prod", ALLOWED_ORIGINS="https://example.com")
    with pytest.raises(ValueError, match="JWT_SECRET_KEY"):
        settings.validate_production()


def test_local_settings_allows_wildcard_origins():
    """Local settings allow wildcard origins"""
    settings = make_settings(APP_ENV="local", ALLOWED_ORIGINS="*")

    # Should not raise error
    settings.validate_production()
    assert settings.get_allowed_origins_list() == ["*"]


def test_get_allowed_origins_list():
    """Parsing of ALLOWED_ORIGINS"""
    settings = make_settings(ALLOWED_ORIGINS="https://example.com,https://app.example.com")
    origins = settings.get_allowed_origins_list()
    assert len(origins) == 2
    assert "https://example.com" in origins
    assert "https://app.example.com" in origins


def test_company_allowed_ips_list():
    """COMPANY_ALLOWED_IPS is comma-separated; blanks are dropped and empty means no entries"""
    assert make_settings(COMPANY_ALLOWED_IPS="").get_company_allowed_ips_list() == []
    settings = make_settings(COMPANY_ALLOWED_IPS=" 10.0.0.0/8, ,192.168.1.1 ")
    assert settings.get_company_allowed_ips_list() == ["10.0.0.0/8", "192.168.1.1"]


def test_invalid_app_env_rejected():
    with pytest.raises(ValidationError):
        make_settings(APP_ENV="qa")


def test_log_level_normalized():
    assert make_settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"


def test_registration_disabled_by_default(monkeypatch):
    monkeypatch.delenv("ALLOW_REGISTRATION", raising=False)
    assert make_settings().ALLOW_REGISTRATION is False
