import pytest

from services.errors import ConfigurationError
from services.settings import AuthSettings

from tests.conftest import config_dict


def test_testing_config_loads():
    settings = AuthSettings.from_config(config_dict())
    assert len(settings.cookie.key) == 32
    assert len(settings.jwt.key) >= 32
    assert settings.jwt.algorithm == "HS256"
    assert settings.login.lockout_starts_after_attempts == 3
    assert settings.refresh.revoke_chain_on_reuse is False
    assert settings.email.confirmation_token_hours == 24
    assert settings.email.reset_token_minutes == 30


@pytest.mark.parametrize(
    "overrides",
    [
        {"JWT_KEY": None},
        {"JWT_KEY": "c2hvcnQ="},  # 5 bytes
        {"JWT_KEY": "%%%not-base64%%%"},
        {"COOKIE_KEY": "c2hvcnQ="},
        {"JWT_ISSUER": ""},
        {"ORIGIN_HOST": "  "},
        {"JWT_EXPIRES_SECONDS": 0},
        {"RT_EXPIRES_HOURS": "soon"},
        {"LOGIN_LOCKOUT_STARTS_AFTER": 11, "LOGIN_MAX_FAILED_ATTEMPTS": 10},
        {"RT_SESSION_MAX_AGE_HOURS": -1},
        {"EMAIL_CONFIRM_URL": ""},
        {"EMAIL_MAX_PER_DAY": 0},
        {"EMAIL_RESEND_COOLDOWN_SECONDS": -1},
    ],
)
def test_invalid_configuration_is_rejected(overrides):
    with pytest.raises(ConfigurationError):
        AuthSettings.from_config(config_dict(**overrides))


def test_flags_accept_env_strings():
    settings = AuthSettings.from_config(
        config_dict(RT_REVOKE_CHAIN_ON_REUSE="true", LOGIN_LOCK_ENABLED="0")
    )
    assert settings.refresh.revoke_chain_on_reuse is True
    assert settings.login.lock_enabled is False
