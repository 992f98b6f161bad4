import logging

import pytest

from services.accounts import FederatedClaim
from services.emails import LogEmailSender
from utils.security import token_hash

EMAIL = "new@example.com"
PASSWORD = "Str0ng!pass"


@pytest.fixture
def midday(clock):
    # keeps the per-day mail counters away from midnight
    clock.now = clock.now.replace(hour=12, minute=0, second=0, microsecond=0)
    return clock


def test_register_creates_unconfirmed_account_and_mails_link(service, credentials, outbox):
    result = service.register("  New@Example.com ", PASSWORD)
    assert result.success

    user = credentials.find_by_email(EMAIL)
    assert user.username == EMAIL
    assert user.is_local and not user.email_confirmed
    assert user.roles == ["customer"]

    assert len(outbox.messages) == 1
    message = outbox.messages[0]
    assert message["to"] == EMAIL
    assert message["from"] == "no-reply@auth.test"
    assert "https://app.example.com/confirm-email?token=" in message["body"]

    token = outbox.last_token()
    # only the digest is kept
    assert user.email_confirmation_token == token_hash(token)
    assert user.email_confirmation_token_expires_at is not None


def test_unconfirmed_account_cannot_log_in_until_confirmed(service, outbox):
    service.register(EMAIL, PASSWORD)
    assert service.authenticate(EMAIL, PASSWORD) is None

    assert service.confirm_email(outbox.last_token()).success
    assert service.authenticate(EMAIL, PASSWORD) is not None


def test_weak_password_is_refused(service, credentials, outbox):
    result = service.register(EMAIL, "weakpassword")
    assert not result.success
    assert result.error == "InvalidPasswordFormat"
    assert credentials.find_by_email(EMAIL) is None
    assert outbox.messages == []


def test_register_for_confirmed_address_reveals_nothing(service, alice, outbox):
    result = service.register("alice@example.com", PASSWORD)
    assert result.success
    assert outbox.messages == []
    # password untouched
    assert service.authenticate("alice", "s3cret-pass") is not None


def test_register_again_while_unconfirmed_replaces_password_and_link(service, outbox, clock):
    service.register(EMAIL, PASSWORD)
    first = outbox.last_token()
    clock.advance(seconds=61)
    service.register(EMAIL, "An0ther!pass")
    second = outbox.last_token()
    assert second != first

    assert service.confirm_email(first).error == "InvalidToken"
    assert service.confirm_email(second).success
    assert service.authenticate(EMAIL, "An0ther!pass") is not None


class TestConfirmEmail:
    def test_missing_or_unknown_token(self, service):
        assert service.confirm_email("").error == "InvalidToken"
        assert service.confirm_email("   ").error == "InvalidToken"
        assert service.confirm_email("no-such-token").error == "InvalidToken"

    def test_expired_token(self, service, outbox, clock):
        service.register(EMAIL, PASSWORD)
        clock.advance(hours=25)
        result = service.confirm_email(outbox.last_token())
        assert result.error == "TokenExpired"

    def test_token_is_single_use(self, service, outbox):
        service.register(EMAIL, PASSWORD)
        token = outbox.last_token()
        assert service.confirm_email(token).success
        assert service.confirm_email(token).error == "InvalidToken"

    def test_already_confirmed(self, service, credentials, outbox):
        service.register(EMAIL, PASSWORD)
        user = credentials.find_by_email(EMAIL)
        user.email_confirmed = True
        credentials.update(user)
        assert service.confirm_email(outbox.last_token()).error == "AlreadyConfirmed"


class TestResend:
    def test_unknown_or_confirmed_addresses_get_nothing(self, service, alice, outbox):
        assert service.resend_confirmation("ghost@example.com") is False
        assert service.resend_confirmation("alice@example.com") is False
        assert outbox.messages == []

    def test_cooldown_keeps_the_previous_link(self, service, outbox, midday):
        service.register(EMAIL, PASSWORD)
        first = outbox.last_token()
        assert service.resend_confirmation(EMAIL) is False
        assert len(outbox.messages) == 1
        assert service.confirm_email(first).success

    def test_daily_cap(self, service, outbox, midday):
        service.register(EMAIL, PASSWORD)
        for _ in range(4):
            midday.advance(seconds=61)
            assert service.resend_confirmation(EMAIL) is True
        midday.advance(seconds=61)
        assert service.resend_confirmation(EMAIL) is False
        assert len(outbox.messages) == 5

        midday.advance(days=1)
        assert service.resend_confirmation(EMAIL) is True


class TestResetPassword:
    def test_only_confirmed_local_accounts_get_a_link(self, service, alice, outbox):
        service.register(EMAIL, PASSWORD)
        service.accounts.register_federated(
            FederatedClaim(external_id="g-1", issuer="https://accounts.google.com", email="g@example.com")
        )
        outbox.messages.clear()

        assert service.send_reset_password("ghost@example.com") is False
        assert service.send_reset_password(EMAIL) is False
        assert service.send_reset_password("g@example.com") is False
        assert outbox.messages == []

        assert service.send_reset_password("alice@example.com") is True
        message = outbox.messages[-1]
        assert message["to"] == "alice@example.com"
        assert message["subject"] == "Reset your password"
        assert "https://app.example.com/reset-password?token=" in message["body"]

    def test_reset_sets_password_and_ends_sessions(self, service, alice, outbox):
        pair = service.issuer.issue_for(alice)
        service.send_reset_password("alice@example.com")
        token = outbox.last_token()

        weak = service.reset_password(token, "weakpassword")
        assert weak.error == "InvalidPasswordFormat"

        result = service.reset_password(token, "N3w!password")
        assert result.success
        assert result.user_id == alice.id
        assert service.refresh(pair.refresh_token) is None
        assert service.authenticate("alice", "N3w!password") is not None
        assert service.reset_password(token, "An0ther!pass").error == "InvalidToken"

    def test_expired_token(self, service, alice, outbox, clock):
        service.send_reset_password("alice@example.com")
        clock.advance(minutes=31)
        result = service.reset_password(outbox.last_token(), "N3w!password")
        assert result.error == "TokenExpired"
        assert service.authenticate("alice", "s3cret-pass") is not None

    def test_missing_token(self, service):
        assert service.reset_password(None, "N3w!password").error == "InvalidToken"
        assert service.reset_password("nope", "N3w!password").error == "InvalidToken"


def test_default_sender_keeps_links_out_of_the_log(caplog):
    with caplog.at_level(logging.INFO, logger="services.emails"):
        LogEmailSender().send(
            "alice@example.com", "no-reply@auth.test", "Confirm your email", "https://x.test/?token=s3cr3t"
        )
    assert "al***@example.com" in caplog.text
    assert "s3cr3t" not in caplog.text
