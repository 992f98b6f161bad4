from __future__ import annotations

import re
from datetime import timedelta
from urllib.parse import parse_qs, urlsplit

import pytest

from api import create_app
from api.config import TestingConfig
from models.base_model import utcnow
from models.memory_storage import InMemoryCredentialStore, InMemoryRefreshTokenStore
from services import AuthService
from services.settings import AuthSettings

ORIGIN = "https://app.example.com"


class FakeClock:
    """Mutable clock; starts at the real current time so issued JWTs still decode."""

    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class Outbox:
    """EmailSender that keeps every message."""

    def __init__(self):
        self.messages = []

    def send(self, to, sender, subject, body):
        self.messages.append({"to": to, "from": sender, "subject": subject, "body": body})

    def last_token(self, to=None):
        """The token query parameter of the newest link (to one recipient, if given)."""
        for message in reversed(self.messages):
            if to is None or message["to"] == to:
                url = re.search(r"https?://\S+", message["body"]).group(0)
                return parse_qs(urlsplit(url).query)["token"][0]
        return None


def config_dict(**overrides) -> dict:
    config = {key: getattr(TestingConfig, key) for key in dir(TestingConfig) if key.isupper()}
    config.update(overrides)
    return config


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return AuthSettings.from_config(config_dict())


@pytest.fixture
def credentials():
    return InMemoryCredentialStore()


@pytest.fixture
def refresh_store():
    return InMemoryRefreshTokenStore()


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def service(credentials, refresh_store, clock, outbox):
    return AuthService.from_config(config_dict(), credentials, refresh_store, clock, email_sender=outbox)


@pytest.fixture
def alice(service):
    return service.accounts.create_local_user(
        "alice", "s3cret-pass", email="alice@example.com", name="Alice", email_confirmed=True
    )


@pytest.fixture
def app(outbox):
    return create_app("testing", email_sender=outbox)


@pytest.fixture
def client(app):
    # explicit Cookie headers only; the jar would overwrite them
    return app.test_client(use_cookies=False)


@pytest.fixture
def app_service(app):
    return app.extensions["auth"]
