"""
Outgoing account emails: registration confirmation and password reset.

Delivery sits behind the EmailSender protocol. The default LogEmailSender only
notes that a message would have gone out; deployments pass a real transport
to create_app(). EmailDispatcher caps how often each user gets each kind of
message.
"""
from __future__ import annotations

from datetime import datetime, timedelta
import logging
import threading
from typing import Callable, Dict, List, Protocol, Tuple

from models.base_model import utcnow
from models.user import User
from services.settings import EmailSettings

logger = logging.getLogger(__name__)

REGISTRATION = "registration"
RESET_PASSWORD = "reset_password"


class EmailSender(Protocol):
    def send(self, to: str, sender: str, subject: str, body: str) -> None: ...


def redact_email(address: str) -> str:
    if "@" not in address:
        return "redacted"
    local, domain = address.split("@", 1)
    return f"{local[:2]}***@{domain}"


class LogEmailSender:
    def send(self, to: str, sender: str, subject: str, body: str) -> None:
        # body holds a one-time link; keep it out of the log
        logger.info("No mail transport configured; dropped %r for %s", subject, redact_email(to))


class EmailDispatcher:
    def __init__(
        self,
        sender: EmailSender,
        settings: EmailSettings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.sender = sender
        self.settings = settings
        self.clock = clock
        self._lock = threading.Lock()
        self._sent: Dict[Tuple[str, str], List[datetime]] = {}

    def send_registration(self, user: User, confirm_url: str) -> bool:
        body = f"Please confirm your email address by opening this link: {confirm_url}"
        return self._send(user, REGISTRATION, self.settings.registration_subject, body)

    def send_reset_password(self, user: User, reset_url: str) -> bool:
        body = (
            f"Reset your password by opening this link: {reset_url}\n"
            f"The link expires in {self.settings.reset_token_minutes} minutes."
        )
        return self._send(user, RESET_PASSWORD, self.settings.reset_password_subject, body)

    def _send(self, user: User, kind: str, subject: str, body: str) -> bool:
        """True once handed to the sender; False when a limit holds the message back."""
        if not user.email:
            return False
        now = self.clock()
        key = (user.id, kind)
        with self._lock:
            today = [sent for sent in self._sent.get(key, []) if sent.date() == now.date()]
            if len(today) >= self.settings.max_per_day:
                logger.info("Daily %s email limit reached for user %s", kind, user.id)
                return False
            cooldown = timedelta(seconds=self.settings.resend_cooldown_seconds)
            if today and now - max(today) < cooldown:
                logger.info("%s email for user %s asked for again within the cooldown", kind, user.id)
                return False
            # slot is taken before sending so concurrent callers cannot both pass
            self._sent[key] = today + [now]

        self.sender.send(user.email, self.settings.sender_address, subject, body)
        logger.info("Sent %s email to user %s", kind, user.id)
        return True
