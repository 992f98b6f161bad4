import re

from marshmallow import ValidationError

# 3-20 characters of letters, digits, '_', '.', '-'; no leading/trailing '.' or '-'.
# An e-mail address is accepted as a username as well.
USERNAME_PATTERN = re.compile(
    r"^(?:[a-zA-Z0-9](?:[a-zA-Z0-9._-]{1,18}[a-zA-Z0-9])?|[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})$",
    re.IGNORECASE,
)
USERNAME_FORMAT_ERROR = (
    "3-20 characters: letters, digits, underscores, dots or hyphens, "
    "not starting or ending with a dot or hyphen; or an email address."
)
MAX_PASSWORD_LENGTH = 256


def validate_username(value: str) -> None:
    if not value or len(value) < 3 or not USERNAME_PATTERN.match(value):
        raise ValidationError(USERNAME_FORMAT_ERROR)
    if ".." in value or "--" in value:
        raise ValidationError(USERNAME_FORMAT_ERROR)


def validate_password_input(value: str) -> None:
    """Shape check only; strength rules live with the password change flow."""
    if not value or len(value) < 6:
        raise ValidationError("Password must be at least 6 characters long.")
    if len(value) > MAX_PASSWORD_LENGTH:
        raise ValidationError("Password is too long.")
    if any(not ch.isprintable() for ch in value):
        raise ValidationError("Password contains unsupported characters.")
