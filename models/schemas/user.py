from marshmallow import Schema, fields, pre_load, validate, validates

from models.schemas.common import validate_password_input, validate_username
from utils.security import idp_for_issuer


def _strip(v):
    return v.strip() if isinstance(v, str) else v


class LoginSchema(Schema):
    username = fields.String(required=True)
    password = fields.String(required=True, load_only=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "username" in data:
            data = dict(data, username=_strip(data["username"]))
        return data

    @validates("username")
    def check_username(self, value, **kwargs):
        validate_username(value)

    @validates("password")
    def check_password(self, value, **kwargs):
        validate_password_input(value)


class RefreshSchema(Schema):
    refresh_token = fields.String(required=True)


class WebLogoutSchema(Schema):
    logout_all = fields.Boolean(load_default=False)


class LogoutSchema(WebLogoutSchema):
    refresh_token = fields.String(required=True)


class ChangePasswordSchema(Schema):
    old_password = fields.String(required=True, load_only=True)
    new_password = fields.String(required=True, load_only=True)


class EmailSchema(Schema):
    email = fields.Email(required=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=_strip(data["email"]))
        return data


class RegisterSchema(EmailSchema):
    password = fields.String(required=True, load_only=True)

    @validates("password")
    def check_password(self, value, **kwargs):
        validate_password_input(value)


class ConfirmEmailSchema(Schema):
    token = fields.String(required=True, validate=validate.Length(min=1))


class ResetPasswordSchema(ConfirmEmailSchema):
    new_password = fields.String(required=True, load_only=True)


class UserOutSchema(Schema):
    id = fields.String(allow_none=False)
    username = fields.String(allow_none=True)
    email = fields.String(allow_none=True)
    name = fields.String(allow_none=True)
    roles = fields.List(fields.String())
    idp = fields.Method("get_idp")
    email_confirmed = fields.Boolean()
    created_at = fields.DateTime()
    last_login = fields.DateTime(allow_none=True)

    def get_idp(self, obj):
        return idp_for_issuer(getattr(obj, "issuer", None))
