"""
Registration and password-reset blueprint (mounted next to /auth):
- POST /auth/register, /auth/web-register
- POST /auth/confirm-email, GET /auth/confirm-email?token=...
- POST /auth/send-registration-email
- POST /auth/send-reset-password-email
- POST /auth/reset-password

The send-* endpoints always answer 200 so they do not reveal which addresses have
accounts.
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify

from api.errors import error_response
from models.schemas.user import ConfirmEmailSchema, EmailSchema, RegisterSchema, ResetPasswordSchema
from utils.decorators import auth_service, origin_required

bp = Blueprint("register", __name__)

register_schema = RegisterSchema()
email_schema = EmailSchema()
confirm_email_schema = ConfirmEmailSchema()
reset_password_schema = ResetPasswordSchema()

REGISTERED_MESSAGE = "Registration successful. Please check your email to confirm your account."
EMAIL_SENT_MESSAGE = "If the address belongs to an account, an email is on its way."


def _register():
    payload = request.get_json(silent=True) or {}
    data = register_schema.load(payload)

    result = auth_service().register(data["email"], data["password"])
    if not result.success:
        return error_response(result.error, result.error_description, 400)
    return jsonify({"message": REGISTERED_MESSAGE}), 200


def _confirm(token):
    result = auth_service().confirm_email(token)
    if not result.success:
        return error_response(result.error, result.error_description, 400)
    return jsonify({"message": "Email confirmed successfully."}), 200


@bp.post("/register")
def register():
    """
    Register a local account; a confirmation link is emailed
    ---
    tags:
      - Registration
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [email, password]
           properties:
             email: { type: string, format: email }
             password: { type: string }
    responses:
      200:
        description: Accepted (same answer when the address is already registered)
      400:
        description: InvalidPasswordFormat
      422:
        description: Validation error
    """
    return _register()


@bp.post("/web-register")
@origin_required()
def web_register():
    """
    Browser registration, gated by the trusted origin
    ---
    tags:
      - Registration
    parameters:
      - in: header
        name: Origin
        type: string
        required: true
      -  in: body
         name: body
         schema:
           type: object
           required: [email, password]
           properties:
             email: { type: string, format: email }
             password: { type: string }
    responses:
      200:
        description: Accepted
      400:
        description: InvalidPasswordFormat
      403:
        description: Untrusted origin
    """
    return _register()


@bp.post("/confirm-email")
def confirm_email():
    """
    Confirm an email address with the token from the confirmation link
    ---
    tags:
      - Registration
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [token]
           properties:
             token: { type: string }
    responses:
      200:
        description: Confirmed
      400:
        description: InvalidToken, AlreadyConfirmed or TokenExpired
    """
    payload = request.get_json(silent=True) or {}
    data = confirm_email_schema.load(payload)
    return _confirm(data["token"])


@bp.get("/confirm-email")
def confirm_email_link():
    """
    Confirm an email address straight from the emailed link
    ---
    tags:
      - Registration
    parameters:
      - in: query
        name: token
        type: string
        required: true
    responses:
      200:
        description: Confirmed
      400:
        description: InvalidToken, AlreadyConfirmed or TokenExpired
    """
    return _confirm(request.args.get("token"))


@bp.post("/send-registration-email")
def send_registration_email():
    """
    Resend the confirmation link of an unconfirmed account
    ---
    tags:
      - Registration
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [email]
           properties:
             email: { type: string, format: email }
    responses:
      200:
        description: Always, whether or not a mail was sent
    """
    payload = request.get_json(silent=True) or {}
    data = email_schema.load(payload)
    auth_service().resend_confirmation(data["email"])
    return jsonify({"message": EMAIL_SENT_MESSAGE}), 200


@bp.post("/send-reset-password-email")
def send_reset_password_email():
    """
    Email a password-reset link to a confirmed local account
    ---
    tags:
      - Registration
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [email]
           properties:
             email: { type: string, format: email }
    responses:
      200:
        description: Always, whether or not a mail was sent
    """
    payload = request.get_json(silent=True) or {}
    data = email_schema.load(payload)
    auth_service().send_reset_password(data["email"])
    return jsonify({"message": EMAIL_SENT_MESSAGE}), 200


@bp.post("/reset-password")
def reset_password():
    """
    Set a new password with the token from the reset link; every session of the user ends
    ---
    tags:
      - Registration
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [token, new_password]
           properties:
             token: { type: string }
             new_password: { type: string }
    responses:
      200:
        description: Password reset
      400:
        description: InvalidToken, TokenExpired or InvalidPasswordFormat
    """
    payload = request.get_json(silent=True) or {}
    data = reset_password_schema.load(payload)

    result = auth_service().reset_password(data["token"], data["new_password"])
    if not result.success:
        return error_response(result.error, result.error_description, 400)
    return jsonify({"message": "Password reset successfully."}), 200
