"""
Authentication blueprint:
- POST /auth/login                 (tokens in the body, for native clients)
- POST /auth/web-login             (refresh token sealed into an HttpOnly cookie)
- POST /auth/web-federated-login   (identity already validated upstream)
- POST /auth/refresh
- POST /auth/web-refresh
- POST /auth/logout
- POST /auth/web-logout
- GET  /auth/me

Every refusal is the same bare 401; the reason only goes to the log.
The web-* endpoints additionally require the request Origin to be the trusted one.
"""
from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, g, abort, make_response

from models.schemas.user import LoginSchema, LogoutSchema, RefreshSchema, UserOutSchema, WebLogoutSchema
from services.accounts import FederatedClaim
from utils.decorators import auth_service, jwt_required, origin_required

logger = logging.getLogger(__name__)

FEDERATED_CLAIM_ENVIRON_KEY = "auth.federated_claim"

bp = Blueprint("auth", __name__)

login_schema = LoginSchema()
refresh_schema = RefreshSchema()
logout_schema = LogoutSchema()
web_logout_schema = WebLogoutSchema()
user_out_schema = UserOutSchema()


def _token_body(pair, include_refresh: bool = True) -> dict:
    body = {
        "access_token": pair.access_token,
        "token_type": "bearer",
        "expires_in": pair.expires_in,
    }
    if include_refresh:
        body["refresh_token"] = pair.refresh_token
    return body


def _web_response(pair):
    response = make_response(jsonify(_token_body(pair, include_refresh=False)), 200)
    response.headers.add("Set-Cookie", auth_service().cookies.issue_cookie(pair.refresh_token))
    return response


def _federated_claim() -> FederatedClaim | None:
    claim = request.environ.get(FEDERATED_CLAIM_ENVIRON_KEY)
    if isinstance(claim, FederatedClaim):
        return claim
    if isinstance(claim, dict) and claim.get("external_id") and claim.get("issuer"):
        return FederatedClaim(
            external_id=claim["external_id"],
            issuer=claim["issuer"],
            email=claim.get("email"),
            name=claim.get("name"),
            username=claim.get("username"),
        )
    return None


@bp.post("/login")
def login():
    """
    Login: return access_token and refresh_token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [username, password]
           properties:
             username: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      401:
        description: Unauthorized
      422:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = login_schema.load(payload)

    pair = auth_service().authenticate(data["username"], data["password"])
    if pair is None:
        abort(401)
    return jsonify(_token_body(pair)), 200


@bp.post("/web-login")
@origin_required()
def web_login():
    """
    Browser login: access token in the body, refresh token in a sealed HttpOnly cookie
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: header
        name: Origin
        type: string
        required: true
      -  in: body
         name: body
         schema:
           type: object
           required: [username, password]
           properties:
             username: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (access token, Set-Cookie carries the refresh token)
      401:
        description: Unauthorized
      403:
        description: Untrusted origin
    """
    payload = request.get_json(silent=True) or {}
    data = login_schema.load(payload)

    pair = auth_service().authenticate(data["username"], data["password"])
    if pair is None:
        abort(401)
    return _web_response(pair)


@bp.post("/web-federated-login")
@origin_required()
def web_federated_login():
    """
    Browser login for an identity already validated by an upstream IdP exchange
    ---
    tags:
      - Auth
    description: >
      The validated claim is handed over by the fronting middleware in the WSGI
      environ key `auth.federated_claim`; a request without one is refused.
    responses:
      200:
        description: OK (access token, Set-Cookie carries the refresh token)
      401:
        description: Unauthorized
      403:
        description: Untrusted origin
    """
    claim = _federated_claim()
    if claim is None:
        logger.info("Federated login without a validated claim")
        abort(401)

    pair = auth_service().authenticate_federated(claim)
    if pair is None:
        abort(401)
    return _web_response(pair)


@bp.post("/refresh")
def refresh():
    """
    Use refresh token to obtain new access and refresh tokens (rotation)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [refresh_token]
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: OK (returns a new token pair; the old refresh token is spent)
      401:
        description: Unauthorized
    """
    payload = request.get_json(silent=True) or {}
    data = refresh_schema.load(payload)

    pair = auth_service().refresh(data["refresh_token"])
    if pair is None:
        abort(401)
    return jsonify(_token_body(pair)), 200


@bp.post("/web-refresh")
@origin_required()
def web_refresh():
    """
    Rotate the refresh token carried in the sealed cookie
    ---
    tags:
      - Auth
    parameters:
      - in: header
        name: Origin
        type: string
        required: true
    responses:
      200:
        description: OK (new access token, cookie rotated)
      401:
        description: Unauthorized
      403:
        description: Untrusted origin
    """
    service = auth_service()
    token = service.cookies.read_cookie(request.headers.get("Cookie"))
    pair = service.refresh(token)
    if pair is None:
        abort(401)
    return _web_response(pair)


@bp.post("/logout")
def logout():
    """
    Revoke a refresh token, or every session of its owner with logout_all
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [refresh_token]
           properties:
             refresh_token: { type: string }
             logout_all: { type: boolean, default: false }
    responses:
      204:
        description: Logged out (also when the token was already unknown)
    """
    payload = request.get_json(silent=True) or {}
    data = logout_schema.load(payload)

    auth_service().revoke(data["refresh_token"], data["logout_all"])
    return "", 204


@bp.post("/web-logout")
@origin_required()
def web_logout():
    """
    Revoke the cookie's refresh token and clear the cookie
    ---
    tags:
      - Auth
    parameters:
      - in: header
        name: Origin
        type: string
        required: true
      -  in: body
         name: body
         schema:
           type: object
           properties:
             logout_all: { type: boolean, default: false }
    responses:
      204:
        description: Logged out, cookie deleted
      403:
        description: Untrusted origin
    """
    payload = request.get_json(silent=True) or {}
    data = web_logout_schema.load(payload)

    service = auth_service()
    token = service.cookies.read_cookie(request.headers.get("Cookie"))
    service.revoke(token, data["logout_all"])

    response = make_response("", 204)
    response.headers.add("Set-Cookie", service.cookies.delete_cookie())
    return response


@bp.get("/me")
@jwt_required()
def me():
    """
    Get the current authenticated user
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    return jsonify({"data": user_out_schema.dump(g.current_user)}), 200
