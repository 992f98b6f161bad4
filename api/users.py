from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, g, abort

from api.errors import error_response
from models.schemas.user import ChangePasswordSchema
from utils.decorators import auth_service, jwt_required, roles_required

logger = logging.getLogger(__name__)

bp = Blueprint("users", __name__)

change_password_schema = ChangePasswordSchema()


@bp.post("/users/me/password")
@jwt_required()
def change_password():
    """
    Change the current user's password; every open session of the user is revoked
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [old_password, new_password]
           properties:
             old_password: { type: string }
             new_password: { type: string }
    responses:
      204:
        description: Password changed
      400:
        description: Refused (error is one of AccountLocked, InvalidAccountType, InvalidOldPassword, InvalidPasswordFormat)
      401:
        description: Unauthorized
    """
    payload = request.get_json(silent=True) or {}
    data = change_password_schema.load(payload)

    result = auth_service().change_password(g.current_user.id, data["old_password"], data["new_password"])
    if not result.success:
        status = 404 if result.error == "UserNotFound" else 400
        return error_response(result.error, result.error_description, status)
    return "", 204


@bp.post("/users/<user_id>/sessions/revoke")
@roles_required(["admin"])
def revoke_sessions(user_id: str):
    """
    Revoke every refresh token of a user - admin only
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
    responses:
      200:
        description: Sessions revoked
      403:
        description: Insufficient role
      404:
        description: User not found
    """
    service = auth_service()
    if service.credentials.find_by_id(user_id) is None:
        abort(404)
    revoked = service.revoke_user(user_id)
    logger.info("User %s revoked %d sessions of %s", g.current_user.id, revoked, user_id)
    return jsonify({"data": {"user_id": user_id, "revoked": revoked}}), 200
