from flask import Blueprint, current_app

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    """
    Health check
    ---
    tags:
      - Health
    responses:
      200:
        description: API is up
        schema:
          type: object
          properties:
            status:
              type: string
              example: ok
            version:
              type: string
              example: 1.0.0
            storage:
              type: string
              example: memory
    """
    backend = (current_app.config.get("STORAGE_BACKEND") or "memory").lower()
    return {"status": "ok", "version": "1.0.0", "storage": backend}, 200
