from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import get_config
from .errors import register_error_handlers
from models import build_stores
from services import AuthService
from services.emails import EmailSender
from utils.log import configure_logging

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "Auth Session API",
        "version": "1.0.0",
        "description": "Password login with lockout, rotating refresh tokens, sealed refresh cookies and JWT access tokens.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def create_app(
    config_name: str | None = None,
    overrides: dict | None = None,
    email_sender: EmailSender | None = None,
) -> Flask:
    """
    Application factory: creates and configures the Flask app.

    overrides is applied on top of the selected config class, which lets
    tests swap keys or storage without touching the environment. email_sender
    delivers confirmation and reset mails; without one they are only logged.
    The wired AuthService lives in app.extensions["auth"].
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Cross-Origin Resource Sharing: enable for dev, configurable for prod
    origins = app.config.get("CORS_ORIGINS", "*")
    if isinstance(origins, str) and origins != "*":
        origins = [o.strip() for o in origins.split(",") if o.strip()]
    CORS(app, resources={r"/*": {"origins": origins}}, supports_credentials=origins != "*")

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    # Stores and the auth service; a bad key or backend fails here, not on first request
    credentials, refresh_tokens, storage = build_stores(app.config)
    service = AuthService.from_config(app.config, credentials, refresh_tokens, email_sender=email_sender)
    app.extensions["auth"] = service
    if app.config.get("SEED_DEMO_USERS"):
        service.accounts.seed_demo_users()

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .register import bp as register_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(register_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1")

    if storage is not None:
        # Ensure the DB session is removed at the end of each request/app context
        @app.teardown_appcontext
        def remove_session(exception=None):
            # This calls scoped_session.remove(), preventing connection leaks
            storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to the Auth Session API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
