"""
Development server: python -m api

Config is picked from APP_ENV; HOST and PORT come from FLASK_RUN_HOST and
FLASK_RUN_PORT. In production serve create_app() from a WSGI server instead.
"""
import logging

from . import create_app

logger = logging.getLogger(__name__)


def main(config_name=None):
    app = create_app(config_name)
    # chains that expired while the server was down
    purged = app.extensions["auth"].rotator.purge_expired()
    logger.info(
        "Serving on %s:%s (storage=%s, purged %d expired refresh tokens)",
        app.config["HOST"], app.config["PORT"], app.config["STORAGE_BACKEND"], purged,
    )
    app.run(host=app.config["HOST"], port=app.config["PORT"], debug=app.config["DEBUG"], threaded=True)
    return app


if __name__ == "__main__":
    main()
