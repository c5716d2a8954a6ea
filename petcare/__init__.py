from collections.abc import Mapping

from flask import Flask
from flask_cors import CORS

from .config import Config
from .errors import register_error_handlers
from .extensions import celery_init_app, db
from .routes import register_routes
from .sweeper import sweep_expired_checkouts


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)

    if isinstance(config_object, Mapping):
        app.config.from_object(Config)
        app.config.from_mapping(config_object)
    elif config_object:
        app.config.from_object(config_object)
    else:
        app.config.from_object(Config)
        app.config.from_envvar("APP_SETTINGS", silent=True)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    celery_init_app(app)

    # Allow frontend to talk to backend
    CORS(app,
         origins=["*"],
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"]
    )

    register_error_handlers(app)
    register_routes(app)

    @app.cli.command("sweep-checkouts")
    def sweep_checkouts_command():
        """Delete checkouts whose payment window has expired."""
        removed = sweep_expired_checkouts()
        print(f"Removed {removed['bookings']} bookings and {removed['orders']} orders")

    return app
