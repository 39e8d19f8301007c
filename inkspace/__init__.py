from collections.abc import Mapping

from flask import Flask
from flask_cors import CORS

from .ai import BioGenerator
from .auth import AuthGateway
from .config import Config
from .extensions import db
from .gateway import BackendGateway
from .polling import NotificationPoller
from .routes import StoreRegistry, register_routes
from .storage import ObjectStorage
from .store import AppStore


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_object(Config)
    if isinstance(config_object, Mapping):
        app.config.from_mapping(config_object)
    elif config_object:
        app.config.from_object(config_object)
    app.config.from_envvar("APP_SETTINGS", silent=True)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)

    # Allow frontend to talk to backend
    CORS(app,
         origins=app.config["CORS_ORIGINS"],
         supports_credentials=True,
         allow_headers=["Content-Type"],
         methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
    )

    object_storage = ObjectStorage(app.config["STORAGE_ROOT"], app.config["STORAGE_PUBLIC_URL"])
    backend = BackendGateway(object_storage)

    def build_store() -> AppStore:
        auth = AuthGateway(
            backend,
            app.config["SECRET_KEY"],
            max_age=app.config["SESSION_MAX_AGE"],
            dev_admin_bypass=app.config["DEV_ADMIN_BYPASS"],
        )
        bio_generator = BioGenerator(app.config.get("GEMINI_API_KEY"), app.config["GEMINI_MODEL"])
        return AppStore(
            backend,
            auth,
            bio_generator,
            poll_interval=app.config["NOTIFICATION_POLL_SECONDS"],
            toast_seconds=app.config["TOAST_DISMISS_SECONDS"],
            poller_factory=lambda callback, interval: NotificationPoller(callback, interval, app=app),
            polling_enabled=app.config["NOTIFICATION_POLLING_ENABLED"],
        )

    app.extensions["inkspace"] = {
        "storage": object_storage,
        "backend": backend,
        "stores": StoreRegistry(build_store, idle_seconds=app.config["STORE_IDLE_SECONDS"]),
    }

    register_routes(app)

    return app
