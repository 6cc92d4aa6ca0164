import logging
import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from app.sitehost.config import load_config
from app.sitehost.db import init_db, teardown_db_session
from app.sitehost.errors import SiteHostError
from app.sitehost.auth import bp as auth_bp, load_current_user
from app.sitehost.routes import bp as routes_bp
from app.sitehost.modules.websites.api import bp as websites_bp
from app.sitehost.modules.templates.api import bp as templates_bp
from app.sitehost.modules.profiles.api import bp as profiles_bp
from app.sitehost.modules.profiles.service import MAX_PROFILE_PICTURE_BYTES


def _check_production_config(app: Flask) -> None:
    env = (app.config.get("ENV") or "").strip().lower()
    if env not in ("prod", "production"):
        return
    if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
        raise RuntimeError("DATABASE_URL is required in production.")
    if str(app.config["DATABASE_URL"]).startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
    if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
        raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            raise RuntimeError(f"Missing required S3 env vars: {', '.join(missing_s3)}")


def _ensure_directories(app: Flask) -> None:
    keys = ["SITES_ROOT", "TEMPLATES_DIR"]
    if app.config.get("STORAGE_BACKEND", "local") == "local":
        keys.append("UPLOADS_DIR")
    for key in keys:
        try:
            Path(app.config[key]).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            app.logger.error("Failed to create %s directory %s: %s", key, app.config[key], e)


def _register_error_handlers(app: Flask) -> None:
    def _rollback() -> None:
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()

    @app.errorhandler(SiteHostError)
    def _err_app(e: SiteHostError):  # type: ignore[no-redef]
        _rollback()
        if e.status_code >= 500:
            app.logger.error("%s (request_id=%s)", e.message, getattr(g, "request_id", None))
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def _err_413(e):  # type: ignore[no-redef]
        limit = app.config.get("MAX_CONTENT_LENGTH") or 0
        if request.endpoint == "profiles.profile_picture_upload":
            limit = min(limit, MAX_PROFILE_PICTURE_BYTES) if limit else MAX_PROFILE_PICTURE_BYTES
        return jsonify({"message": f"File too large. Maximum size is {limit // (1024 * 1024)}MB."}), 413

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"message": e.description or e.name}), e.code or 500

    @app.errorhandler(Exception)
    def _err_500(e):  # type: ignore[no-redef]
        _rollback()
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"message": "Internal server error"}), 500


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    _check_production_config(app)

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()
    _ensure_directories(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api")
    app.register_blueprint(websites_bp, url_prefix="/api")
    app.register_blueprint(templates_bp, url_prefix="/api")
    app.register_blueprint(profiles_bp)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)
    _register_error_handlers(app)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
