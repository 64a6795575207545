# xlata_app/__init__.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import os

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from config import Config, TestingConfig, StagingConfig, ProductionConfig
from .blueprints.admin import admin_bp
from .extensions import db, scheduler, init_extensions, init_jobs, register_cli
from .services.errors import BillingError
from .blueprints.auth import bp as auth_bp
from .blueprints.billing import bp as billing_bp
from .blueprints.webhooks import bp as webhooks_bp
from datetime import datetime

def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app_env = os.getenv("APP_ENV", "").lower()

    if config_object is not None:
        app.config.from_object(config_object)
    elif app_env == "testing":
        app.config.from_object(TestingConfig)
    elif app_env == "staging":
        app.config.from_object(StagingConfig)
    elif app_env == "production":
        app.config.from_object(ProductionConfig)
    else:
        app.config.from_object(Config)

    # Extensões (DB/Bcrypt/Migrate/Scheduler)
    init_extensions(app)
    app.config["STARTED_AT"] = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")

    # Blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(admin_bp, url_prefix="/admin")
    register_error_handlers(app)
    # CLI (ex.: flask init-db)
    register_cli(app)

    # Scheduler (varredura de PIX pendentes)
    if not app.config.get("TESTING") and os.getenv("DISABLE_SCHEDULER") != "1":
        init_jobs(app)
        if not scheduler.running:
            scheduler.start()

    @app.get("/health")
    def health():
        return jsonify(ok=True, started_at=app.config["STARTED_AT"])
    return app

def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(BillingError)
    def _billing_error(e: BillingError):
        if e.status >= 500:
            app.logger.error("%s: %s", e.code, e.message)
        return jsonify(e.to_dict()), e.status

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        return jsonify(error=e.name.lower().replace(" ", "_"), message=e.description), e.code

    @app.errorhandler(Exception)
    def _unexpected(e: Exception):
        db.session.rollback()
        app.logger.exception("erro inesperado")
        return jsonify(error="internal_error", message="Erro interno."), 500
