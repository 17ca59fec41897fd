# vitrine_app/__init__.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import os

from flask import Flask
from config import Config, TestingConfig, StagingConfig, ProductionConfig
from .blueprints.admin import admin_bp
from .extensions import db, scheduler, init_extensions, register_cli, schedule_jobs  # noqa: F401
from .services.payments import init_payments
from .blueprints.core import bp as core_bp
from .blueprints.auth import bp as auth_bp
from .blueprints.payments import bp as payments_bp
from .timeutils import utcnow

_CONFIGS = {
    "testing": TestingConfig,
    "staging": StagingConfig,
    "production": ProductionConfig,
}

def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app_env = os.getenv("APP_ENV", "").lower()
    app.config.from_object(config_object or _CONFIGS.get(app_env, Config))

    # config.py é lido na importação; em testes o banco temporário vem do ambiente
    if app.config.get("TESTING") and os.getenv("SQLALCHEMY_DATABASE_URI"):
        app.config["SQLALCHEMY_DATABASE_URI"] = os.environ["SQLALCHEMY_DATABASE_URI"]

    # Extensões (DB/Bcrypt/Migrate/Scheduler)
    init_extensions(app)

    # Orquestrador de pagamentos (app.extensions["payments"])
    init_payments(app)
    app.config["STARTED_AT"] = utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")

    # Blueprints
    app.register_blueprint(core_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(payments_bp)
    # CLI (ex.: flask init-db)
    register_cli(app)

    # Scheduler (varredura de PIX vencidos)
    if not app.config.get("TESTING") and os.getenv("DISABLE_SCHEDULER") != "1":
        schedule_jobs(app)
        if not scheduler.running:
            scheduler.start()

    return app
