# vitrine_app/extensions.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import click
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_migrate import Migrate
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import text



db = SQLAlchemy()
bcrypt = Bcrypt()
migrate = Migrate()
scheduler = BackgroundScheduler(daemon=True)

def init_extensions(app):
    # DB/Bcrypt/Migrate
    db.init_app(app)
    bcrypt.init_app(app)
    migrate.init_app(app, db)

def schedule_jobs(app):
    """Agenda a varredura de PIX expirados (complementa a expiração preguiçosa)."""
    from .services.payments import get_orchestrator

    def _sweep():
        with app.app_context():
            get_orchestrator().expire_stale()

    scheduler.add_job(
        _sweep,
        trigger="interval",
        minutes=app.config.get("PAYMENT_SWEEP_MINUTES", 10),
        id="expire-payments",
        replace_existing=True,
    )

def register_cli(app):
    @app.cli.command("init-db")
    def init_db_cmd():
        """Cria as tabelas iniciais (DEV/MVP). Para produção: use flask db upgrade."""
        with app.app_context():
            # sanity check
            db.session.execute(text("SELECT 1"))
            db.create_all()
            print("Tabelas criadas.")

    @app.cli.command("create-admin")
    @click.option("--email", required=True)
    @click.option("--password", required=True)
    @click.option("--name", default="Administrador")
    def create_admin_cmd(email, password, name):
        """Cria (ou promove) um usuário administrador."""
        from .models import User
        with app.app_context():
            u = User.query.filter_by(email=email).first()
            if not u:
                u = User(name=name, email=email)
                db.session.add(u)
            u.is_admin = True
            u.active = True
            u.set_password(password)
            db.session.commit()
            print(f"Admin {email} pronto.")

    @app.cli.command("expire-payments")
    def expire_payments_cmd():
        """Cancela pagamentos PIX pendentes cujo prazo já venceu."""
        from .services.payments import get_orchestrator
        with app.app_context():
            count = get_orchestrator().expire_stale()
            print(f"{count} pagamento(s) expirado(s).")
