# xlata_app/extensions.py
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

def init_jobs(app):
    """Agenda a varredura de PIX pendentes (roda dentro de um app_context)."""
    from .services.followup import sweep_pending_payments

    def _job():
        with app.app_context():
            sweep_pending_payments()

    scheduler.add_job(
        _job, "interval",
        minutes=app.config.get("PENDING_SWEEP_MINUTES", 60),
        id="pending-pix-sweep", replace_existing=True, max_instances=1, coalesce=True,
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

    @app.cli.command("seed-plans")
    def seed_plans_cmd():
        """Insere o catálogo padrão de planos (idempotente)."""
        from .models.plan import seed_default_plans
        with app.app_context():
            created = seed_default_plans()
            print(f"{created} plano(s) criado(s).")

    @app.cli.command("reconcile-pending")
    @click.option("--min-age-minutes", default=60, show_default=True, type=int)
    def reconcile_pending_cmd(min_age_minutes):
        """Roda uma vez a varredura de pagamentos pendentes."""
        from .services.followup import sweep_pending_payments
        with app.app_context():
            summary = sweep_pending_payments(min_age_minutes=min_age_minutes)
            print(summary)
