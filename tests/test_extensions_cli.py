# tests/test_extensions_cli.py
import uuid
from datetime import timedelta

from vitrine_app.models import Payment, PaymentStatus, User
from vitrine_app.timeutils import utcnow


def test_init_db_cli_runs(app, monkeypatch):
    runner = app.test_cli_runner()
    res = runner.invoke(args=["init-db"])
    assert res.exit_code == 0
    assert "Tabelas criadas" in res.output


def test_create_admin_cli(app, db_session):
    email = f"root+{uuid.uuid4().hex[:6]}@test.com"
    runner = app.test_cli_runner()
    res = runner.invoke(args=["create-admin", "--email", email, "--password", "s3nha"])
    assert res.exit_code == 0
    assert email in res.output

    db_session.expire_all()
    u = User.query.filter_by(email=email).one()
    assert u.is_admin is True
    assert u.check_password("s3nha")


def test_create_admin_promotes_existing_user(app, db_session, user_normal):
    runner = app.test_cli_runner()
    res = runner.invoke(args=["create-admin", "--email", user_normal.email, "--password", "nova"])
    assert res.exit_code == 0
    db_session.expire_all()
    assert db_session.get(User, user_normal.id).is_admin is True


def test_expire_payments_cli(app, db_session, make_orchestrator, user_normal, project):
    payment, _ = make_orchestrator(None).create_payment(user_normal.id, project.id)
    payment.expires_at = utcnow() - timedelta(minutes=5)
    db_session.commit()

    runner = app.test_cli_runner()
    res = runner.invoke(args=["expire-payments"])
    assert res.exit_code == 0
    assert "expirado" in res.output

    db_session.expire_all()
    assert db_session.get(Payment, payment.id).status == PaymentStatus.CANCELLED


def test_schedule_jobs_registers_sweep(app, monkeypatch):
    from vitrine_app import extensions

    added = {}
    monkeypatch.setattr(extensions.scheduler, "add_job", lambda func, **kw: added.update(kw, func=func))
    extensions.schedule_jobs(app)

    assert added["id"] == "expire-payments"
    assert added["trigger"] == "interval"
    assert added["minutes"] == app.config["PAYMENT_SWEEP_MINUTES"]
    assert callable(added["func"])
