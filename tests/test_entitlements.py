# tests/test_entitlements.py
from decimal import Decimal

import pytest

from vitrine_app.errors import NotFound
from vitrine_app.models import PurchaseHistory
from vitrine_app.services import entitlements


def test_grant_is_idempotent(db_session, user_normal, project):
    assert entitlements.owns(user_normal.id, project.id) is False

    assert entitlements.grant(user_normal.id, project.id, payment_id=None) is True
    db_session.commit()
    assert entitlements.grant(user_normal.id, project.id) is False
    db_session.commit()

    assert entitlements.owns(user_normal.id, project.id) is True
    assert user_normal.owned_project_ids() == {project.id}
    assert PurchaseHistory.query.filter_by(user_id=user_normal.id).count() == 1


def test_grant_records_purchase_history(db_session, user_normal, make_project):
    p = make_project("49.90")
    entitlements.grant(user_normal.id, p.id, amount=Decimal("40.00"), method="manual")
    db_session.commit()

    row = PurchaseHistory.query.filter_by(user_id=user_normal.id, project_id=p.id).one()
    assert row.amount == Decimal("40.00")
    assert row.method == "manual"
    assert row.to_dict()["projectId"] == p.id


def test_grant_defaults_amount_to_project_price(db_session, user_normal, make_project):
    p = make_project("12.50")
    entitlements.grant(user_normal.id, p.id)
    db_session.commit()
    row = PurchaseHistory.query.filter_by(user_id=user_normal.id, project_id=p.id).one()
    assert row.amount == Decimal("12.50")
    assert row.method == "pix"


def test_grant_unknown_user_or_project(db_session, user_normal, project):
    with pytest.raises(NotFound):
        entitlements.grant(999999, project.id)
    with pytest.raises(NotFound):
        entitlements.grant(user_normal.id, 999999)


def test_grant_does_not_commit(db_session, user_normal, project):
    entitlements.grant(user_normal.id, project.id)
    db_session.rollback()
    assert entitlements.owns(user_normal.id, project.id) is False
