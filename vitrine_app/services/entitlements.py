# vitrine_app/services/entitlements.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from decimal import Decimal

from flask import current_app

from ..errors import NotFound
from ..extensions import db
from ..models import User, Project, UserProject, PurchaseHistory
from ..timeutils import utcnow


def owns(user_id: int, project_id: int) -> bool:
    return db.session.get(UserProject, (user_id, project_id)) is not None


def grant(user_id: int, project_id: int, *, amount: Decimal | None = None,
          method: str = "pix", payment_id: int | None = None) -> bool:
    """Entrega o item ao usuário. Idempotente: False se ele já o possui.

    Grava a posse e o histórico na mesma sessão e só faz ``flush``; quem chama
    decide o commit (a aprovação do pagamento e a entrega são uma unidade só).
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("Usuário não encontrado", userId=user_id)
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFound("Projeto não encontrado", itemId=project_id)

    if owns(user_id, project_id):
        return False

    now = utcnow()
    db.session.add(UserProject(user_id=user_id, project_id=project_id, granted_at=now))
    db.session.add(PurchaseHistory(
        user_id=user_id,
        project_id=project_id,
        payment_id=payment_id,
        amount=amount if amount is not None else project.price,
        method=method,
        purchased_at=now,
    ))
    db.session.flush()
    current_app.logger.info(
        "entitlement granted user=%s item=%s payment=%s method=%s",
        user_id, project_id, payment_id, method,
    )
    return True
