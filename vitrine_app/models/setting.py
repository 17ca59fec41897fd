# vitrine_app/models/setting.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from ..extensions import db
from ..timeutils import utcnow

class Setting(db.Model):
    """Configuração editável em runtime (credenciais de provedor, URL base...)."""
    __tablename__ = "settings"

    id = db.Column(db.Integer, primary_key=True)
    group = db.Column(db.String(50), index=True, nullable=False, default="payment")
    key = db.Column(db.String(100), index=True, nullable=False)
    value = db.Column(db.Text, default="")
    # tokens/segredos nunca voltam em claro pela API
    secret = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.UniqueConstraint("group", "key", name="uq_settings_group_key"),
    )

    def masked_value(self) -> str:
        if not self.secret or not self.value:
            return self.value or ""
        return "*" * max(len(self.value) - 4, 4) + self.value[-4:]
