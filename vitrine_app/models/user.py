# vitrine_app/models/user.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db, bcrypt
from ..timeutils import utcnow

class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(180), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False, default="")
    document = db.Column(db.String(20))          # CPF/CNPJ enviado ao provedor PIX
    is_admin = db.Column(db.Boolean, default=False)
    active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    payments = db.relationship("Payment", backref="user", lazy="dynamic")
    entitlements = db.relationship("UserProject", backref="user", lazy="dynamic")
    purchase_history = db.relationship(
        "PurchaseHistory", backref="user", lazy="dynamic",
        order_by="PurchaseHistory.purchased_at",
    )

    def set_password(self, raw: str) -> None:
        self.password_hash = bcrypt.generate_password_hash(raw).decode("utf-8")

    def check_password(self, raw: str) -> bool:
        if not self.password_hash:
            return False
        return bcrypt.check_password_hash(self.password_hash, raw)

    def owns(self, project_id: int) -> bool:
        return self.entitlements.filter_by(project_id=project_id).first() is not None

    def owned_project_ids(self) -> set[int]:
        return {e.project_id for e in self.entitlements}


class UserProject(db.Model):
    """Conjunto de itens do usuário: a PK composta impede duplicatas."""
    __tablename__ = "user_projects"

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), primary_key=True)
    granted_at = db.Column(db.DateTime, default=utcnow, nullable=False)


class PurchaseHistory(db.Model):
    __tablename__ = "purchase_history"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    method = db.Column(db.String(16), nullable=False, default="pix")   # pix, manual, charge
    purchased_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "projectId": self.project_id,
            "paymentId": self.payment_id,
            "amount": f"{self.amount:.2f}",
            "method": self.method,
            "purchasedAt": self.purchased_at.isoformat() if self.purchased_at else None,
        }
