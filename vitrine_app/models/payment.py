# vitrine_app/models/payment.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from sqlalchemy import text
from sqlalchemy.orm import validates
from ..extensions import db
from ..timeutils import utcnow


class PaymentStatus:
    PENDING = "pending"
    APPROVED = "approved"
    FAILED = "failed"
    CANCELLED = "cancelled"

    ALL = (PENDING, APPROVED, FAILED, CANCELLED)
    TERMINAL = (APPROVED, FAILED, CANCELLED)


PROVIDERS = ("sacapay", "mercadopago", "fallback", "manual")
METHODS = ("pix", "manual")
# campos do PIX congelados quando o pagamento sai de "pending"
PIX_FIELDS = ("pix_code", "qr_code_url", "expires_at")


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    # chave local enviada ao provedor como external_id/idempotência
    correlation_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    provider_ref = db.Column(db.String(120), unique=True, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), index=True, nullable=True)

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING)
    method = db.Column(db.String(16), nullable=False, default="pix")     # pix, manual
    provider = db.Column(db.String(30))                                   # sacapay, mercadopago, fallback, manual

    pix_code = db.Column(db.Text)
    qr_code_url = db.Column(db.Text)
    expires_at = db.Column(db.DateTime)
    description = db.Column(db.String(255), default="")

    # cobranças avulsas sem usuário cadastrado
    customer_name = db.Column(db.String(120))
    customer_email = db.Column(db.String(180))
    customer_phone = db.Column(db.String(30))

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    paid_at = db.Column(db.DateTime)

    project = db.relationship("Project")

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'approved', 'failed', 'cancelled')",
            name="ck_payments_status",
        ),
        # no máximo um pagamento pendente por (usuário, item)
        db.Index(
            "uq_payments_pending_user_project",
            "user_id",
            "project_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    @validates("status")
    def _validate_status(self, key, value):
        if value not in PaymentStatus.ALL:
            raise ValueError(f"status inválido: {value!r}")
        return value

    @validates("provider")
    def _validate_provider(self, key, value):
        if value is not None and value not in PROVIDERS:
            raise ValueError(f"provider inválido: {value!r}")
        return value

    @validates("method")
    def _validate_method(self, key, value):
        if value not in METHODS:
            raise ValueError(f"method inválido: {value!r}")
        return value

    @validates(*PIX_FIELDS)
    def _freeze_pix(self, key, value):
        if self.is_terminal and getattr(self, key) != value:
            raise ValueError(f"{key} não pode mudar após status {self.status!r}")
        return value

    @property
    def is_terminal(self) -> bool:
        return self.status in PaymentStatus.TERMINAL

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())

    def is_valid(self, now: datetime | None = None) -> bool:
        """Derivado: pendente e dentro do prazo."""
        return (
            self.status == PaymentStatus.PENDING
            and self.expires_at is not None
            and self.expires_at > (now or utcnow())
        )

    def pix_payload(self) -> dict:
        return {
            "pixCode": self.pix_code,
            "qrCodeUrl": self.qr_code_url,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "provider": self.provider,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "providerRef": self.provider_ref,
            "userId": self.user_id,
            "itemId": self.project_id,
            "amount": f"{self.amount:.2f}",
            "status": self.status,
            "method": self.method,
            "provider": self.provider,
            "pixCode": self.pix_code,
            "qrCodeUrl": self.qr_code_url,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "description": self.description,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "paidAt": self.paid_at.isoformat() if self.paid_at else None,
        }
