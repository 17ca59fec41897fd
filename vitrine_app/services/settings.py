# vitrine_app/services/settings.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from dataclasses import dataclass
from flask import current_app
from ..extensions import db
from ..models import Setting

PAYMENT_GROUP = "payment"

# chaves editáveis pelo admin (grupo "payment")
PAYMENT_KEYS = (
    "PAYMENT_PROVIDER",
    "PAYMENT_API_URL",
    "SACAPAY_PUBLIC_TOKEN",
    "SACAPAY_PRIVATE_TOKEN",
    "MERCADOPAGO_ACCESS_TOKEN",
    "PAYMENT_WEBHOOK_SECRET",
    "BASE_URL",
)
SENSITIVE_KEYS = {
    "SACAPAY_PUBLIC_TOKEN",
    "SACAPAY_PRIVATE_TOKEN",
    "MERCADOPAGO_ACCESS_TOKEN",
    "PAYMENT_WEBHOOK_SECRET",
}

def get_setting(key: str, group: str = PAYMENT_GROUP, default: str = "") -> str:
    row = Setting.query.filter_by(group=group, key=key).first()
    return row.value if row else default

def set_setting(key: str, value: str, group: str = PAYMENT_GROUP) -> Setting:
    """Upsert por (group, key); credenciais ficam marcadas como segredo."""
    row = Setting.query.filter_by(group=group, key=key).first()
    if row is None:
        row = Setting(group=group, key=key)
        db.session.add(row)
    row.value = value
    row.secret = key in SENSITIVE_KEYS
    db.session.commit()
    return row

def get_group(group: str = PAYMENT_GROUP) -> dict[str, str]:
    return {s.key: s.value for s in Setting.query.filter_by(group=group).all()}

def get_group_masked(group: str = PAYMENT_GROUP) -> dict[str, str]:
    return {s.key: s.masked_value() for s in Setting.query.filter_by(group=group).all()}


@dataclass(frozen=True)
class PaymentSettings:
    provider: str
    api_url: str
    public_token: str
    private_token: str
    access_token: str
    webhook_secret: str
    base_url: str
    timeout: float
    expiration_minutes: int
    fallback_qr_url: str

    @property
    def webhook_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/payments/webhook"


def load_payment_settings() -> PaymentSettings:
    """Snapshot lido a cada chamada: banco (grupo "payment") > app.config."""
    cfg = current_app.config
    stored = get_group(PAYMENT_GROUP)

    def pick(key: str) -> str:
        value = stored.get(key)
        if value:
            return value.strip()
        return str(cfg.get(key) or "").strip()

    return PaymentSettings(
        provider=(pick("PAYMENT_PROVIDER") or "fallback").lower(),
        api_url=pick("PAYMENT_API_URL") or "https://api.sacapay.com.br",
        public_token=pick("SACAPAY_PUBLIC_TOKEN"),
        private_token=pick("SACAPAY_PRIVATE_TOKEN"),
        access_token=pick("MERCADOPAGO_ACCESS_TOKEN"),
        webhook_secret=pick("PAYMENT_WEBHOOK_SECRET"),
        base_url=pick("BASE_URL") or "http://localhost:5000",
        timeout=float(cfg.get("PAYMENT_PROVIDER_TIMEOUT", 8)),
        expiration_minutes=int(cfg.get("PIX_EXPIRATION_MINUTES", 30)),
        fallback_qr_url=cfg.get("FALLBACK_QR_URL")
        or "https://api.qrserver.com/v1/create-qr-code/?size=300x300&data={data}",
    )
