# vitrine_app/services/providers.py
# -*- coding: utf-8 -*-
"""Clientes dos provedores PIX.

Todos devolvem o mesmo ``PixCharge``; qualquer falha (credencial ausente,
rede, timeout, HTTP != 2xx, resposta malformada) vira ``ProviderUnavailable``.
Nenhum cliente faz retry: a política de fallback fica no orquestrador.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

import requests

from ..errors import ProviderUnavailable
from ..timeutils import parse_timestamp, utcnow
from .fallback_pix import build_qr_code_url, format_amount
from .settings import PaymentSettings

MERCADOPAGO_API = "https://api.mercadopago.com"

# status dos provedores -> status local
_STATUS_MAP = {
    "paid": "approved",
    "approved": "approved",
    "completed": "approved",
    "failed": "failed",
    "rejected": "failed",
    "refused": "failed",
    "cancelled": "cancelled",
    "canceled": "cancelled",
    "expired": "cancelled",
}


def normalize_status(raw) -> str | None:
    """Mapeia o status do provedor; None quando ainda não é terminal."""
    if not raw:
        return None
    return _STATUS_MAP.get(str(raw).strip().lower())


@dataclass(frozen=True)
class PayerInfo:
    name: str = "Cliente"
    email: str = "cliente@exemplo.com"
    document: str = ""
    phone: str = ""


@dataclass(frozen=True)
class PixCharge:
    provider: str
    provider_ref: str
    pix_code: str
    qr_code_url: str
    expires_at: datetime


class PixProvider:
    """Contrato dos provedores.

    As subclasses implementam ``_charge``/``_status``; os métodos públicos
    convertem qualquer resposta fora do formato esperado em ``ProviderUnavailable``.
    """
    name = "base"

    def __init__(self, settings: PaymentSettings):
        self.settings = settings

    def request_pix_charge(self, amount: Decimal, description: str,
                           correlation_id: str, payer: PayerInfo) -> PixCharge:
        try:
            return self._charge(amount, description, correlation_id, payer)
        except (AttributeError, TypeError, KeyError, ValueError) as exc:
            raise ProviderUnavailable(f"{self.name}: resposta malformada ({exc})") from exc

    def check_status(self, provider_ref: str) -> str | None:
        try:
            return self._status(provider_ref)
        except (AttributeError, TypeError, KeyError, ValueError) as exc:
            raise ProviderUnavailable(f"{self.name}: resposta malformada ({exc})") from exc

    def _charge(self, amount, description, correlation_id, payer) -> PixCharge:
        raise NotImplementedError()

    def _status(self, provider_ref) -> str | None:
        raise NotImplementedError()

    # helpers
    def _call(self, method: str, url: str, **kwargs) -> dict:
        kwargs.setdefault("timeout", self.settings.timeout)
        try:
            resp = getattr(requests, method)(url, **kwargs)
        except requests.RequestException as exc:
            raise ProviderUnavailable(f"{self.name}: falha de comunicação ({exc})") from exc
        if resp.status_code >= 400:
            raise ProviderUnavailable(f"{self.name}: HTTP {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise ProviderUnavailable(f"{self.name}: resposta não é JSON") from exc
        if not isinstance(body, dict):
            raise ProviderUnavailable(f"{self.name}: resposta inesperada")
        return body

    def _section(self, parent: dict, key: str) -> dict:
        value = parent.get(key)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ProviderUnavailable(f"{self.name}: campo {key!r} com formato inesperado")
        return value

    def _ref_and_code(self, ref, pix_code) -> tuple[str, str]:
        if isinstance(ref, bool) or not isinstance(ref, (str, int)) or ref == "":
            raise ProviderUnavailable(f"{self.name}: resposta sem id da transação")
        if not isinstance(pix_code, str) or not pix_code.strip():
            raise ProviderUnavailable(f"{self.name}: resposta sem código PIX")
        return str(ref), pix_code

    def _expires_at(self, raw) -> datetime:
        try:
            parsed = parse_timestamp(raw)
        except (ValueError, TypeError, OverflowError, OSError):
            parsed = None
        return parsed or utcnow() + timedelta(minutes=self.settings.expiration_minutes)

    def _qr_url(self, raw, pix_code: str) -> str:
        # qr ausente ou em formato desconhecido: monta a partir do código
        if not raw or not isinstance(raw, str):
            return build_qr_code_url(pix_code, self.settings.fallback_qr_url)
        if raw.startswith(("http://", "https://", "data:")):
            return raw
        return f"data:image/png;base64,{raw}"


class SacapayProvider(PixProvider):
    name = "sacapay"

    def _tokens(self) -> dict:
        if not self.settings.public_token or not self.settings.private_token:
            raise ProviderUnavailable("Tokens do Sacapay não configurados")
        return {
            "token_public": self.settings.public_token,
            "token_private": self.settings.private_token,
        }

    def _charge(self, amount, description, correlation_id, payer):
        payload = {
            **self._tokens(),
            "amount": float(format_amount(amount)),
            "description": description,
            "external_id": correlation_id,
            "webhook_url": self.settings.webhook_url,
            "customer": {
                "name": payer.name,
                "email": payer.email,
                "document": payer.document or "",
            },
        }
        body = self._call("post", f"{self.settings.api_url.rstrip('/')}/v1/pix", json=payload)
        if not body.get("success"):
            raise ProviderUnavailable(f"sacapay: {body.get('message') or 'erro desconhecido'}")
        data = self._section(body, "data")
        ref, pix_code = self._ref_and_code(data.get("id"), data.get("pix_code"))
        return PixCharge(
            provider=self.name,
            provider_ref=ref,
            pix_code=pix_code,
            qr_code_url=self._qr_url(data.get("qr_code"), pix_code),
            expires_at=self._expires_at(data.get("expires_at")),
        )

    def _status(self, provider_ref):
        body = self._call(
            "post",
            f"{self.settings.api_url.rstrip('/')}/v1/pix/status",
            json={**self._tokens(), "id": provider_ref},
        )
        return normalize_status(self._section(body, "data").get("status"))


class MercadoPagoProvider(PixProvider):
    name = "mercadopago"

    def _headers(self) -> dict:
        if not self.settings.access_token:
            raise ProviderUnavailable("Access Token do Mercado Pago não configurado")
        return {
            "Authorization": f"Bearer {self.settings.access_token}",
            "Content-Type": "application/json",
        }

    def _charge(self, amount, description, correlation_id, payer):
        names = (payer.name or "Cliente").split() or ["Cliente"]
        headers = {**self._headers(), "X-Idempotency-Key": correlation_id}
        payload = {
            "transaction_amount": float(format_amount(amount)),
            "description": description,
            "payment_method_id": "pix",
            "payer": {
                "email": payer.email,
                "first_name": names[0],
                "last_name": " ".join(names[1:]) or names[0],
            },
            "external_reference": correlation_id,
            "notification_url": self.settings.webhook_url,
        }
        body = self._call("post", f"{MERCADOPAGO_API}/v1/payments", json=payload, headers=headers)
        tx = self._section(self._section(body, "point_of_interaction"), "transaction_data")
        ref, pix_code = self._ref_and_code(body.get("id"), tx.get("qr_code"))
        return PixCharge(
            provider=self.name,
            provider_ref=ref,
            pix_code=pix_code,
            qr_code_url=self._qr_url(tx.get("qr_code_base64"), pix_code),
            expires_at=self._expires_at(body.get("date_of_expiration")),
        )

    def _status(self, provider_ref):
        body = self._call("get", f"{MERCADOPAGO_API}/v1/payments/{provider_ref}", headers=self._headers())
        return normalize_status(body.get("status"))


PROVIDERS = {
    SacapayProvider.name: SacapayProvider,
    MercadoPagoProvider.name: MercadoPagoProvider,
}


def get_provider(settings: PaymentSettings, name: str | None = None) -> PixProvider | None:
    """Retorna o provedor pedido (ou o configurado); None no modo "fallback"."""
    name = (name or settings.provider or "").lower()
    if name == "fallback":
        return None
    cls = PROVIDERS.get(name)
    if cls is None:
        raise ProviderUnavailable(f"Provedor de pagamento não suportado: {name}")
    return cls(settings)
