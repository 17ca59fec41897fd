# vitrine_app/services/fallback_pix.py
# -*- coding: utf-8 -*-
"""PIX de demonstração usado quando o provedor está fora do ar.

O código gerado tem o formato de um BR Code, mas NÃO é um instrumento de
liquidação válido: o recebedor é fictício e o CRC não é calculado. Serve só
para a interface exibir/copiar algo enquanto o pagamento é conciliado à mão.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from urllib.parse import quote

from ..timeutils import utcnow

DEFAULT_QR_URL = "https://api.qrserver.com/v1/create-qr-code/?size=300x300&data={data}"
DEMO_MERCHANT = "PIX DEMO SEM VALOR"
DEMO_CITY = "SAO PAULO"
EXPIRATION_MINUTES = 30


@dataclass(frozen=True)
class FallbackPix:
    pix_code: str
    qr_code_url: str
    expires_at: datetime


def format_amount(amount) -> str:
    return str(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _field(tag: str, value: str) -> str:
    return f"{tag}{len(value):02d}{value}"


def build_pix_code(amount, correlation_id: str) -> str:
    merchant_account = _field("00", "BR.GOV.BCB.PIX") + _field("01", correlation_id)
    return "".join([
        _field("00", "01"),
        _field("01", "12"),
        _field("26", merchant_account),
        _field("52", "0000"),
        _field("53", "986"),
        _field("54", format_amount(amount)),
        _field("58", "BR"),
        _field("59", DEMO_MERCHANT),
        _field("60", DEMO_CITY),
        _field("62", _field("05", "***")),
        "6304",
    ])


def build_qr_code_url(pix_code: str, template: str = DEFAULT_QR_URL) -> str:
    # mesma escapagem de encodeURIComponent
    return template.format(data=quote(pix_code, safe="-_.!~*'()"))


def generate(amount, correlation_id: str, *, now: datetime | None = None,
             minutes: int = EXPIRATION_MINUTES, qr_template: str = DEFAULT_QR_URL) -> FallbackPix:
    pix_code = build_pix_code(amount, correlation_id)
    return FallbackPix(
        pix_code=pix_code,
        qr_code_url=build_qr_code_url(pix_code, qr_template),
        expires_at=(now or utcnow()) + timedelta(minutes=minutes),
    )
