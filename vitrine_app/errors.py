# vitrine_app/errors.py
# -*- coding: utf-8 -*-
"""Erros do núcleo de pagamentos.

Cada erro carrega um ``kind`` estável (exposto no JSON) e o status HTTP
correspondente. ``ProviderUnavailable`` é sempre absorvido pelo orquestrador.
"""
from __future__ import annotations


class PaymentError(Exception):
    kind = "PaymentError"
    status_code = 500

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"success": False, "kind": self.kind, "message": self.message}
        body.update(self.extra)
        return body


class InvalidInput(PaymentError):
    kind = "InvalidInput"
    status_code = 400


class NotFound(PaymentError):
    kind = "NotFound"
    status_code = 404


class DuplicatePendingPayment(PaymentError):
    kind = "DuplicatePendingPayment"
    status_code = 409

    def __init__(self, message: str, payment_id: int):
        super().__init__(message, paymentId=payment_id)
        self.payment_id = payment_id


class InvalidTransition(PaymentError):
    kind = "InvalidTransition"
    status_code = 400


class EntitlementGrantFailure(PaymentError):
    kind = "EntitlementGrantFailure"
    status_code = 500


class ProviderUnavailable(PaymentError):
    kind = "ProviderUnavailable"
    status_code = 502
