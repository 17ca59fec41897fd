# vitrine_app/blueprints/payments.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import hashlib
import hmac

from flask import Blueprint, request, jsonify, current_app, session

from ..decorators import login_required, admin_required
from ..errors import PaymentError, InvalidInput, NotFound
from ..services.payments import get_orchestrator
from ..services.providers import PayerInfo
from ..services.settings import load_payment_settings
from .auth import current_user

bp = Blueprint("payments", __name__, url_prefix="/payments")


@bp.errorhandler(PaymentError)
def _payment_error(exc: PaymentError):
    return jsonify(exc.to_dict()), exc.status_code


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return request.form.to_dict()
    if not isinstance(data, dict):
        raise InvalidInput("Corpo da requisição deve ser um objeto JSON")
    return data


def _int_field(data: dict, *names, required=True) -> int | None:
    for name in names:
        raw = data.get(name)
        if raw in (None, ""):
            continue
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise InvalidInput(f"{names[0]} inválido", **{names[0]: raw})
    if required:
        raise InvalidInput(f"{names[0]} é obrigatório")
    return None


def _visible_payment(payment_id: int):
    """Dono ou admin; para os demais o pagamento 'não existe'."""
    payment = get_orchestrator().get_payment(payment_id)
    user = session.get("user") or {}
    if not user.get("is_admin") and payment.user_id != user.get("id"):
        raise NotFound("Pagamento não encontrado", paymentId=payment_id)
    return payment


# ---------------- Usuário ----------------
@bp.route("/create", methods=["POST"])
@login_required
def create_payment():
    data = _body()
    item_id = _int_field(data, "itemId", "projectId")
    user = current_user()
    if user is None:
        return jsonify(success=False, message="Sessão inválida."), 401

    payment, pix = get_orchestrator().create_payment(user.id, item_id)
    message = "Link PIX criado com sucesso"
    if payment.provider == "fallback":
        message = "Pagamento criado com sistema de fallback"
    return jsonify(success=True, payment=payment.to_dict(), pix=pix, message=message), 201


@bp.route("/<int:payment_id>", methods=["GET"])
@login_required
def payment_details(payment_id: int):
    payment = _visible_payment(payment_id)
    status = get_orchestrator().get_status(payment.id)
    return jsonify(
        success=True,
        payment=payment.to_dict(),
        status=status["status"],
        isValid=status["isValid"],
        message="Pagamento válido" if status["isValid"] else "Pagamento expirado ou já processado",
    )


@bp.route("/<int:payment_id>/sync", methods=["POST"])
@login_required
def payment_sync(payment_id: int):
    payment = _visible_payment(payment_id)
    orch = get_orchestrator()
    payment = orch.sync_with_provider(payment.id)
    status = orch.get_status(payment.id)
    return jsonify(success=True, payment=payment.to_dict(), isValid=status["isValid"])


# ---------------- Webhook do provedor ----------------
def _signature_ok(secret: str) -> bool:
    sent = request.headers.get("X-Webhook-Signature", "")
    expected = hmac.new(secret.encode("utf-8"), request.get_data(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(sent, expected)


@bp.route("/webhook", methods=["POST"])
def webhook():
    settings = load_payment_settings()
    if settings.webhook_secret and not _signature_ok(settings.webhook_secret):
        current_app.logger.warning("Webhook signature error from %s", request.remote_addr)
        return jsonify(success=False, message="bad signature"), 400

    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidInput("Corpo do webhook deve ser um objeto JSON")
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    # Mercado Pago manda {action, data: {id}}; Sacapay manda {id|transaction_id, status, external_id}
    provider_ref = data.get("id") or payload.get("transaction_id") or payload.get("id")
    correlation_id = payload.get("external_id") or payload.get("external_reference")
    if not provider_ref and not correlation_id:
        raise InvalidInput("Webhook sem identificador de transação")

    try:
        payment, status = get_orchestrator().handle_webhook(
            str(provider_ref) if provider_ref else None,
            payload.get("status"),
            correlation_id=correlation_id,
        )
    except NotFound:
        current_app.logger.warning("webhook for unknown payment ref=%s correlation=%s",
                                   provider_ref, correlation_id)
        raise
    return jsonify(success=True, paymentId=payment.id, status=payment.status,
                   message="Webhook processado com sucesso")


# ---------------- Admin ----------------
@bp.route("/manual", methods=["POST"])
@admin_required
def manual_payment():
    data = _body()
    user_id = _int_field(data, "userId")
    item_id = _int_field(data, "itemId", "projectId")
    payment = get_orchestrator().create_manual_payment(user_id, item_id)
    return jsonify(success=True, payment=payment.to_dict(),
                   message="Pagamento manual criado e projeto entregue com sucesso"), 201


@bp.route("/approve/<int:payment_id>", methods=["POST"])
@admin_required
def approve_payment(payment_id: int):
    payment = get_orchestrator().mark_approved(payment_id)
    return jsonify(success=True, payment=payment.to_dict(), message="Pagamento aprovado com sucesso")


@bp.route("/reject/<int:payment_id>", methods=["POST"])
@admin_required
def reject_payment(payment_id: int):
    payment = get_orchestrator().mark_failed(payment_id)
    return jsonify(success=True, payment=payment.to_dict(), message="Pagamento rejeitado com sucesso")


@bp.route("/create-pix-link", methods=["POST"])
@admin_required
def create_pix_link_admin():
    data = _body()
    user_id = _int_field(data, "userId")
    item_id = _int_field(data, "itemId", "projectId")
    payment, pix = get_orchestrator().create_payment(user_id, item_id)
    return jsonify(success=True, payment=payment.to_dict(), pix=pix,
                   message="Link PIX criado com sucesso"), 201


@bp.route("/create-charge", methods=["POST"])
@admin_required
def create_charge():
    data = _body()
    payer = PayerInfo(
        name=data.get("customerName") or "Cliente",
        email=data.get("customerEmail") or "cliente@exemplo.com",
        document=data.get("customerDocument") or "",
        phone=data.get("customerPhone") or "",
    )
    payment, pix = get_orchestrator().create_payment(
        None, None,
        amount=data.get("amount"),
        description=(data.get("description") or "").strip() or None,
        payer=payer,
    )
    return jsonify(success=True, paymentId=payment.id, payment=payment.to_dict(), pix=pix,
                   message="Cobrança criada com sucesso"), 201
