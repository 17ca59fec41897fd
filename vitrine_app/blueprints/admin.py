# vitrine_app/blueprints/admin.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, request, jsonify, current_app
from ..decorators import admin_required
from ..services.providers import PROVIDERS
from ..services.settings import (
    PAYMENT_GROUP, PAYMENT_KEYS, get_group_masked, set_setting, load_payment_settings,
)

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/admin")

SUPPORTED_PROVIDERS = (*PROVIDERS, "fallback")


# ---------------- ADMIN: Configurações de pagamento ----------------
@admin_bp.route("/settings/payments", methods=["GET"])
@admin_required
def payment_settings():
    stored = get_group_masked(PAYMENT_GROUP)
    effective = load_payment_settings()
    return jsonify(
        success=True,
        settings={k: stored.get(k, "") for k in PAYMENT_KEYS},
        provider=effective.provider,
        webhook_url=effective.webhook_url,
        providers=sorted(SUPPORTED_PROVIDERS),
    )


@admin_bp.route("/settings/payments", methods=["POST"])
@admin_required
def payment_settings_update():
    data = request.get_json(silent=True) or request.form.to_dict()
    unknown = sorted(k for k in data if k not in PAYMENT_KEYS)
    if unknown:
        return jsonify(success=False, message="Chaves desconhecidas.", keys=unknown), 400

    provider = data.get("PAYMENT_PROVIDER")
    if provider is not None and str(provider).strip().lower() not in SUPPORTED_PROVIDERS:
        return jsonify(success=False, message=f"Provedor não suportado: {provider}"), 400

    for key, value in data.items():
        value = str(value or "").strip()
        if key == "PAYMENT_PROVIDER":
            value = value.lower()
        set_setting(key, value, PAYMENT_GROUP)
    current_app.logger.info("payment settings updated: %s", ", ".join(sorted(data)))
    return jsonify(success=True, message="Configurações salvas.")
