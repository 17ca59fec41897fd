# vitrine_app/blueprints/core.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, current_app, jsonify

bp = Blueprint("core", __name__)

@bp.route("/health")
def health():
    return jsonify(status="ok", started_at=current_app.config.get("STARTED_AT"))
