# vitrine_app/blueprints/auth.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from flask import Blueprint, request, session, jsonify

from vitrine_app.extensions import db
from vitrine_app.models import User

bp = Blueprint("auth", __name__, url_prefix="/auth")


def current_user():
    data = session.get("user")
    if not data or not data.get("id"):
        return None
    return db.session.get(User, data["id"])


@bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or request.form
    email = (data.get("email") or "").strip()
    pwd = data.get("password") or ""

    u = User.query.filter_by(email=email).first()
    if not u or not u.check_password(pwd):
        return jsonify(success=False, message="Credenciais inválidas."), 401
    if u.active is False:
        return jsonify(success=False, message="Conta desativada."), 401

    session["user"] = {"id": u.id, "name": u.name, "email": u.email, "is_admin": bool(u.is_admin)}
    return jsonify(success=True, user=session["user"])


@bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify(success=True)
