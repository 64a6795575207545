# xlata_app/blueprints/auth.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from flask import Blueprint, request, session, jsonify

from xlata_app.extensions import db
from xlata_app.decorators import login_required
from xlata_app.models import User

bp = Blueprint("auth", __name__)


def current_user() -> User | None:
    """Principal autenticado da sessão (id estável do perfil)."""
    data = session.get("user") or {}
    if not data.get("id"):
        return None
    return db.session.get(User, data["id"])


def _form() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


@bp.route("/login", methods=["POST"])
def login():
    data = _form()
    email = (data.get("email") or "").strip().lower()
    pwd = data.get("password") or ""

    u = User.query.filter_by(email=email).first()
    if not u or not u.active or not u.check_password(pwd):
        return jsonify(error="invalid_credentials", message="Credenciais inválidas."), 401

    session["user"] = {"id": u.id, "name": u.name, "email": u.email, "is_admin": bool(u.is_admin)}
    return jsonify(user=session["user"])


@bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify(ok=True)


@bp.route("/me")
@login_required
def me():
    u = current_user()
    if not u:
        session.clear()
        return jsonify(error="unauthorized", message="Sessão inválida."), 401
    return jsonify(user={"id": u.id, "name": u.name, "email": u.email, "is_admin": bool(u.is_admin)})
