# xlata_app/decorators.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from functools import wraps
from flask import session, jsonify, request, current_app

def login_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if not session.get("user"):
            return jsonify(error="unauthorized", message="Faça login para acessar."), 401
        return view_func(*args, **kwargs)
    return wrapper

def admin_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        user = session.get("user")
        if not user:
            return jsonify(error="unauthorized", message="Faça login para acessar."), 401
        if not user.get("is_admin"):
            return jsonify(error="forbidden", message="Acesso restrito ao administrador."), 403
        return view_func(*args, **kwargs)
    return wrapper

def register_cors(bp, methods: str = "GET, POST, OPTIONS"):
    """Preflight OPTIONS + cabeçalhos CORS nas respostas do blueprint."""

    @bp.before_request
    def _preflight():
        if request.method == "OPTIONS":
            return current_app.make_response(("ok", 200))

    @bp.after_request
    def _cors(response):
        allowed = current_app.config.get("CORS_ALLOWED_ORIGINS") or ["*"]
        origin = request.headers.get("Origin")
        response.headers["Access-Control-Allow-Origin"] = origin if origin in allowed else allowed[0]
        response.headers["Access-Control-Allow-Headers"] = (
            "authorization, x-client-info, apikey, content-type, x-signature, x-request-id"
        )
        response.headers["Access-Control-Allow-Methods"] = methods
        response.headers["Vary"] = "Origin"
        return response
