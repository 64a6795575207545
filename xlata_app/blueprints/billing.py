# xlata_app/blueprints/billing.py
from __future__ import annotations
from datetime import datetime
from flask import Blueprint, request, jsonify

from ..decorators import login_required, register_cors
from ..models import UserSubscription
from ..services.payments import create_payment
from ..services.reconciliation import reconcile_payment
from .auth import current_user

bp = Blueprint("billing", __name__, url_prefix="/billing")
register_cors(bp)


@bp.route("/payments", methods=["POST"])
@login_required
def payments_create():
    """Cria PIX/cartão para o usuário logado. A external_reference precisa ser dele."""
    user = current_user()
    if not user:
        return jsonify(error="unauthorized", message="Sessão inválida."), 401
    result = create_payment(user, request.get_json(silent=True) or {})
    return jsonify(result), 201


@bp.route("/payment-status", methods=["POST"])
def payment_status():
    """Consulta usada pelo checkout enquanto o webhook não chega."""
    data = request.get_json(silent=True) or {}
    result = reconcile_payment(data.get("payment_id"))
    body = result.to_dict()
    if result.provider_error:
        body["warning"] = result.provider_error
    if result.needs_retry:
        body["error"] = "activation_pending"
        return jsonify(body), 503
    return jsonify(body)


@bp.route("/subscription")
@login_required
def subscription():
    user = current_user()
    if not user:
        return jsonify(error="unauthorized", message="Sessão inválida."), 401
    sub = (UserSubscription.query
           .filter_by(user_id=user.id, is_active=True)
           .order_by(UserSubscription.expires_at.desc())
           .first())
    now = datetime.utcnow()
    if not sub or sub.expires_at <= now:
        return jsonify(active=False, subscription=sub.to_dict() if sub else None)
    return jsonify(active=True, days_left=(sub.expires_at - now).days, subscription=sub.to_dict())
