# xlata_app/blueprints/admin/routes.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import request, jsonify, session, current_app
from sqlalchemy import exists
from ..admin import admin_bp
from ...decorators import admin_required
from ...models import MercadoPagoPayment, UserSubscription
from ...models.payment import APPROVED, STATUSES
from ...services.settings import set_setting


def _payment_row(p: MercadoPagoPayment, sub: UserSubscription | None) -> dict:
    return {
        "payment_id": p.payment_id,
        "status": p.status,
        "status_detail": p.status_detail,
        "transaction_amount": float(p.transaction_amount or 0),
        "payer_email": p.payer_email,
        "payment_method_id": p.payment_method_id,
        "external_reference": p.external_reference,
        "activation_error": p.activation_error,
        "created_at": p.created_at.isoformat() if p.created_at else None,
        "subscription": sub.to_dict() if sub else None,
    }


@admin_bp.route("/payments")
@admin_required
def payments():
    """Livro-razão: pagamentos + assinatura gerada por cada um."""
    q = MercadoPagoPayment.query.order_by(MercadoPagoPayment.created_at.desc())
    status = (request.args.get("status") or "").lower()
    if status:
        if status not in STATUSES:
            return jsonify(error="invalid_status", message=f"status deve ser um de {', '.join(STATUSES)}"), 400
        q = q.filter(MercadoPagoPayment.status == status)

    unmapped = request.args.get("unmapped") == "1"
    if unmapped:
        # aprovados que não viraram assinatura: fila de conciliação manual
        q = q.filter(
            MercadoPagoPayment.status == APPROVED,
            ~exists().where(UserSubscription.payment_reference == MercadoPagoPayment.payment_id),
        )

    limit = request.args.get("limit", 200, type=int) or 200
    rows = q.limit(max(1, min(limit, 1000))).all()
    subs = {
        s.payment_reference: s
        for s in UserSubscription.query.filter(
            UserSubscription.payment_reference.in_([p.payment_id for p in rows])
        ).all()
    } if rows else {}

    items = [_payment_row(p, subs.get(p.payment_id)) for p in rows]
    return jsonify(
        payments=items,
        total=len(items),
        approved=sum(1 for i in items if i["status"] == APPROVED),
        unmapped=sum(1 for i in items if i["status"] == APPROVED and not i["subscription"]),
    )


@admin_bp.route("/settings/webhook-secret", methods=["PUT"])
@admin_required
def rotate_webhook_secret():
    """Troca o segredo do webhook sem redeploy (vazio volta a usar a variável de ambiente)."""
    data = request.get_json(silent=True) or {}
    secret = (data.get("secret") or "").strip()
    set_setting("mercadopago_webhook_secret", secret, group="webhooks", updated_by=session["user"].get("id"))
    current_app.logger.warning("segredo do webhook %s por %s", "alterado" if secret else "removido",
                               session["user"].get("email"))
    return jsonify(ok=True, overridden=bool(secret))
