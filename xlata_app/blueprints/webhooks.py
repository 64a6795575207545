# xlata_app/blueprints/webhooks.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from typing import NamedTuple

from flask import Blueprint, request, jsonify, current_app

from ..decorators import register_cors
from ..services.activation import USER_UNRESOLVABLE
from ..services.errors import InvalidWebhookPayload, ProviderError, ProviderUnavailable
from ..services.reconciliation import process_payment_event
from ..services.webhook_auth import verify_request

bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")
register_cors(bp, methods="POST, OPTIONS")


class WebhookEvent(NamedTuple):
    type: str
    data_id: str
    action: str | None = None


def parse_event(payload, query_id: str | None = None) -> WebhookEvent:
    """Valida o corpo na borda; nada além daqui vê o dict cru."""
    if not isinstance(payload, dict):
        raise InvalidWebhookPayload("Corpo do webhook deve ser um objeto JSON.")
    typ = payload.get("type") or payload.get("topic")
    if not isinstance(typ, str) or not typ:
        raise InvalidWebhookPayload("Campo 'type' ausente.")
    data = payload.get("data")
    data_id = data.get("id") if isinstance(data, dict) else None
    if data_id in (None, ""):
        data_id = query_id
    if isinstance(data_id, bool) or not isinstance(data_id, (str, int)) or str(data_id).strip() == "":
        raise InvalidWebhookPayload("Campo 'data.id' ausente.")
    action = payload.get("action") if isinstance(payload.get("action"), str) else None
    return WebhookEvent(typ, str(data_id).strip(), action)


def peek_data_id(payload, query_id: str | None = None) -> str:
    """data.id para o manifesto da assinatura, sem validar o resto do corpo."""
    data = payload.get("data") if isinstance(payload, dict) else None
    data_id = data.get("id") if isinstance(data, dict) else None
    if data_id in (None, ""):
        data_id = query_id
    if isinstance(data_id, bool) or not isinstance(data_id, (str, int)):
        return ""
    return str(data_id).strip()


@bp.route("/mercadopago", methods=["POST", "OPTIONS"])
def mercadopago_webhook():
    payload = request.get_json(silent=True)
    query_id = request.args.get("data.id")

    sig = request.headers.get("x-signature")
    request_id = request.headers.get("x-request-id")
    data_id = peek_data_id(payload, query_id)
    check = verify_request(sig, request_id, data_id)
    if not check.verified:
        current_app.logger.error(
            "webhook rejeitado (%s): data.id=%s request-id=%s ts-header=%r",
            check.reason, data_id, request_id, (sig or "")[:32],
        )
        return jsonify(error="invalid_signature", reason=check.reason), 401
    if check.degraded:
        current_app.logger.warning("webhook aceito SEM verificação de assinatura (ambiente não-produção)")

    event = parse_event(payload, query_id)

    if event.type != "payment":
        current_app.logger.info("webhook %s ignorado (type=%s)", event.data_id, event.type)
        return jsonify(received=True, ignored=True)

    current_app.logger.info("webhook payment %s (action=%s)", event.data_id, event.action)
    try:
        result = process_payment_event(event.data_id)
    except (ProviderUnavailable, ProviderError) as e:
        current_app.logger.error("webhook payment %s: consulta ao MP falhou: %s", event.data_id, e.message)
        return jsonify(error=e.code, message=e.message), 500

    body = {"received": True, "status": result.payment.status}
    if result.activation:
        body["activation"] = result.activation.outcome
        if result.needs_retry:
            body["error"] = "activation_failed"
            return jsonify(body), 500
        if result.activation.reason == USER_UNRESOLVABLE:
            # sem retry automático: o pagamento fica marcado para conciliação manual
            body["reason"] = USER_UNRESOLVABLE
    return jsonify(body)
