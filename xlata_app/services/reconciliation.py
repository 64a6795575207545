# xlata_app/services/reconciliation.py
# -*- coding: utf-8 -*-
"""
Dois adaptadores finos sobre ``activate_subscription``:

- ``process_payment_event``: push (webhook) -> consulta o Mercado Pago, grava o
  status e ativa se aprovado;
- ``reconcile_payment``: pull (checkout consultando o status) -> compensa
  webhooks perdidos ou atrasados.
"""
from __future__ import annotations
from typing import NamedTuple

from flask import current_app

from ..models import MercadoPagoPayment
from ..models.payment import APPROVED, PENDING
from . import mercadopago
from .activation import ActivationResult, activate_subscription
from .errors import PaymentNotFound, ProviderError, ProviderUnavailable
from .payments import sync_from_provider, update_status


class ReconcileResult(NamedTuple):
    payment: MercadoPagoPayment
    activation: ActivationResult | None = None
    provider_error: str | None = None

    @property
    def needs_retry(self) -> bool:
        return bool(self.activation and self.activation.retryable)

    def to_dict(self) -> dict:
        return self.payment.to_status_dict()


def _activate(rec: MercadoPagoPayment) -> ActivationResult:
    return activate_subscription(
        rec.payment_id,
        rec.external_reference,
        rec.payer_email,
        payment_method=f"mercadopago_{rec.payment_method_id or 'pix'}",
    )


def process_payment_event(payment_id) -> ReconcileResult:
    """Levanta ProviderUnavailable/ProviderError: o webhook deve responder não-2xx e o MP reenviar."""
    payment_id = str(payment_id)
    data = mercadopago.get_payment(payment_id)
    data.setdefault("id", payment_id)
    rec = sync_from_provider(data)

    activation = None
    if rec.status == APPROVED:
        current_app.logger.info("payment %s aprovado; ativando assinatura", payment_id)
        activation = _activate(rec)
    return ReconcileResult(rec, activation)


def reconcile_payment(payment_id) -> ReconcileResult:
    payment_id = str(payment_id or "").strip()
    if not payment_id:
        raise PaymentNotFound("payment_id é obrigatório")
    rec = MercadoPagoPayment.query.filter_by(payment_id=payment_id).first()
    if rec is None:
        raise PaymentNotFound(f"Pagamento {payment_id} não encontrado")

    current_app.logger.info("status local de %s: %s", payment_id, rec.status)

    if rec.status == APPROVED:
        # aprovado antes, mas a ativação pode ter falhado: a guarda de idempotência torna isso seguro
        return ReconcileResult(rec, _activate(rec))

    if rec.status != PENDING:
        return ReconcileResult(rec)

    try:
        data = mercadopago.get_payment(payment_id)
    except (ProviderUnavailable, ProviderError) as e:
        # timeout não é "não aprovado": devolve o último status conhecido
        current_app.logger.warning("consulta ao Mercado Pago falhou para %s: %s", payment_id, e.message)
        return ReconcileResult(rec, provider_error=e.code)

    rec = update_status(rec, data.get("status") or rec.status, data.get("status_detail", rec.status_detail))
    activation = _activate(rec) if rec.status == APPROVED else None
    return ReconcileResult(rec, activation)
