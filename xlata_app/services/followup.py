# xlata_app/services/followup.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import MercadoPagoPayment, User
from ..models.payment import PENDING
from .activation import mask_email
from .correlation import decode_reference
from .errors import BillingError
from .reconciliation import reconcile_payment

# (marco, horas desde a criação, coluna), do mais antigo para o mais novo
MILESTONES = (
    ("48h", 48, "followup_48h_sent"),
    ("24h", 24, "followup_24h_sent"),
    ("1h", 1, "followup_1h_sent"),
)

MESSAGES = {
    "1h": "Olá {name}! Vimos que você gerou um PIX de R$ {amount} mas ainda não finalizou. "
          "Seu código QR continua válido!",
    "24h": "Oi {name}! Seu PIX de R$ {amount} está esperando. Finalize agora e comece a usar o XLata hoje mesmo.",
    "48h": "{name}, última chamada! Seu código PIX de R$ {amount} vai expirar em breve.",
}


def _brl(value) -> str:
    return f"{float(value or 0):.2f}".replace(".", ",")


def due_milestone(payment: MercadoPagoPayment, now: datetime) -> tuple[str, str] | None:
    hours = (now - payment.created_at).total_seconds() / 3600
    for name, threshold, column in MILESTONES:
        if hours >= threshold and not getattr(payment, column):
            return name, column
    return None


def _recipient(payment: MercadoPagoPayment) -> User | None:
    try:
        user_id = decode_reference(payment.external_reference).user_id
    except BillingError:
        return None
    return db.session.get(User, user_id)


def sweep_pending_payments(min_age_minutes: int = 60, now: datetime | None = None) -> dict:
    """Reconcilia PIX pendentes antigos e registra o lembrete devido de cada um."""
    now = now or datetime.utcnow()
    cutoff = now - timedelta(minutes=min_age_minutes)
    results = {"processed": 0, "reconciled": 0, "followups_sent": {"1h": 0, "24h": 0, "48h": 0}, "errors": []}

    pending = (MercadoPagoPayment.query
               .filter(MercadoPagoPayment.status == PENDING, MercadoPagoPayment.created_at < cutoff)
               .order_by(MercadoPagoPayment.created_at.asc())
               .all())
    current_app.logger.info("varredura de PIX pendentes: %s pagamento(s)", len(pending))

    for payment in pending:
        payment_id = payment.payment_id
        results["processed"] += 1
        try:
            result = reconcile_payment(payment_id)
            if result.payment.status != PENDING:
                results["reconciled"] += 1
                continue

            due = due_milestone(payment, now)
            if not due:
                continue
            name, column = due
            user = _recipient(payment)
            if user is None:
                continue

            message = MESSAGES[name].format(name=user.name or "Cliente", amount=_brl(payment.transaction_amount))
            current_app.logger.info(
                "[%s] lembrete do payment %s para %s (whatsapp=%s): %s",
                name, payment_id, mask_email(user.email), bool(user.whatsapp or user.phone), message,
            )
            setattr(payment, column, True)
            db.session.commit()
            results["followups_sent"][name] += 1
        except (BillingError, SQLAlchemyError) as e:
            db.session.rollback()
            current_app.logger.warning("varredura: payment %s falhou: %s", payment_id, e)
            results["errors"].append(f"{payment_id}: {e}")

    current_app.logger.info("varredura concluída: %s", results)
    return results
