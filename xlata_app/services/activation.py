# xlata_app/services/activation.py
# -*- coding: utf-8 -*-
"""
Ativação/extensão de assinatura a partir de um pagamento aprovado.

Chamado pelo webhook e pela consulta de status; as duas entradas convergem
aqui. Garantias:
  - idempotência por ``payment_reference`` (consulta prévia + UNIQUE no banco);
  - no máximo uma linha ativa por usuário (índice único parcial);
  - extensão soma dias ao vencimento vigente, nunca a "agora";
  - desativar a linha antiga e inserir a nova acontecem no mesmo commit.
"""
from __future__ import annotations
from datetime import datetime, timedelta
from typing import NamedTuple

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import User, UserSubscription, MercadoPagoPayment
from .correlation import decode_reference, legacy_plan_token
from .errors import MalformedCorrelationToken
from .plan_period import resolve_period

ACTIVATED = "activated"
SKIPPED = "skipped"
FAILED = "failed"

ALREADY_ACTIVATED = "already_activated"
USER_UNRESOLVABLE = "user_unresolvable"
TRANSIENT = "transient"


class ActivationResult(NamedTuple):
    outcome: str
    reason: str | None = None
    subscription: UserSubscription | None = None
    retryable: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome in (ACTIVATED, SKIPPED)

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "reason": self.reason,
            "subscription": self.subscription.to_dict() if self.subscription else None,
        }


def _now() -> datetime:
    return datetime.utcnow()


def mask_email(email: str | None) -> str:
    return f"{email[:3]}***" if email else "unknown"


def _already_activated(payment_id: str) -> UserSubscription | None:
    return UserSubscription.query.filter_by(payment_reference=payment_id).first()


def _resolve_user(payment_id: str, external_reference: str | None, payer_email: str | None):
    """Devolve (user, plan_token). user=None quando nenhuma estratégia identifica o tenant."""
    plan_token = None
    try:
        decoded = decode_reference(external_reference)
        plan_token = decoded.plan_token
        user = db.session.get(User, decoded.user_id)
        if user:
            return user, plan_token
        current_app.logger.warning(
            "payment %s: user %s da referência não existe; tentando e-mail do pagador",
            payment_id, decoded.user_id,
        )
    except MalformedCorrelationToken as e:
        current_app.logger.error("payment %s: %s", payment_id, e.message)
        plan_token = legacy_plan_token(external_reference)

    if payer_email:
        user = User.query.filter(func.lower(User.email) == payer_email.strip().lower()).first()
        if user:
            current_app.logger.info(
                "payment %s: usuário resolvido pelo e-mail do pagador (%s)", payment_id, mask_email(payer_email)
            )
            return user, plan_token
    return None, plan_token


def _current_period(user_id: str) -> UserSubscription | None:
    """Linha ativa do usuário, travada até o commit."""
    return (UserSubscription.query
            .filter_by(user_id=user_id, is_active=True)
            .order_by(UserSubscription.expires_at.desc())
            .with_for_update()
            .first())


def _flag_unmapped(payment_id: str, reason: str) -> None:
    """Marca o pagamento para conciliação manual; o status do pagamento não muda."""
    try:
        rec = MercadoPagoPayment.query.filter_by(payment_id=payment_id).first()
        if rec and rec.activation_error != reason:
            rec.activation_error = reason
            db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("payment %s: falha ao registrar activation_error", payment_id)


def activate_subscription(
    payment_id,
    external_reference: str | None,
    payer_email: str | None = None,
    *,
    now: datetime | None = None,
    payment_method: str = "mercadopago",
) -> ActivationResult:
    payment_id = str(payment_id)
    now = now or _now()

    try:
        existing = _already_activated(payment_id)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("payment %s: falha na checagem de idempotência", payment_id)
        return ActivationResult(FAILED, TRANSIENT, retryable=True)
    if existing:
        current_app.logger.info("payment %s já ativou a assinatura %s; ignorando", payment_id, existing.id)
        return ActivationResult(SKIPPED, ALREADY_ACTIVATED, existing)

    try:
        user, plan_token = _resolve_user(payment_id, external_reference, payer_email)
        period = resolve_period(plan_token, payment_id=payment_id) if user else None
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("payment %s: falha ao resolver usuário/plano", payment_id)
        return ActivationResult(FAILED, TRANSIENT, retryable=True)

    if user is None:
        current_app.logger.error(
            "PAGAMENTO SEM TENANT: payment=%s external_reference=%r payer=%s; conciliação manual necessária",
            payment_id, external_reference, mask_email(payer_email),
        )
        _flag_unmapped(payment_id, USER_UNRESOLVABLE)
        return ActivationResult(FAILED, USER_UNRESOLVABLE)

    try:
        current = _current_period(user.id)

        if current and current.expires_at > now:
            expires_at = current.expires_at + timedelta(days=period.days)
            current_app.logger.info(
                "payment %s: estendendo assinatura %s: %s + %s dias = %s",
                payment_id, current.id, current.expires_at.isoformat(), period.days, expires_at.isoformat(),
            )
        else:
            expires_at = now + timedelta(days=period.days)
            current_app.logger.info(
                "payment %s: nova assinatura para %s: %s + %s dias = %s",
                payment_id, user.id, now.isoformat(), period.days, expires_at.isoformat(),
            )

        if current:
            # vencida ou não, a linha antiga deixa de ser a ativa (não é apagada)
            current.is_active = False
            db.session.flush()

        sub = UserSubscription(
            user_id=user.id,
            plan_type=period.plan_type,
            is_active=True,
            activated_at=now,
            expires_at=expires_at,
            payment_reference=payment_id,
            payment_method=payment_method,
        )
        db.session.add(sub)

        rec = MercadoPagoPayment.query.filter_by(payment_id=payment_id).first()
        if rec and rec.activation_error:
            rec.activation_error = None

        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        winner = _already_activated(payment_id)
        if winner:
            current_app.logger.info("payment %s: ativação concorrente venceu (assinatura %s)", payment_id, winner.id)
            return ActivationResult(SKIPPED, ALREADY_ACTIVATED, winner)
        # outro pagamento do mesmo usuário ocupou a linha ativa; nova tentativa resolve
        current_app.logger.warning("payment %s: conflito de assinatura ativa para %s; repetir", payment_id, user.id)
        return ActivationResult(FAILED, TRANSIENT, retryable=True)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("payment %s: erro de banco na ativação", payment_id)
        return ActivationResult(FAILED, TRANSIENT, retryable=True)

    current_app.logger.info(
        "payment %s: assinatura %s ativa até %s (%s, %s dias, fonte=%s)",
        payment_id, sub.id, sub.expires_at.isoformat(), sub.plan_type, period.days, period.source,
    )
    return ActivationResult(ACTIVATED, None, sub)
