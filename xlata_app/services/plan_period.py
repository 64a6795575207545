# xlata_app/services/plan_period.py
# -*- coding: utf-8 -*-
"""
Quantos dias de cobertura um plano concede.

Ordem de resolução (primeiro acerto vence):
  1. plano ativo com ``plan_type`` igual ao token -> texto de ``period``
  2. plano ativo com ``plan_id`` igual ao token  -> texto de ``period``
  3. palavras-chave no próprio token (monthly, anual, semi_annual...)
  4. padrão (30 dias), logado como resolução degradada

Tolerar catálogo duplicado/ausente é intencional: o dinheiro já foi capturado.
"""
from __future__ import annotations
import re
from typing import NamedTuple

from flask import current_app

from ..models import SubscriptionPlan

DEFAULT_DAYS = 30

# texto de período (pt-BR). Do maior para o menor: "1 ano" não pode cair em "1 mês".
PERIOD_TEXT_RULES: tuple[tuple[int, tuple[str, ...]], ...] = (
    (1095, (r"1095 dias", r"trienal", r"3 anos")),
    (365, (r"365 dias", r"anual", r"12 meses", r"1 ano")),
    (180, (r"180 dias", r"semestral", r"6 meses")),
    (90, (r"90 dias", r"trimestral", r"3 meses")),
    (30, (r"30 dias", r"mensal", r"1 m[eê]s", r"m[eê]s")),
    (7, (r"7 dias", r"semanal", r"semana")),
)

# tokens livres (plan_type/plan_id). Substring: "semi_annual" precisa achar "semi" antes de "annual".
TOKEN_RULES: tuple[tuple[int, tuple[str, ...]], ...] = (
    (1095, ("triennial", "trienal")),
    (180, ("biannual", "semiannual", "semi", "semestral")),
    (365, ("annual", "anual", "yearly")),
    (90, ("quarterly", "trimestral")),
    (30, ("monthly", "mensal")),
    (7, ("trial", "weekly", "semanal")),
)

_PERIOD_PATTERNS = tuple(
    (days, re.compile(r"\b(?:" + "|".join(words) + r")\b", re.IGNORECASE))
    for days, words in PERIOD_TEXT_RULES
)


class PeriodResolution(NamedTuple):
    days: int
    plan_type: str
    source: str  # plan_type | plan_id | token | default

    @property
    def degraded(self) -> bool:
        return self.source == "default"


def days_from_period_text(text: str | None) -> int | None:
    if not text:
        return None
    for days, pattern in _PERIOD_PATTERNS:
        if pattern.search(text):
            return days
    return None


def days_from_token(token: str | None) -> int | None:
    t = (token or "").lower()
    if not t:
        return None
    for days, words in TOKEN_RULES:
        if any(w in t for w in words):
            return days
    return None


def _find_plan(token: str) -> tuple[SubscriptionPlan | None, str]:
    plan = (SubscriptionPlan.query
            .filter_by(plan_type=token, is_active=True)
            .order_by(SubscriptionPlan.id.asc())
            .first())
    if plan:
        return plan, "plan_type"
    plan = (SubscriptionPlan.query
            .filter_by(plan_id=token, is_active=True)
            .order_by(SubscriptionPlan.id.asc())
            .first())
    return plan, "plan_id"


def resolve_period(plan_token: str | None, payment_id: str | None = None) -> PeriodResolution:
    token = (plan_token or "").strip()
    default_days = int(current_app.config.get("DEFAULT_PERIOD_DAYS", DEFAULT_DAYS))

    if token:
        plan, source = _find_plan(token)
        if plan is not None:
            days = days_from_period_text(plan.period) or days_from_token(plan.plan_type)
            if days:
                return PeriodResolution(days, plan.plan_type, source)
            current_app.logger.warning(
                "plano %s com período ilegível (%r); tentando pelo token", plan.plan_id, plan.period
            )
        days = days_from_token(token)
        if days:
            return PeriodResolution(days, plan.plan_type if plan else token, "token")

    current_app.logger.warning(
        "degraded period resolution: payment=%s plan_token=%r -> %s dias (padrão)",
        payment_id, token, default_days,
    )
    return PeriodResolution(default_days, token or "monthly", "default")


def resolve_days(plan_token: str | None) -> int:
    return resolve_period(plan_token).days
