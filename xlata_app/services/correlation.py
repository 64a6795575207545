# xlata_app/services/correlation.py
# -*- coding: utf-8 -*-
"""
Codec da external_reference trocada com o Mercado Pago.

Formato: ``user_{user_id}_plan_{plan_token}``. O user_id não pode conter "_"
(UUIDs usam "-"); o plan_token pode, pois tudo após o marcador "plan" é
reagrupado no decode.
"""
from __future__ import annotations
from typing import NamedTuple

from .errors import MalformedCorrelationToken, ReferenceOwnershipError

USER_MARK = "user"
PLAN_MARK = "plan"
SEP = "_"


class CorrelationToken(NamedTuple):
    user_id: str
    plan_token: str


def encode_reference(user_id, plan_token: str) -> str:
    user_id = str(user_id or "")
    plan_token = str(plan_token or "")
    if not user_id.strip() or SEP in user_id or user_id != user_id.strip():
        raise MalformedCorrelationToken(f"user_id inválido para referência: {user_id!r}")
    if not plan_token.strip():
        raise MalformedCorrelationToken("plan_token vazio")
    # decode devolve o token exatamente como codificado
    if plan_token != plan_token.strip():
        raise MalformedCorrelationToken(f"plan_token com espaços nas pontas: {plan_token!r}")
    return f"{USER_MARK}{SEP}{user_id}{SEP}{PLAN_MARK}{SEP}{plan_token}"


def decode_reference(token: str | None) -> CorrelationToken:
    if not token:
        raise MalformedCorrelationToken("external_reference ausente")
    parts = str(token).split(SEP, 3)
    if len(parts) < 4 or parts[0] != USER_MARK or parts[2] != PLAN_MARK:
        raise MalformedCorrelationToken(f"external_reference fora do formato: {token!r}")
    user_id, plan_token = parts[1], parts[3]
    if not user_id or not plan_token:
        raise MalformedCorrelationToken(f"external_reference incompleta: {token!r}")
    return CorrelationToken(user_id, plan_token)


def legacy_plan_token(token: str | None) -> str | None:
    """Referências antigas eram ``plan_<id>_<timestamp>``; devolve o <id> ou None."""
    parts = str(token or "").split(SEP)
    if len(parts) >= 2 and parts[0] == PLAN_MARK and parts[1]:
        return parts[1]
    return None


def assert_reference_owner(token: str, user_id) -> CorrelationToken:
    """Rejeita a criação de pagamento cuja referência credita outro usuário."""
    decoded = decode_reference(token)
    if decoded.user_id != str(user_id):
        raise ReferenceOwnershipError("Não é permitido criar pagamento para outro usuário.")
    return decoded
