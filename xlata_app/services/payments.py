# xlata_app/services/payments.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import re
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import MercadoPagoPayment
from ..models.payment import normalize_status
from . import mercadopago
from .activation import mask_email
from .correlation import assert_reference_owner
from .errors import PaymentValidationError


def _now() -> datetime:
    return datetime.utcnow()


def _parse_amount(raw) -> Decimal:
    try:
        amount = Decimal(str(raw)).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        raise PaymentValidationError("Valor inválido.")
    max_amount = Decimal(str(current_app.config.get("PAYMENT_MAX_AMOUNT", 100000)))
    if not amount.is_finite() or amount <= 0 or amount > max_amount:
        raise PaymentValidationError(f"Valor inválido: deve estar entre 0.01 e {max_amount}.")
    return amount


def _split_name(full: str) -> tuple[str, str]:
    parts = (full or "").strip().split()
    first = parts[0] if parts else "Nome"
    last = " ".join(parts[1:]) if len(parts) > 1 else "Sobrenome"
    return first, last


def _split_phone(raw: str) -> dict:
    digits = re.sub(r"\D", "", raw or "")
    return {"area_code": digits[:2], "number": digits[2:]}


def _payer(data: dict) -> dict:
    payer = data.get("payer")
    if not isinstance(payer, dict):
        raise PaymentValidationError("Campo 'payer' deve ser um objeto.")
    return payer


def _text(payer: dict, key: str) -> str:
    value = payer.get(key)
    if not isinstance(value, str) or not value.strip():
        raise PaymentValidationError(f"Campo do pagador inválido: {key}")
    return value.strip()


def _identification(payer: dict, required: bool) -> dict | None:
    ident = payer.get("identification")
    if ident is None and not required:
        return None
    if not isinstance(ident, dict):
        raise PaymentValidationError("Campo do pagador inválido: identification")
    return {"type": ident.get("type"), "number": ident.get("number")}


def _pix_body(data: dict, amount: Decimal) -> dict:
    payer = _payer(data)
    missing = [k for k in ("name", "email", "phone", "identification") if not payer.get(k)]
    if missing:
        raise PaymentValidationError(f"Campos do pagador ausentes: {', '.join(missing)}")
    first, last = _split_name(_text(payer, "name"))
    return {
        "transaction_amount": float(amount),
        "description": data["description"],
        "payment_method_id": "pix",
        "external_reference": data["external_reference"],
        "payer": {
            "first_name": first,
            "last_name": last,
            "email": _text(payer, "email").lower(),
            "phone": _split_phone(_text(payer, "phone")),
            "identification": _identification(payer, required=True),
        },
        "notification_url": current_app.config.get("MERCADOPAGO_NOTIFICATION_URL"),
    }


def _installments(raw) -> int:
    if raw in (None, ""):
        return 1
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise PaymentValidationError("Parcelas inválidas.")
    if isinstance(raw, bool) or value < 1:
        raise PaymentValidationError("Parcelas inválidas.")
    return value


def _card_body(data: dict, amount: Decimal) -> dict:
    payer = _payer(data)
    if not data.get("token") or not payer.get("email"):
        raise PaymentValidationError("Campos obrigatórios: token, payer.email")
    if not isinstance(data["token"], str):
        raise PaymentValidationError("Campo inválido: token")
    body = {
        "transaction_amount": float(amount),
        "token": data["token"],
        "description": data["description"],
        "installments": _installments(data.get("installments")),
        "payment_method_id": data.get("payment_method_id"),
        "external_reference": data["external_reference"],
        "payer": {
            "email": _text(payer, "email").lower(),
            "identification": _identification(payer, required=False),
        },
        "notification_url": current_app.config.get("MERCADOPAGO_NOTIFICATION_URL"),
    }
    if data.get("issuer_id"):
        body["issuer_id"] = data["issuer_id"]
    return body


def create_payment(user, data: dict) -> dict:
    """Cria um pagamento (PIX ou cartão) no Mercado Pago e registra localmente."""
    if not isinstance(data, dict):
        raise PaymentValidationError("Corpo da requisição deve ser um objeto JSON.")
    missing = [k for k in ("transaction_amount", "description", "external_reference", "payer") if not data.get(k)]
    if missing:
        raise PaymentValidationError(f"Campos obrigatórios ausentes: {', '.join(missing)}")

    assert_reference_owner(data["external_reference"], user.id)
    amount = _parse_amount(data["transaction_amount"])

    method = data.get("payment_method_id") or "pix"
    if not isinstance(method, str):
        raise PaymentValidationError("Campo inválido: payment_method_id")
    method = method.lower()
    body = _pix_body(data, amount) if method == "pix" else _card_body(data, amount)

    # chave nova a cada tentativa: duas compras intencionais não podem colapsar em uma
    idempotency_key = f"{method}_{uuid.uuid4()}"
    current_app.logger.info(
        "criando pagamento %s: amount=%s payer=%s ref=%s",
        method, amount, mask_email(body["payer"]["email"]), data["external_reference"],
    )
    result = mercadopago.create_payment(body, idempotency_key)

    tx = ((result.get("point_of_interaction") or {}).get("transaction_data") or {})
    rec = record_payment(
        payment_id=result.get("id"),
        external_reference=data["external_reference"],
        status=result.get("status"),
        status_detail=result.get("status_detail"),
        amount=result.get("transaction_amount") or amount,
        payer_email=body["payer"]["email"],
        payment_method_id=result.get("payment_method_id") or method,
        qr_code=tx.get("qr_code"),
        qr_code_base64=tx.get("qr_code_base64"),
        ticket_url=tx.get("ticket_url"),
    )
    return {
        "id": rec.payment_id,
        "status": rec.status,
        "status_detail": rec.status_detail,
        "qr_code": rec.qr_code,
        "qr_code_base64": rec.qr_code_base64,
        "ticket_url": rec.ticket_url,
    }


def record_payment(*, payment_id, external_reference, status, amount, **extra) -> MercadoPagoPayment:
    """INSERT no máximo uma vez por payment_id; reentregas viram UPDATE de status."""
    if payment_id in (None, ""):
        raise PaymentValidationError("Mercado Pago não retornou id do pagamento.")
    payment_id = str(payment_id)
    rec = MercadoPagoPayment.query.filter_by(payment_id=payment_id).first()
    if rec:
        return update_status(rec, status, extra.get("status_detail"))

    rec = MercadoPagoPayment(
        payment_id=payment_id,
        external_reference=external_reference or "",
        status=normalize_status(status),
        transaction_amount=amount,
        **extra,
    )
    db.session.add(rec)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        rec = MercadoPagoPayment.query.filter_by(payment_id=payment_id).first()
        return update_status(rec, status, extra.get("status_detail"))
    return rec


def update_status(rec: MercadoPagoPayment, status, status_detail) -> MercadoPagoPayment:
    new_status = normalize_status(status)
    if rec.status != new_status or rec.status_detail != status_detail:
        current_app.logger.info("payment %s: %s -> %s (%s)", rec.payment_id, rec.status, new_status, status_detail)
        rec.status = new_status
        rec.status_detail = status_detail
        rec.updated_at = _now()
        db.session.commit()
    return rec


def sync_from_provider(data: dict) -> MercadoPagoPayment:
    """Atualiza (ou cria, se chegou antes do registro local) a partir do GET /v1/payments."""
    payer = data.get("payer") or {}
    return record_payment(
        payment_id=data.get("id"),
        external_reference=data.get("external_reference"),
        status=data.get("status"),
        status_detail=data.get("status_detail"),
        amount=data.get("transaction_amount") or 0,
        payer_email=payer.get("email"),
        payment_method_id=data.get("payment_method_id"),
    )
