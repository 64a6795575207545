# xlata_app/services/webhook_auth.py
# -*- coding: utf-8 -*-
"""
Validação da assinatura dos webhooks do Mercado Pago.

Header ``x-signature``: ``ts=<unix>,v1=<hex>``; o hash é
HMAC-SHA256(secret, "id:{data.id};request-id:{x-request-id};ts:{ts};").
"""
from __future__ import annotations
import hashlib
import hmac
import time
from typing import NamedTuple

from flask import current_app

from .settings import get_setting

DEFAULT_TOLERANCE_SECONDS = 300

# motivos de rejeição
UNCONFIGURED = "unconfigured"
MISSING_HEADERS = "missing_headers"
MALFORMED_SIGNATURE = "malformed_signature"
STALE_OR_FUTURE = "stale_or_future"
BAD_SIGNATURE = "bad_signature"


class Verification(NamedTuple):
    verified: bool
    reason: str | None = None
    degraded: bool = False   # aceito sem checagem (somente fora de produção)

    @classmethod
    def ok(cls, degraded: bool = False) -> "Verification":
        return cls(True, None, degraded)

    @classmethod
    def rejected(cls, reason: str) -> "Verification":
        return cls(False, reason, False)


def build_manifest(event_id, request_id, ts) -> str:
    return f"id:{event_id};request-id:{request_id};ts:{ts};"


def sign_manifest(secret: str, event_id, request_id, ts) -> str:
    manifest = build_manifest(event_id, request_id, ts)
    return hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()


def parse_signature_header(header: str | None) -> tuple[str | None, str | None]:
    ts = v1 = None
    for part in (header or "").split(","):
        key, _, value = part.strip().partition("=")
        if key == "ts":
            ts = value.strip()
        elif key == "v1":
            v1 = value.strip()
    return ts, v1


def verify_signature(
    signature_header: str | None,
    request_id: str | None,
    event_id,
    *,
    secret: str | None,
    production: bool,
    now: float | None = None,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> Verification:
    """Checagem pura: não loga nem toca no banco."""
    if not secret:
        return Verification.rejected(UNCONFIGURED) if production else Verification.ok(degraded=True)

    if not signature_header or not request_id or event_id in (None, ""):
        return Verification.rejected(MISSING_HEADERS) if production else Verification.ok(degraded=True)

    ts, received = parse_signature_header(signature_header)
    if not ts or not received:
        return Verification.rejected(MALFORMED_SIGNATURE)
    try:
        ts_seconds = int(ts)
    except ValueError:
        return Verification.rejected(MALFORMED_SIGNATURE)
    # alguns envios trazem ts em milissegundos
    if ts_seconds > 10_000_000_000:
        ts_seconds //= 1000

    now = time.time() if now is None else now
    if abs(now - ts_seconds) > tolerance:
        return Verification.rejected(STALE_OR_FUTURE)

    expected = sign_manifest(secret, event_id, request_id, ts)
    if not hmac.compare_digest(expected.encode("utf-8"), received.lower().encode("utf-8")):
        return Verification.rejected(BAD_SIGNATURE)
    return Verification.ok()


def webhook_secret() -> str:
    """Override do operador (tabela settings) ou variável de ambiente."""
    override = get_setting("mercadopago_webhook_secret", group="webhooks", default="")
    return override or current_app.config.get("MERCADOPAGO_WEBHOOK_SECRET", "")


def is_production() -> bool:
    return str(current_app.config.get("ENVIRONMENT", "")).lower() == "production"


def verify_request(signature_header, request_id, event_id) -> Verification:
    return verify_signature(
        signature_header,
        request_id,
        event_id,
        secret=webhook_secret(),
        production=is_production(),
        tolerance=int(current_app.config.get("WEBHOOK_TOLERANCE_SECONDS", DEFAULT_TOLERANCE_SECONDS)),
    )
