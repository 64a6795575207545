# xlata_app/services/mercadopago.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import requests
from flask import current_app

from .errors import ProviderError, ProviderUnavailable


def _base_url() -> str:
    return current_app.config.get("MERCADOPAGO_API_BASE", "https://api.mercadopago.com").rstrip("/")

def _timeout() -> float:
    return float(current_app.config.get("MERCADOPAGO_TIMEOUT", 10))

def _headers(extra: dict | None = None) -> dict:
    token = current_app.config.get("MERCADOPAGO_ACCESS_TOKEN")
    if not token:
        # sem credencial não há consulta possível; não é uma decisão sobre o pagamento
        raise ProviderUnavailable("MERCADOPAGO_ACCESS_TOKEN não configurado")
    headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
    headers.update(extra or {})
    return headers

def _error_message(resp) -> str:
    try:
        data = resp.json() or {}
    except ValueError:
        return f"Erro na API do Mercado Pago (Status: {resp.status_code})"
    msg = data.get("message")
    if not msg and data.get("cause"):
        msg = (data["cause"][0] or {}).get("description")
    return f"{msg or 'Erro na API do Mercado Pago'} (Status: {resp.status_code})"

def _json_or_raise(resp) -> dict:
    if resp.status_code >= 500:
        raise ProviderUnavailable(_error_message(resp))
    if resp.status_code >= 400:
        raise ProviderError(_error_message(resp), http_status=resp.status_code)
    return resp.json() or {}


def get_payment(payment_id) -> dict:
    """Status autoritativo do pagamento no Mercado Pago."""
    url = f"{_base_url()}/v1/payments/{payment_id}"
    try:
        resp = requests.get(url, headers=_headers(), timeout=_timeout())
    except (requests.Timeout, requests.ConnectionError) as e:
        raise ProviderUnavailable(f"Mercado Pago indisponível: {e}") from e
    return _json_or_raise(resp)


def create_payment(body: dict, idempotency_key: str) -> dict:
    url = f"{_base_url()}/v1/payments"
    try:
        resp = requests.post(
            url,
            json=body,
            headers=_headers({"X-Idempotency-Key": idempotency_key}),
            timeout=_timeout(),
        )
    except (requests.Timeout, requests.ConnectionError) as e:
        raise ProviderUnavailable(f"Mercado Pago indisponível: {e}") from e
    return _json_or_raise(resp)
