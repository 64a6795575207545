# xlata_app/services/errors.py
# -*- coding: utf-8 -*-
from __future__ import annotations


class BillingError(Exception):
    code = "billing_error"
    status = 500

    def __init__(self, message: str = "", code: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class AuthenticityFailure(BillingError):
    code = "authenticity_failure"
    status = 401


class MalformedCorrelationToken(BillingError):
    code = "malformed_correlation_token"
    status = 400


class UserUnresolvable(BillingError):
    code = "user_unresolvable"
    status = 422


class ReferenceOwnershipError(BillingError):
    code = "forbidden_reference"
    status = 403


class PaymentValidationError(BillingError):
    code = "invalid_payment"
    status = 400


class PaymentNotFound(BillingError):
    code = "payment_not_found"
    status = 404


class InvalidWebhookPayload(BillingError):
    code = "invalid_payload"
    status = 400


class ProviderError(BillingError):
    """Mercado Pago respondeu, mas com erro (4xx/5xx)."""
    code = "provider_error"
    status = 502

    def __init__(self, message: str = "", http_status: int | None = None):
        super().__init__(message)
        self.http_status = http_status


class ProviderUnavailable(BillingError):
    """Timeout/conexão: nunca significa 'não aprovado'."""
    code = "provider_unavailable"
    status = 503
