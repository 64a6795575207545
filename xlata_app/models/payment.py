# xlata_app/models/payment.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
IN_PROCESS = "in_process"
CANCELLED = "cancelled"
REFUNDED = "refunded"
OTHER = "other"

STATUSES = (PENDING, APPROVED, REJECTED, IN_PROCESS, CANCELLED, REFUNDED, OTHER)


def normalize_status(raw) -> str:
    """Status do Mercado Pago -> enum local (desconhecidos viram 'other')."""
    s = str(raw or "").strip().lower()
    if s == "canceled":
        s = CANCELLED
    return s if s in STATUSES else OTHER


class MercadoPagoPayment(db.Model):
    """Tentativa de pagamento; também é o livro-razão de idempotência das ativações."""
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    external_reference = db.Column(db.String(255), nullable=False)   # user_<id>_plan_<token>
    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)
    status_detail = db.Column(db.String(120))
    transaction_amount = db.Column(db.Numeric(10, 2), nullable=False)
    payer_email = db.Column(db.String(180))
    payment_method_id = db.Column(db.String(40))                     # pix, visa, master...

    # PIX
    qr_code = db.Column(db.Text)
    qr_code_base64 = db.Column(db.Text)
    ticket_url = db.Column(db.Text)

    # follow-up de PIX pendente
    followup_1h_sent = db.Column(db.Boolean, default=False, nullable=False)
    followup_24h_sent = db.Column(db.Boolean, default=False, nullable=False)
    followup_48h_sent = db.Column(db.Boolean, default=False, nullable=False)

    # preenchido quando um pagamento aprovado não pôde virar assinatura (conciliação manual)
    activation_error = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_status_dict(self) -> dict:
        return {"id": self.payment_id, "status": self.status, "status_detail": self.status_detail}
