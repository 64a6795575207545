# xlata_app/models/plan.py
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from ..extensions import db

class SubscriptionPlan(db.Model):
    """Catálogo de planos (somente leitura para a ativação)."""
    __tablename__ = "subscription_plans"
    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(db.String(60), nullable=False, index=True)     # ex.: "plano_mensal_2024"
    plan_type = db.Column(db.String(40), nullable=False, index=True)   # ex.: "monthly"
    name = db.Column(db.String(120), nullable=False)
    period = db.Column(db.String(60))                                  # ex.: "30 dias", "1 ano"
    price = db.Column(db.Numeric(10, 2), default=0)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class UserSubscription(db.Model):
    """Período de assinatura. Nunca é estendido in-place: uma nova linha substitui a ativa."""
    __tablename__ = "user_subscriptions"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), index=True, nullable=False)
    plan_type = db.Column(db.String(40), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    activated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    payment_reference = db.Column(db.String(64), nullable=True)
    payment_method = db.Column(db.String(40), default="mercadopago")

    __table_args__ = (
        db.UniqueConstraint("payment_reference", name="uq_user_subscriptions_payment_reference"),
        # no máximo uma linha ativa por usuário
        db.Index(
            "uq_user_subscriptions_one_active",
            "user_id",
            unique=True,
            postgresql_where=db.text("is_active"),
            sqlite_where=db.text("is_active = 1"),
        ),
        db.CheckConstraint("expires_at > activated_at", name="ck_user_subscriptions_period"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "plan_type": self.plan_type,
            "is_active": self.is_active,
            "activated_at": self.activated_at.isoformat() if self.activated_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "payment_reference": self.payment_reference,
        }


DEFAULT_PLANS = (
    dict(plan_id="trial_7", plan_type="trial", name="Teste grátis", period="7 dias", price=Decimal("0")),
    dict(plan_id="mensal", plan_type="monthly", name="Mensal", period="30 dias", price=Decimal("49.90")),
    dict(plan_id="trimestral", plan_type="quarterly", name="Trimestral", period="90 dias", price=Decimal("134.90")),
    dict(plan_id="semestral", plan_type="semi_annual", name="Semestral", period="180 dias", price=Decimal("254.90")),
    dict(plan_id="anual", plan_type="annual", name="Anual", period="1 ano", price=Decimal("479.90")),
    dict(plan_id="trienal", plan_type="triennial", name="Trienal", period="3 anos", price=Decimal("1299.90")),
)

def seed_default_plans() -> int:
    created = 0
    for data in DEFAULT_PLANS:
        if SubscriptionPlan.query.filter_by(plan_id=data["plan_id"]).first():
            continue
        db.session.add(SubscriptionPlan(is_active=True, **data))
        created += 1
    db.session.commit()
    return created
