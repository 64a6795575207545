# xlata_app/models/__init__.py
# -*- coding: utf-8 -*-
from .user import User
from .plan import SubscriptionPlan, UserSubscription
from .payment import MercadoPagoPayment
from .setting import Setting


__all__ = [
    "User",
    "SubscriptionPlan",
    "UserSubscription",
    "MercadoPagoPayment",
    "Setting",
]
