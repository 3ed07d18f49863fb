"""CJMS attribution store.

Persists to SQLite:
- aic / aic_archive: attribution cookies, live and consumed
- subscriptions: conversions awaiting report and verification
- refunds: reversals awaiting a correction file
"""
from .aic import AICModel, AttributionCookie
from .cookies import EMPTY_CJ_ID, CookieMinter
from .refunds import Refund, RefundModel
from .schema import connect, init_database
from .status import RefundStatus, StatusBlock, SubscriptionStatus, advance
from .subscriptions import Subscription, SubscriptionModel

__all__ = [
    "AICModel",
    "AttributionCookie",
    "CookieMinter",
    "EMPTY_CJ_ID",
    "Refund",
    "RefundModel",
    "RefundStatus",
    "StatusBlock",
    "Subscription",
    "SubscriptionModel",
    "SubscriptionStatus",
    "advance",
    "connect",
    "init_database",
]
