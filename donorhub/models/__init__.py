from __future__ import annotations

from donorhub.extensions import db

from .donation import ALLOWED_TRANSITIONS, Donation, DonationStatus, Frequency
from .donor import Donor
from .metrics import KpiSnapshot, MetricsRollup
from .mixins import TimestampMixin
from .referral import Referral
from .webhook_log import WebhookLog

__all__ = [
    "db",
    "ALLOWED_TRANSITIONS",
    "Donation",
    "DonationStatus",
    "Donor",
    "Frequency",
    "KpiSnapshot",
    "MetricsRollup",
    "Referral",
    "TimestampMixin",
    "WebhookLog",
]
