from __future__ import annotations

from giving.extensions import db
from giving.models.beneficiary import Beneficiary
from giving.models.donation import Donation, DonationStatus, PaymentMethod
from giving.models.fund import Fund, FundStatus, FundType
from giving.models.notification import Notification

__all__ = [
    "db",
    "Beneficiary",
    "Donation",
    "DonationStatus",
    "PaymentMethod",
    "Fund",
    "FundStatus",
    "FundType",
    "Notification",
]
