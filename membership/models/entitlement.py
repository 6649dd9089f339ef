"""
membership/models/entitlement.py

Entitlement record for the free/pro membership tiers.

One record exists per user once any payment event has been processed for
them. A missing record reads as the free tier.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class Tier(str, Enum):
    FREE = "free"
    PRO = "pro"


class EntitlementRecord(BaseModel):
    """
    Current entitlement of a single user.

    Fields:
    - user_id: stable identity of the end user (primary key)
    - tier: free or pro
    - stripe_customer_id: billing customer, set by the first completed checkout
    - stripe_subscription_id: recurring agreement that grants pro
    - current_period_end: when the paid period expires
    - updated_at: last write
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    tier: Tier = Tier.FREE
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    updated_at: Optional[datetime] = None
