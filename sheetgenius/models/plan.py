"""
sheetgenius/models/plan.py

Plan tiers a profile can hold.
"""

from enum import Enum


class Plan(str, Enum):
    """
    Capability tier governing the generation quota.

    Plans do NOT include pricing; the payment processor owns prices and
    each paid tier is identified there by a configured price id.
    """
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
