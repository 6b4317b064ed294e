"""
Account roles enumeration.

Defines the role types for the credit accounting core.
"""

import enum


class AccountRole(str, enum.Enum):
    """
    Account role enumeration.

    Roles:
        ADMIN: Operator access (manual adjustments, reconciliation, payouts)
        USER: Regular customer account (default role)
    """
    ADMIN = "ADMIN"
    USER = "USER"
