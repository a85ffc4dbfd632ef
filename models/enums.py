# models/enums.py
"""
Status and type enums stored as plain strings in the ledger tables.
"""
from enum import Enum


class CommissionType(Enum):
    SALE = "SALE"
    SIGNUP = "SIGNUP"
    LEVEL_UP = "LEVEL_UP"
    BONUS = "BONUS"


class CommissionStatus(Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    CANCELLED = "CANCELLED"


class WithdrawalStatus(Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    REJECTED = "REJECTED"


class WithdrawalMethod(Enum):
    BANK = "BANK"
    EASYPAISA = "EASYPAISA"
    JAZZCASH = "JAZZCASH"
    CRYPTO = "CRYPTO"


class OrderStatus(Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# Orders in these states generate sale commissions
COMMISSIONABLE_ORDER_STATUSES = (
    OrderStatus.CONFIRMED.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
)

# Orders in these states count towards a member's lifetime sales
COMPLETED_ORDER_STATUSES = (
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
)
