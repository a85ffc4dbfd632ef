# models/__init__.py
"""
Database models for the referral engine.
Import all models here for easy access.
"""

# Base and mixins
from models.base import Base, AuditMixin, ExactDecimal

# Enums
from models.enums import (
    CommissionType, CommissionStatus, WithdrawalStatus, WithdrawalMethod, OrderStatus,
    COMMISSIONABLE_ORDER_STATUSES, COMPLETED_ORDER_STATUSES
)

# Core models
from models.member import Member
from models.order import Order

# Ledger models
from models.commission_rule import CommissionRule
from models.commission import Commission
from models.wallet import Wallet
from models.withdrawal import Withdrawal
from models.mlm_settings import MLMSettingsRecord

__all__ = [
    # Base
    'Base',
    'AuditMixin',
    'ExactDecimal',

    # Enums
    'CommissionType',
    'CommissionStatus',
    'WithdrawalStatus',
    'WithdrawalMethod',
    'OrderStatus',
    'COMMISSIONABLE_ORDER_STATUSES',
    'COMPLETED_ORDER_STATUSES',

    # Core
    'Member',
    'Order',

    # Ledger
    'CommissionRule',
    'Commission',
    'Wallet',
    'Withdrawal',
    'MLMSettingsRecord',
]
