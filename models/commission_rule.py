# models/commission_rule.py
"""
CommissionRule model - payout formula per (type, level).
"""
from sqlalchemy import Column, Integer, String, Boolean
from models.base import Base, AuditMixin, ExactDecimal


class CommissionRule(Base, AuditMixin):
    __tablename__ = 'commission_rules'

    ruleID = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)

    ruleType = Column(String, nullable=False, index=True)  # SALE, SIGNUP, LEVEL_UP, BONUS
    level = Column(Integer, nullable=False)

    # Formula: fixedAmount wins over percentage
    percentage = Column(ExactDecimal(), nullable=True)  # 10.00 = 10%
    fixedAmount = Column(ExactDecimal(), nullable=True)

    # Bounds
    minOrderValue = Column(ExactDecimal(), nullable=True)
    maxCommission = Column(ExactDecimal(), nullable=True)

    priority = Column(Integer, default=0)
    isActive = Column(Boolean, default=True)

    def __repr__(self):
        return f"<CommissionRule(ruleID={self.ruleID}, type={self.ruleType}, level={self.level})>"
