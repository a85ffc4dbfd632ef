# models/withdrawal.py
"""
Withdrawal model - payout requests against wallet balance.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin, ExactDecimal


class Withdrawal(Base, AuditMixin):
    __tablename__ = 'withdrawals'

    withdrawalID = Column(Integer, primary_key=True, autoincrement=True)
    memberID = Column(Integer, ForeignKey('members.memberID'), nullable=False, index=True)

    amount = Column(ExactDecimal(), nullable=False)  # Held from balance at request time
    fee = Column(ExactDecimal(), nullable=False, default=0)
    netAmount = Column(ExactDecimal(), nullable=False)

    method = Column(String, nullable=False)  # BANK, EASYPAISA, JAZZCASH, CRYPTO
    details = Column(JSON, nullable=True)

    status = Column(String, default="PENDING", index=True)  # PENDING, APPROVED, PAID, REJECTED
    processedAt = Column(DateTime, nullable=True)
    processedBy = Column(String, nullable=True)
    notes = Column(String, nullable=True)

    member = relationship('Member', backref='withdrawals')

    def __repr__(self):
        return f"<Withdrawal(withdrawalID={self.withdrawalID}, amount={self.amount}, status={self.status})>"
