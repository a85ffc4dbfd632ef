# models/commission.py
"""
Commission model - one ledger entry per recipient per triggering event.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin, ExactDecimal


class Commission(Base, AuditMixin):
    __tablename__ = 'commissions'

    commissionID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    memberID = Column(Integer, ForeignKey('members.memberID'), nullable=False, index=True)  # Кто получает
    orderID = Column(Integer, ForeignKey('orders.orderID'), nullable=True, index=True)  # За какой заказ
    sourceMemberID = Column(Integer, ForeignKey('members.memberID'), nullable=True)  # От кого

    amount = Column(ExactDecimal(), nullable=False)
    commissionType = Column(String, nullable=False)  # SALE, SIGNUP, LEVEL_UP, BONUS
    level = Column(Integer, nullable=False)

    status = Column(String, default="PENDING", index=True)  # PENDING, APPROVED, CANCELLED
    description = Column(Text, nullable=True)
    processedAt = Column(DateTime, nullable=True)

    # Relationships
    member = relationship('Member', foreign_keys=[memberID], backref='commissions')
    sourceMember = relationship('Member', foreign_keys=[sourceMemberID])
    order = relationship('Order', backref='commissions')

    def __repr__(self):
        return f"<Commission(commissionID={self.commissionID}, member={self.memberID}, amount={self.amount})>"
