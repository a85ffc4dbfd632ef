# models/wallet.py
"""
Wallet model - per-member commission ledger totals.
"""
from sqlalchemy import Column, Integer, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship, backref
from models.base import Base, AuditMixin, ExactDecimal


class Wallet(Base, AuditMixin):
    __tablename__ = 'wallets'
    __table_args__ = (
        CheckConstraint('balance >= 0', name='ck_wallet_balance_non_negative'),
        CheckConstraint('pending >= 0', name='ck_wallet_pending_non_negative'),
    )

    walletID = Column(Integer, primary_key=True, autoincrement=True)
    memberID = Column(Integer, ForeignKey('members.memberID'), unique=True, nullable=False)

    balance = Column(ExactDecimal(), default=0, nullable=False)  # Доступно к выводу
    pending = Column(ExactDecimal(), default=0, nullable=False)  # Ожидает подтверждения
    totalEarned = Column(ExactDecimal(), default=0, nullable=False)

    member = relationship('Member', backref=backref('wallet', uselist=False))

    def __repr__(self):
        return f"<Wallet(member={self.memberID}, balance={self.balance}, pending={self.pending})>"
