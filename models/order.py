# models/order.py
"""
Order model - read-only view of storefront orders used as commission source.
"""
from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin, ExactDecimal


class Order(Base, AuditMixin):
    __tablename__ = 'orders'

    orderID = Column(Integer, primary_key=True, autoincrement=True)
    memberID = Column(Integer, ForeignKey('members.memberID'), nullable=False, index=True)

    totalAmount = Column(ExactDecimal(), nullable=False)
    status = Column(String, default="PENDING", index=True)  # PENDING, CONFIRMED, SHIPPED, DELIVERED, CANCELLED

    member = relationship('Member', backref='orders')

    def __repr__(self):
        return f"<Order(orderID={self.orderID}, member={self.memberID}, total={self.totalAmount})>"
