# models/member.py
"""
Member model - a storefront customer taking part in the referral tree.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from models.base import Base


class Member(Base):
    __tablename__ = 'members'

    # Primary identification
    memberID = Column(Integer, primary_key=True, autoincrement=True)
    createdAt = Column(DateTime, default=lambda: datetime.now(timezone.utc), index=True)

    name = Column(String, nullable=True)
    email = Column(String, nullable=True)

    # Referral tree
    sponsorCode = Column(String(16), unique=True, nullable=True)
    uplineID = Column(Integer, ForeignKey('members.memberID'), nullable=True, index=True)
    hierarchyPath = Column(JSON(none_as_null=True), nullable=True)  # [rootID, ..., directSponsorID]
    mlmLevel = Column(Integer, default=1)

    # Flags
    isMLMEnabled = Column(Boolean, default=True, index=True)
    isActive = Column(Boolean, default=True, index=True)

    # Relationships
    upline = relationship('Member', remote_side=[memberID], backref='directDownline')

    @property
    def path(self):
        """Ancestor ids as a fresh list, root first."""
        return [int(ancestorId) for ancestorId in (self.hierarchyPath or [])]

    def __repr__(self):
        return f"<Member(memberID={self.memberID}, code={self.sponsorCode}, upline={self.uplineID})>"
