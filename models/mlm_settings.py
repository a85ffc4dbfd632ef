# models/mlm_settings.py
"""
MLMSettingsRecord model - the single admin-editable settings row.
"""
from sqlalchemy import Column, Integer, Boolean
from models.base import Base, AuditMixin, ExactDecimal


class MLMSettingsRecord(Base, AuditMixin):
    __tablename__ = 'mlm_settings'

    settingsID = Column(Integer, primary_key=True, autoincrement=True)

    isMLMEnabled = Column(Boolean, nullable=True)
    maxLevels = Column(Integer, nullable=True)
    minWithdrawal = Column(ExactDecimal(), nullable=True)
    withdrawalFeePercent = Column(ExactDecimal(), nullable=True)
    defaultSignupBonus = Column(ExactDecimal(), nullable=True)
    autoApproveCommissions = Column(Boolean, nullable=True)
    autoEnableMLM = Column(Boolean, nullable=True)

    def __repr__(self):
        return f"<MLMSettingsRecord(enabled={self.isMLMEnabled}, maxLevels={self.maxLevels})>"
