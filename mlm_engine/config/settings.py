# mlm_engine/config/settings.py
"""
MLM settings value object and engine constants.
"""
from dataclasses import dataclass, replace
from decimal import Decimal

import config
from models import WithdrawalMethod

# Sale commission percentages used for levels without a configured rule
DEFAULT_SALE_PERCENTAGES = {
    1: Decimal("10"),
    2: Decimal("5"),
    3: Decimal("3"),
    4: Decimal("2"),
    5: Decimal("1"),
}

# Hard limits accepted from admins
MAX_LEVELS_LIMIT = 10
MAX_PERCENT = Decimal("100")

# Sponsor codes
SPONSOR_CODE_PREFIX_LENGTH = 3
SPONSOR_CODE_SUFFIX_LENGTH = 5
SPONSOR_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
SPONSOR_CODE_MAX_ATTEMPTS = 10

# Required payout details per withdrawal method
WITHDRAWAL_METHOD_DETAILS = {
    WithdrawalMethod.BANK: ("accountTitle", "accountNumber", "bankName"),
    WithdrawalMethod.EASYPAISA: ("walletNumber",),
    WithdrawalMethod.JAZZCASH: ("walletNumber",),
    WithdrawalMethod.CRYPTO: ("cryptoAddress", "cryptoNetwork"),
}


@dataclass(frozen=True)
class MLMSettings:
    """Immutable settings snapshot passed into every engine operation."""

    isMLMEnabled: bool = True
    maxLevels: int = 5
    minWithdrawal: Decimal = Decimal("500")
    withdrawalFeePercent: Decimal = Decimal("0")
    defaultSignupBonus: Decimal = Decimal("0")
    autoApproveCommissions: bool = False
    autoEnableMLM: bool = True

    @classmethod
    def fromConfig(cls) -> "MLMSettings":
        """Defaults taken from environment configuration."""
        return cls(
            isMLMEnabled=config.MLM_ENABLED,
            maxLevels=config.MLM_MAX_LEVELS,
            minWithdrawal=config.MLM_MIN_WITHDRAWAL,
            withdrawalFeePercent=config.MLM_WITHDRAWAL_FEE_PERCENT,
            defaultSignupBonus=config.MLM_DEFAULT_SIGNUP_BONUS,
            autoApproveCommissions=config.MLM_AUTO_APPROVE,
            autoEnableMLM=config.MLM_AUTO_ENABLE,
        )

    def withChanges(self, **changes) -> "MLMSettings":
        return replace(self, **changes)

    def asDict(self) -> dict:
        return {
            "isMLMEnabled": self.isMLMEnabled,
            "maxLevels": self.maxLevels,
            "minWithdrawal": self.minWithdrawal,
            "withdrawalFeePercent": self.withdrawalFeePercent,
            "defaultSignupBonus": self.defaultSignupBonus,
            "autoApproveCommissions": self.autoApproveCommissions,
            "autoEnableMLM": self.autoEnableMLM,
        }
