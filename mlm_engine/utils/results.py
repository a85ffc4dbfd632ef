# mlm_engine/utils/results.py
"""
Explicit success/error results returned by public engine operations.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STATE_CONFLICT = "state_conflict"
    INTEGRITY_VIOLATION = "integrity_violation"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    DISABLED = "disabled"


# Human-readable texts for member and admin screens
USER_MESSAGES = {
    "invalid_amount": "Invalid withdrawal amount",
    "below_minimum": "Amount is below the minimum withdrawal",
    "insufficient_balance": "Insufficient balance",
    "invalid_method": "Unsupported withdrawal method",
    "missing_method_details": "Payout details are incomplete",
    "sponsor_code_required": "Sponsor code is required",
    "invalid_sponsor_code_format": "Invalid sponsor code",
    "sponsor_not_found": "Invalid sponsor code",
    "sponsor_inactive": "Sponsor account is inactive",
    "sponsor_mlm_disabled": "Sponsor is not part of the MLM program",
    "sponsor_code_missing": "Sponsor code not found. Please contact support.",
    "member_not_found": "Member not found",
    "mlm_disabled": "MLM is not enabled for this account",
    "circular_reference": "This sponsor would create a circular reference",
    "commission_not_found": "Commission not found",
    "commission_not_pending": "Commission is not pending",
    "wallet_out_of_sync": "Wallet does not match the commission ledger",
    "withdrawal_not_found": "Withdrawal not found",
    "withdrawal_not_pending": "Withdrawal is not pending",
    "withdrawal_not_payable": "Withdrawal cannot be marked as paid",
    "withdrawal_not_rejectable": "Withdrawal cannot be rejected",
    "order_not_found": "Order not found",
    "rule_not_found": "Commission rule not found",
    "invalid_rule": "Invalid commission rule",
    "invalid_settings": "Invalid MLM settings",
}

KIND_MESSAGES = {
    ErrorKind.VALIDATION: "Invalid request",
    ErrorKind.NOT_FOUND: "Not found",
    ErrorKind.STATE_CONFLICT: "Action is not allowed in the current state",
    ErrorKind.INTEGRITY_VIOLATION: "Request would corrupt referral data",
    ErrorKind.INSUFFICIENT_FUNDS: "Insufficient balance",
    ErrorKind.DISABLED: "MLM is disabled",
}


@dataclass
class OperationResult:
    """Outcome of a single engine operation."""

    success: bool
    value: Any = None
    error: Optional[ErrorKind] = None
    code: Optional[str] = None
    detail: Optional[str] = None

    @classmethod
    def ok(cls, value: Any = None) -> "OperationResult":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: ErrorKind, code: str, detail: Optional[str] = None) -> "OperationResult":
        return cls(success=False, error=error, code=code, detail=detail)

    @property
    def userMessage(self) -> Optional[str]:
        """Message safe to show to members; never includes storage details."""
        if self.success:
            return None
        return USER_MESSAGES.get(self.code) or KIND_MESSAGES.get(self.error)

    def __bool__(self):
        return self.success


@dataclass
class CommissionBatchResult:
    """Outcome of posting several commission calculations."""

    createdCount: int = 0
    commissionIds: List[int] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def asDict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "commissionsCreated": self.createdCount,
            "commissionIds": list(self.commissionIds),
            "errors": list(self.errors),
        }
