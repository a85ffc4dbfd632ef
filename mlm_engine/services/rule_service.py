# mlm_engine/services/rule_service.py
"""
Commission rule storage, selection and amount computation.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Dict, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

from models import CommissionRule, CommissionType
from mlm_engine.config.settings import DEFAULT_SALE_PERCENTAGES, MAX_LEVELS_LIMIT, MAX_PERCENT
from mlm_engine.utils.money import toDecimal, toCents, percentOf, ZERO
from mlm_engine.utils.results import OperationResult, ErrorKind

logger = logging.getLogger(__name__)

MONEY_FIELDS = ("fixedAmount", "minOrderValue", "maxCommission")
EDITABLE_FIELDS = ("name", "percentage", "fixedAmount", "minOrderValue", "maxCommission", "isActive", "priority")


@dataclass(frozen=True)
class RuleTerms:
    """Payout terms applied at one level; ruleId is None for built-in defaults."""

    level: int
    percentage: Optional[Decimal] = None
    fixedAmount: Optional[Decimal] = None
    minOrderValue: Optional[Decimal] = None
    maxCommission: Optional[Decimal] = None
    ruleId: Optional[int] = None

    @classmethod
    def fromRule(cls, rule: CommissionRule) -> "RuleTerms":
        return cls(
            level=rule.level,
            percentage=toDecimal(rule.percentage),
            fixedAmount=toDecimal(rule.fixedAmount),
            minOrderValue=toDecimal(rule.minOrderValue),
            maxCommission=toDecimal(rule.maxCommission),
            ruleId=rule.ruleID,
        )

    @property
    def effectivePercentage(self) -> Decimal:
        """Percentage reported on the commission; zero when a fixed amount applies."""
        if self.fixedAmount:
            return ZERO
        return self.percentage or ZERO


class CommissionRuleService:
    """Service for commission rules."""

    def __init__(self, session: Session):
        self.session = session

    async def getActiveRules(self, ruleType: CommissionType) -> List[CommissionRule]:
        return self.session.query(CommissionRule).filter(
            CommissionRule.ruleType == ruleType.value,
            CommissionRule.isActive == True
        ).order_by(
            CommissionRule.priority.desc(),
            CommissionRule.level.asc(),
            CommissionRule.ruleID.asc()
        ).all()

    async def selectRule(self, ruleType: CommissionType, level: int) -> Optional[CommissionRule]:
        """Highest-priority active rule for (type, level); oldest rule wins a tie."""
        return self.session.query(CommissionRule).filter(
            CommissionRule.ruleType == ruleType.value,
            CommissionRule.level == level,
            CommissionRule.isActive == True
        ).order_by(
            CommissionRule.priority.desc(),
            CommissionRule.ruleID.asc()
        ).first()

    async def getRuleTable(self, ruleType: CommissionType, maxLevels: int) -> Dict[int, RuleTerms]:
        """
        Applicable terms per level 1..maxLevels.
        Sale levels without a configured rule fall back to DEFAULT_SALE_PERCENTAGES.
        """
        table: Dict[int, RuleTerms] = {}

        # Rules come ordered by priority, the first one seen per level wins
        for rule in await self.getActiveRules(ruleType):
            if 1 <= rule.level <= maxLevels and rule.level not in table:
                table[rule.level] = RuleTerms.fromRule(rule)

        if ruleType == CommissionType.SALE:
            for level, percentage in DEFAULT_SALE_PERCENTAGES.items():
                if level <= maxLevels and level not in table:
                    table[level] = RuleTerms(level=level, percentage=percentage)

        return dict(sorted(table.items()))

    @staticmethod
    def computeAmount(terms: RuleTerms, orderTotal: Optional[Decimal]) -> Optional[Decimal]:
        """
        Commission for one level, or None when the rule does not pay.
        Without an order total only fixed amounts apply.
        """
        if terms.minOrderValue is not None and orderTotal is not None and orderTotal < terms.minOrderValue:
            return None

        if terms.fixedAmount:
            amount = terms.fixedAmount
        elif terms.percentage is not None and orderTotal is not None:
            amount = percentOf(orderTotal, terms.percentage)
        else:
            return None

        if terms.maxCommission is not None and amount > terms.maxCommission:
            amount = terms.maxCommission

        amount = toCents(amount)
        if amount <= ZERO:
            return None

        return amount

    # region Administration

    async def listRules(self) -> Dict[str, List[CommissionRule]]:
        """All rules grouped by type."""
        rules = self.session.query(CommissionRule).order_by(
            CommissionRule.ruleType.asc(),
            CommissionRule.level.asc(),
            CommissionRule.priority.desc()
        ).all()

        grouped: Dict[str, List[CommissionRule]] = {}
        for rule in rules:
            grouped.setdefault(rule.ruleType, []).append(rule)
        return grouped

    async def createRule(
            self,
            name: str,
            ruleType: str,
            level: int,
            percentage=None,
            fixedAmount=None,
            minOrderValue=None,
            maxCommission=None,
            isActive: bool = True,
            priority: int = 0
    ) -> OperationResult:
        values = {
            "name": name,
            "percentage": percentage,
            "fixedAmount": fixedAmount,
            "minOrderValue": minOrderValue,
            "maxCommission": maxCommission,
            "isActive": isActive,
            "priority": priority,
        }

        try:
            resolvedType = CommissionType(ruleType.value if isinstance(ruleType, CommissionType) else ruleType)
        except ValueError:
            return OperationResult.fail(ErrorKind.VALIDATION, "invalid_rule", f"unknown type {ruleType}")

        if not isinstance(level, int) or isinstance(level, bool) or not 1 <= level <= MAX_LEVELS_LIMIT:
            return OperationResult.fail(ErrorKind.VALIDATION, "invalid_rule", f"level must be 1..{MAX_LEVELS_LIMIT}")

        if not name:
            return OperationResult.fail(ErrorKind.VALIDATION, "invalid_rule", "name is required")

        cleaned, error = self._cleanValues(values)
        if error:
            return OperationResult.fail(ErrorKind.VALIDATION, "invalid_rule", error)

        if cleaned["percentage"] is None and cleaned["fixedAmount"] is None:
            return OperationResult.fail(ErrorKind.VALIDATION, "invalid_rule", "percentage or fixed amount required")

        rule = CommissionRule(ruleType=resolvedType.value, level=level, **cleaned)
        try:
            self.session.add(rule)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        logger.info(f"Commission rule {rule.ruleID} created: {resolvedType.value} level {level}")
        return OperationResult.ok(rule)

    async def updateRule(self, ruleId: int, **changes) -> OperationResult:
        rule = self.session.query(CommissionRule).filter_by(ruleID=ruleId).first()
        if not rule:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "rule_not_found")

        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            return OperationResult.fail(
                ErrorKind.VALIDATION, "invalid_rule", f"fields not editable: {', '.join(sorted(unknown))}"
            )

        cleaned, error = self._cleanValues(changes)
        if error:
            return OperationResult.fail(ErrorKind.VALIDATION, "invalid_rule", error)

        if "name" in cleaned and not cleaned["name"]:
            return OperationResult.fail(ErrorKind.VALIDATION, "invalid_rule", "name is required")

        for fieldName, value in cleaned.items():
            setattr(rule, fieldName, value)

        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        logger.info(f"Commission rule {ruleId} updated: {sorted(cleaned)}")
        return OperationResult.ok(rule)

    async def deleteRule(self, ruleId: int) -> OperationResult:
        rule = self.session.query(CommissionRule).filter_by(ruleID=ruleId).first()
        if not rule:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "rule_not_found")

        try:
            self.session.delete(rule)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        logger.info(f"Commission rule {ruleId} deleted")
        return OperationResult.ok()

    @staticmethod
    def _cleanValues(values: Dict):
        """Convert and validate editable rule fields; returns (cleaned, error)."""
        cleaned = {}

        for fieldName, value in values.items():
            if fieldName == "percentage":
                if value is None:
                    cleaned[fieldName] = None
                    continue
                percentage = toDecimal(value)
                if percentage is None or percentage < ZERO or percentage > MAX_PERCENT:
                    return None, "percentage must be between 0 and 100"
                cleaned[fieldName] = percentage

            elif fieldName in MONEY_FIELDS:
                # Zero or empty clears the bound
                if value is None or value == "":
                    cleaned[fieldName] = None
                    continue
                amount = toDecimal(value)
                if amount is None or amount < ZERO:
                    return None, f"{fieldName} must be a non-negative amount"
                cleaned[fieldName] = toCents(amount) if amount > ZERO else None

            elif fieldName == "priority":
                if not isinstance(value, int) or isinstance(value, bool):
                    return None, "priority must be an integer"
                cleaned[fieldName] = value

            elif fieldName == "isActive":
                cleaned[fieldName] = bool(value)

            else:
                cleaned[fieldName] = value

        return cleaned, None

    # endregion
