# mlm_engine/services/commission_service.py
"""
Commission calculation and posting for sales and sign-ups.

Calculations are pure reads; posting writes the commission row and the
recipient's wallet deltas in one transaction per recipient.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Dict, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import func
import logging

from models import (
    Member, Order, Commission,
    CommissionType, CommissionStatus, COMMISSIONABLE_ORDER_STATUSES
)
from mlm_engine.config.settings import MLMSettings
from mlm_engine.events.event_bus import eventBus, MLMEvents
from mlm_engine.services.hierarchy_service import HierarchyService
from mlm_engine.services.rule_service import CommissionRuleService
from mlm_engine.services.wallet_service import WalletService
from mlm_engine.utils.money import toDecimal, toCents, ZERO
from mlm_engine.utils.pagination import Page, paginate
from mlm_engine.utils.results import OperationResult, ErrorKind, CommissionBatchResult
from mlm_engine.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommissionCalculation:
    memberId: int
    amount: Decimal
    level: int
    commissionType: CommissionType
    percentage: Decimal = ZERO


def _money(value) -> Decimal:
    return toCents(toDecimal(value)) if value is not None else Decimal("0.00")


class CommissionService:
    """Main service for referral commissions."""

    def __init__(self, session: Session):
        self.session = session
        self.hierarchyService = HierarchyService(session)
        self.ruleService = CommissionRuleService(session)
        self.walletService = WalletService(session)

    # region Calculation

    async def calculateOrderCommissions(self, orderId: int, settings: MLMSettings) -> List[CommissionCalculation]:
        """Sale commissions for every active ancestor of the purchaser."""
        if not settings.isMLMEnabled:
            return []

        order = self.session.query(Order).filter_by(orderID=orderId).first()
        if not order:
            logger.warning(f"Order {orderId} not found, no commissions calculated")
            return []

        purchaser = self.session.query(Member).filter_by(memberID=order.memberID).first()
        if not purchaser or not purchaser.isMLMEnabled or not purchaser.uplineID:
            return []

        orderTotal = toDecimal(order.totalAmount)
        if orderTotal is None:
            logger.error(f"Order {orderId} has no usable total: {order.totalAmount!r}")
            return []

        ruleTable = await self.ruleService.getRuleTable(CommissionType.SALE, settings.maxLevels)
        calculations = []

        for level, upline in await self.hierarchyService.getUplineLevels(purchaser.memberID, settings.maxLevels):
            terms = ruleTable.get(level)
            if not terms:
                continue

            amount = self.ruleService.computeAmount(terms, orderTotal)
            if amount is None:
                continue

            calculations.append(CommissionCalculation(
                memberId=upline.memberID,
                amount=amount,
                level=level,
                commissionType=CommissionType.SALE,
                percentage=terms.effectivePercentage
            ))

        return calculations

    async def calculateSignupBonus(
            self,
            newMemberId: int,
            sponsorId: int,
            settings: MLMSettings
    ) -> List[CommissionCalculation]:
        """
        Sign-up bonuses for the sponsor and, when SIGNUP rules exist, the sponsor's upline.
        Without rules the configured default bonus goes to the direct sponsor only.
        """
        if not settings.isMLMEnabled or not sponsorId:
            return []

        sponsor = self.session.query(Member).filter_by(memberID=sponsorId).first()
        if not sponsor or not sponsor.isMLMEnabled or not sponsor.isActive:
            return []

        if not await self.ruleService.getActiveRules(CommissionType.SIGNUP):
            defaultBonus = toDecimal(settings.defaultSignupBonus) or ZERO
            if defaultBonus <= ZERO:
                return []
            return [CommissionCalculation(
                memberId=sponsor.memberID,
                amount=toCents(defaultBonus),
                level=1,
                commissionType=CommissionType.SIGNUP
            )]

        ruleTable = await self.ruleService.getRuleTable(CommissionType.SIGNUP, settings.maxLevels)
        recipients = [(1, sponsor)] + [
            (level + 1, upline)
            for level, upline in await self.hierarchyService.getUplineLevels(sponsorId, settings.maxLevels - 1)
        ]

        calculations = []
        for level, recipient in recipients:
            terms = ruleTable.get(level)
            # Sign-ups have no order total, so only fixed amounts pay
            if not terms or not terms.fixedAmount:
                continue

            amount = self.ruleService.computeAmount(terms, None)
            if amount is None:
                continue

            calculations.append(CommissionCalculation(
                memberId=recipient.memberID,
                amount=amount,
                level=level,
                commissionType=CommissionType.SIGNUP
            ))

        return calculations

    # endregion

    # region Posting

    async def processCommissions(
            self,
            calculations: List[CommissionCalculation],
            settings: MLMSettings,
            orderId: Optional[int] = None,
            sourceMemberId: Optional[int] = None
    ) -> CommissionBatchResult:
        """Post each calculation in its own transaction; failures are collected."""
        result = CommissionBatchResult()
        status = CommissionStatus.APPROVED if settings.autoApproveCommissions else CommissionStatus.PENDING

        for calculation in calculations:
            try:
                commissionId = self._postCommission(calculation, status, orderId, sourceMemberId)
            except (SQLAlchemyError, ValueError) as e:
                self.session.rollback()
                logger.error(f"Failed to create commission for member {calculation.memberId}: {e}")
                result.errors.append(f"Failed to create commission for member {calculation.memberId}: {e}")
                continue

            result.createdCount += 1
            result.commissionIds.append(commissionId)

            logger.info(
                f"Commission {commissionId} created: member {calculation.memberId}, "
                f"{calculation.commissionType.value} L{calculation.level}, amount {calculation.amount}, "
                f"status {status.value}"
            )

            await eventBus.emit(MLMEvents.COMMISSION_CREATED, {
                "commissionId": commissionId,
                "memberId": calculation.memberId,
                "amount": calculation.amount,
                "level": calculation.level,
                "commissionType": calculation.commissionType.value,
                "status": status.value,
                "orderId": orderId,
                "sourceMemberId": sourceMemberId,
            })

        return result

    def _postCommission(
            self,
            calculation: CommissionCalculation,
            status: CommissionStatus,
            orderId: Optional[int],
            sourceMemberId: Optional[int]
    ) -> int:
        amount = toDecimal(calculation.amount)
        if amount is None or amount <= ZERO:
            raise ValueError(f"commission amount must be positive, got {calculation.amount!r}")
        amount = toCents(amount)

        recipient = self.session.query(Member).filter_by(memberID=calculation.memberId).first()
        if not recipient:
            raise ValueError(f"member {calculation.memberId} not found")

        self.walletService.ensureWallet(calculation.memberId)

        if calculation.percentage:
            description = (
                f"{calculation.commissionType.value} commission "
                f"(Level {calculation.level}, {calculation.percentage}%)"
            )
        else:
            description = f"{calculation.commissionType.value} commission (Level {calculation.level})"

        approved = status == CommissionStatus.APPROVED
        commission = Commission(
            memberID=calculation.memberId,
            orderID=orderId,
            sourceMemberID=sourceMemberId,
            amount=amount,
            commissionType=calculation.commissionType.value,
            level=calculation.level,
            status=status.value,
            description=description,
            processedAt=timeMachine.now if approved else None,
            createdAt=timeMachine.now
        )
        self.session.add(commission)

        if approved:
            self.walletService.adjustBalances(calculation.memberId, balance=amount, totalEarned=amount)
        else:
            self.walletService.adjustBalances(calculation.memberId, pending=amount, totalEarned=amount)

        self.session.commit()
        return commission.commissionID

    # endregion

    # region Lifecycle

    def _claimPending(self, commissionId: int, newStatus: CommissionStatus, **values) -> OperationResult:
        """Compare-and-set PENDING -> newStatus inside the current transaction."""
        commission = self.session.query(Commission).filter_by(commissionID=commissionId).first()
        if not commission:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "commission_not_found")

        if commission.status != CommissionStatus.PENDING.value:
            return OperationResult.fail(
                ErrorKind.STATE_CONFLICT, "commission_not_pending", f"status is {commission.status}"
            )

        changes = {Commission.status: newStatus.value}
        for fieldName, value in values.items():
            changes[getattr(Commission, fieldName)] = value

        updated = self.session.query(Commission).filter(
            Commission.commissionID == commissionId,
            Commission.status == CommissionStatus.PENDING.value
        ).update(changes, synchronize_session=False)

        if updated != 1:
            self.session.rollback()
            logger.warning(f"Commission {commissionId} changed concurrently, {newStatus.value} refused")
            return OperationResult.fail(ErrorKind.STATE_CONFLICT, "commission_not_pending")

        return OperationResult.ok(commission)

    async def approveCommission(self, commissionId: int) -> OperationResult:
        """PENDING -> APPROVED, moving the amount from pending to balance."""
        try:
            result = self._claimPending(commissionId, CommissionStatus.APPROVED, processedAt=timeMachine.now)
            if not result.success:
                return result

            commission = result.value
            memberId = commission.memberID
            amount = toDecimal(commission.amount)

            if not self.walletService.adjustBalances(memberId, balance=amount, pending=-amount):
                self.session.rollback()
                logger.error(f"Wallet of member {memberId} cannot release {amount} for commission {commissionId}")
                return OperationResult.fail(ErrorKind.INTEGRITY_VIOLATION, "wallet_out_of_sync")

            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        logger.info(f"Commission {commissionId} approved: {amount} released to member {memberId}")
        await eventBus.emit(MLMEvents.COMMISSION_APPROVED, {
            "commissionId": commissionId,
            "memberId": memberId,
            "amount": amount,
        })
        return OperationResult.ok()

    async def cancelCommission(self, commissionId: int, reason: Optional[str] = None) -> OperationResult:
        """PENDING -> CANCELLED, removing the amount from pending and totalEarned."""
        try:
            commission = self.session.query(Commission).filter_by(commissionID=commissionId).first()
            description = commission.description if commission else None
            if reason:
                description = f"{description} - Cancelled: {reason}" if description else f"Cancelled: {reason}"

            result = self._claimPending(
                commissionId,
                CommissionStatus.CANCELLED,
                processedAt=timeMachine.now,
                description=description
            )
            if not result.success:
                return result

            memberId = commission.memberID
            amount = toDecimal(commission.amount)

            if not self.walletService.adjustBalances(memberId, pending=-amount, totalEarned=-amount):
                self.session.rollback()
                logger.error(f"Wallet of member {memberId} cannot drop {amount} for commission {commissionId}")
                return OperationResult.fail(ErrorKind.INTEGRITY_VIOLATION, "wallet_out_of_sync")

            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        logger.info(f"Commission {commissionId} cancelled for member {memberId}: {reason}")
        await eventBus.emit(MLMEvents.COMMISSION_CANCELLED, {
            "commissionId": commissionId,
            "memberId": memberId,
            "amount": amount,
            "reason": reason,
        })
        return OperationResult.ok()

    # endregion

    # region Entry points

    async def processOrderCommissions(self, orderId: int, settings: MLMSettings) -> OperationResult:
        """
        Hook for order status changes. Pays once per order, on the first
        commissionable status; later transitions find the existing commissions.
        """
        order = self.session.query(Order).filter_by(orderID=orderId).first()
        if not order:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "order_not_found")

        if order.status not in COMMISSIONABLE_ORDER_STATUSES:
            logger.debug(f"Order {orderId} in status {order.status}, commissions not due")
            return OperationResult.ok(CommissionBatchResult())

        alreadyPaid = self.session.query(Commission.commissionID).filter(
            Commission.orderID == orderId,
            Commission.commissionType == CommissionType.SALE.value
        ).first()
        if alreadyPaid:
            logger.info(f"Sale commissions for order {orderId} already recorded, skipping")
            return OperationResult.ok(CommissionBatchResult())

        calculations = await self.calculateOrderCommissions(orderId, settings)
        batch = await self.processCommissions(calculations, settings, orderId=orderId, sourceMemberId=order.memberID)

        logger.info(f"Order {orderId}: {batch.createdCount} commissions created, {len(batch.errors)} errors")
        return OperationResult.ok(batch)

    async def processSignupBonus(self, newMemberId: int, sponsorId: int, settings: MLMSettings) -> OperationResult:
        """Pay sign-up bonuses once per new member."""
        alreadyPaid = self.session.query(Commission.commissionID).filter(
            Commission.sourceMemberID == newMemberId,
            Commission.commissionType == CommissionType.SIGNUP.value
        ).first()
        if alreadyPaid:
            logger.info(f"Sign-up bonus for member {newMemberId} already recorded, skipping")
            return OperationResult.ok(CommissionBatchResult())

        calculations = await self.calculateSignupBonus(newMemberId, sponsorId, settings)
        batch = await self.processCommissions(calculations, settings, sourceMemberId=newMemberId)
        return OperationResult.ok(batch)

    # endregion

    # region Reports

    async def listCommissions(
            self,
            page: int = 1,
            pageSize: int = 20,
            status: Optional[str] = None,
            commissionType: Optional[str] = None,
            memberId: Optional[int] = None
    ) -> Page:
        """Newest first. Stats cover the member/type filter across all statuses."""
        filters = []
        if commissionType:
            filters.append(Commission.commissionType == commissionType)
        if memberId:
            filters.append(Commission.memberID == memberId)

        stats = {
            "total": Decimal("0.00"),
            "pending": Decimal("0.00"),
            "approved": Decimal("0.00"),
            "cancelled": Decimal("0.00"),
            "pendingCount": 0,
        }
        grouped = self.session.query(
            Commission.status, func.sum(Commission.amount), func.count(Commission.commissionID)
        ).filter(*filters).group_by(Commission.status).all()

        for rowStatus, amount, count in grouped:
            amount = _money(amount)
            stats["total"] += amount
            key = rowStatus.lower()
            if key in stats:
                stats[key] = amount
            if rowStatus == CommissionStatus.PENDING.value:
                stats["pendingCount"] = count

        query = self.session.query(Commission).filter(*filters)
        if status:
            query = query.filter(Commission.status == status)
        query = query.order_by(Commission.createdAt.desc(), Commission.commissionID.desc())

        return paginate(query, page, pageSize, stats)

    async def getCommissionSummary(self, memberId: int) -> Dict:
        """Member totals by status, by type and by level."""
        byStatus = {
            rowStatus: _money(amount)
            for rowStatus, amount in self.session.query(
                Commission.status, func.sum(Commission.amount)
            ).filter(Commission.memberID == memberId).group_by(Commission.status).all()
        }

        notCancelled = (Commission.memberID == memberId, Commission.status != CommissionStatus.CANCELLED.value)

        byType = [
            {"commissionType": commissionType, "amount": _money(amount), "count": count}
            for commissionType, amount, count in self.session.query(
                Commission.commissionType, func.sum(Commission.amount), func.count(Commission.commissionID)
            ).filter(*notCancelled).group_by(Commission.commissionType).order_by(Commission.commissionType).all()
        ]

        byLevel = [
            {"level": level, "amount": _money(amount), "count": count}
            for level, amount, count in self.session.query(
                Commission.level, func.sum(Commission.amount), func.count(Commission.commissionID)
            ).filter(*notCancelled).group_by(Commission.level).order_by(Commission.level).all()
        ]

        pending = byStatus.get(CommissionStatus.PENDING.value, Decimal("0.00"))
        approved = byStatus.get(CommissionStatus.APPROVED.value, Decimal("0.00"))

        return {
            "totalEarned": pending + approved,
            "pending": pending,
            "approved": approved,
            "cancelled": byStatus.get(CommissionStatus.CANCELLED.value, Decimal("0.00")),
            "byType": byType,
            "byLevel": byLevel,
        }

    # endregion
