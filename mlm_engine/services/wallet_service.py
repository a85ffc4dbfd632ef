# mlm_engine/services/wallet_service.py
"""
Wallet ledger and withdrawal lifecycle.

Balances move only through relative SQL updates guarded against going negative,
and withdrawal status changes are compare-and-set on the current status.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy import func
import logging

from models import Member, Wallet, Withdrawal, WithdrawalStatus, WithdrawalMethod
from mlm_engine.config.settings import MLMSettings, WITHDRAWAL_METHOD_DETAILS
from mlm_engine.events.event_bus import eventBus, MLMEvents
from mlm_engine.utils.money import toDecimal, toCents, percentOf, ZERO
from mlm_engine.utils.pagination import Page, paginate
from mlm_engine.utils.results import OperationResult, ErrorKind
from mlm_engine.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

OPEN_WITHDRAWAL_STATUSES = (WithdrawalStatus.PENDING.value, WithdrawalStatus.APPROVED.value)


@dataclass
class WalletSummary:
    balance: Decimal
    pending: Decimal
    totalEarned: Decimal
    totalWithdrawn: Decimal
    pendingWithdrawalAmount: Decimal


def _sum(value) -> Decimal:
    return toCents(toDecimal(value)) if value is not None else Decimal("0.00")


class WalletService:
    """Service for member wallets and withdrawals."""

    def __init__(self, session: Session):
        self.session = session

    # region Wallet

    async def getOrCreateWallet(self, memberId: int) -> Wallet:
        """Return the member's wallet, creating an empty one if needed."""
        try:
            wallet = self.ensureWallet(memberId)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return wallet

    def ensureWallet(self, memberId: int) -> Wallet:
        """
        Load or insert the wallet inside the current transaction.
        A concurrent insert loses on the unique memberID constraint and re-reads.
        """
        wallet = self.session.query(Wallet).filter_by(memberID=memberId).populate_existing().first()
        if wallet:
            return wallet

        wallet = Wallet(memberID=memberId, balance=ZERO, pending=ZERO, totalEarned=ZERO)
        self.session.add(wallet)
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            logger.info(f"Wallet for member {memberId} created concurrently, reloading")
            wallet = self.session.query(Wallet).filter_by(memberID=memberId).first()
            if wallet is None:
                raise
            return wallet

        logger.info(f"Wallet created for member {memberId}")
        return wallet

    def adjustBalances(
            self,
            memberId: int,
            balance: Decimal = ZERO,
            pending: Decimal = ZERO,
            totalEarned: Decimal = ZERO
    ) -> bool:
        """
        Apply relative deltas to a wallet in the current transaction.
        Decrements only match while the field covers them; returns False if no row matched.
        """
        query = self.session.query(Wallet).filter(Wallet.memberID == memberId)
        values = {}

        for column, delta in ((Wallet.balance, balance), (Wallet.pending, pending), (Wallet.totalEarned, totalEarned)):
            if not delta:
                continue
            values[column] = column + delta
            if delta < ZERO:
                query = query.filter(column >= -delta)

        if not values:
            return True

        updated = query.update(values, synchronize_session=False)
        return updated == 1

    async def getSummary(self, memberId: int) -> WalletSummary:
        wallet = await self.getOrCreateWallet(memberId)

        totalWithdrawn = self.session.query(func.sum(Withdrawal.netAmount)).filter(
            Withdrawal.memberID == memberId,
            Withdrawal.status == WithdrawalStatus.PAID.value
        ).scalar()

        pendingWithdrawals = self.session.query(func.sum(Withdrawal.amount)).filter(
            Withdrawal.memberID == memberId,
            Withdrawal.status.in_(OPEN_WITHDRAWAL_STATUSES)
        ).scalar()

        return WalletSummary(
            balance=_sum(wallet.balance),
            pending=_sum(wallet.pending),
            totalEarned=_sum(wallet.totalEarned),
            totalWithdrawn=_sum(totalWithdrawn),
            pendingWithdrawalAmount=_sum(pendingWithdrawals),
        )

    # endregion

    # region Withdrawal requests

    @staticmethod
    def validateMethodDetails(method, details: Optional[Dict]) -> OperationResult:
        """Resolve the payout method and check its required details."""
        try:
            resolved = WithdrawalMethod(method.value if isinstance(method, WithdrawalMethod) else str(method).upper())
        except ValueError:
            return OperationResult.fail(ErrorKind.VALIDATION, "invalid_method")

        details = details or {}
        missing = [key for key in WITHDRAWAL_METHOD_DETAILS[resolved] if not str(details.get(key) or "").strip()]
        if missing:
            return OperationResult.fail(
                ErrorKind.VALIDATION, "missing_method_details", f"missing: {', '.join(missing)}"
            )

        return OperationResult.ok(resolved)

    async def requestWithdrawal(
            self,
            memberId: int,
            amount,
            method,
            details: Optional[Dict],
            settings: MLMSettings
    ) -> OperationResult:
        """
        Create a PENDING withdrawal and hold the full amount from the balance.
        Returns the new withdrawal id.
        """
        requested = toDecimal(amount)
        if requested is None or requested <= ZERO or requested != toCents(requested):
            return OperationResult.fail(ErrorKind.VALIDATION, "invalid_amount")

        if requested < settings.minWithdrawal:
            return OperationResult.fail(
                ErrorKind.VALIDATION, "below_minimum", f"minimum withdrawal is {settings.minWithdrawal}"
            )

        methodResult = self.validateMethodDetails(method, details)
        if not methodResult.success:
            return methodResult
        resolvedMethod = methodResult.value

        member = self.session.query(Member).filter_by(memberID=memberId).first()
        if not member:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "member_not_found")

        fee = percentOf(requested, settings.withdrawalFeePercent)
        netAmount = requested - fee

        try:
            wallet = self.ensureWallet(memberId)
            if requested > (wallet.balance or ZERO) or not self.adjustBalances(memberId, balance=-requested):
                self.session.rollback()
                logger.warning(f"Withdrawal of {requested} refused for member {memberId}: insufficient balance")
                return OperationResult.fail(ErrorKind.INSUFFICIENT_FUNDS, "insufficient_balance")

            withdrawal = Withdrawal(
                memberID=memberId,
                amount=requested,
                fee=fee,
                netAmount=netAmount,
                method=resolvedMethod.value,
                details=dict(details or {}),
                status=WithdrawalStatus.PENDING.value
            )
            self.session.add(withdrawal)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        withdrawalId = withdrawal.withdrawalID
        logger.info(
            f"Withdrawal {withdrawalId} requested by member {memberId}: "
            f"amount={requested}, fee={fee}, net={netAmount}, method={resolvedMethod.value}"
        )

        await eventBus.emit(MLMEvents.WITHDRAWAL_REQUESTED, {
            "withdrawalId": withdrawalId,
            "memberId": memberId,
            "amount": requested,
            "fee": fee,
            "netAmount": netAmount,
        })

        return OperationResult.ok(withdrawalId)

    # endregion

    # region Withdrawal lifecycle

    def _transition(
            self,
            withdrawalId: int,
            fromStatuses: Iterable[str],
            toStatus: WithdrawalStatus,
            conflictCode: str,
            **values
    ) -> OperationResult:
        """Compare-and-set the status inside the current transaction."""
        fromStatuses = tuple(fromStatuses)
        withdrawal = self.session.query(Withdrawal).filter_by(withdrawalID=withdrawalId).first()
        if not withdrawal:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "withdrawal_not_found")

        if withdrawal.status not in fromStatuses:
            return OperationResult.fail(ErrorKind.STATE_CONFLICT, conflictCode, f"status is {withdrawal.status}")

        changes = {Withdrawal.status: toStatus.value}
        for fieldName, value in values.items():
            changes[getattr(Withdrawal, fieldName)] = value

        updated = self.session.query(Withdrawal).filter(
            Withdrawal.withdrawalID == withdrawalId,
            Withdrawal.status.in_(fromStatuses)
        ).update(changes, synchronize_session=False)

        if updated != 1:
            self.session.rollback()
            logger.warning(f"Withdrawal {withdrawalId} changed concurrently, {toStatus.value} refused")
            return OperationResult.fail(ErrorKind.STATE_CONFLICT, conflictCode)

        return OperationResult.ok(withdrawal)

    async def approveWithdrawal(self, withdrawalId: int, actorId) -> OperationResult:
        """PENDING -> APPROVED; the balance is already held."""
        try:
            result = self._transition(
                withdrawalId,
                (WithdrawalStatus.PENDING.value,),
                WithdrawalStatus.APPROVED,
                "withdrawal_not_pending",
                processedBy=str(actorId)
            )
            if not result.success:
                return result
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        logger.info(f"Withdrawal {withdrawalId} approved by {actorId}")
        await eventBus.emit(MLMEvents.WITHDRAWAL_APPROVED, {"withdrawalId": withdrawalId, "actorId": actorId})
        return OperationResult.ok()

    async def markPaid(self, withdrawalId: int, actorId) -> OperationResult:
        """PENDING or APPROVED -> PAID; terminal, no balance change."""
        try:
            result = self._transition(
                withdrawalId,
                OPEN_WITHDRAWAL_STATUSES,
                WithdrawalStatus.PAID,
                "withdrawal_not_payable",
                processedBy=str(actorId),
                processedAt=timeMachine.now
            )
            if not result.success:
                return result
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        logger.info(f"Withdrawal {withdrawalId} paid by {actorId}")
        await eventBus.emit(MLMEvents.WITHDRAWAL_PAID, {"withdrawalId": withdrawalId, "actorId": actorId})
        return OperationResult.ok()

    async def rejectWithdrawal(self, withdrawalId: int, actorId, reason: Optional[str] = None) -> OperationResult:
        """PENDING or APPROVED -> REJECTED; the held amount returns to the balance."""
        try:
            result = self._transition(
                withdrawalId,
                OPEN_WITHDRAWAL_STATUSES,
                WithdrawalStatus.REJECTED,
                "withdrawal_not_rejectable",
                processedBy=str(actorId),
                processedAt=timeMachine.now,
                notes=reason
            )
            if not result.success:
                return result

            withdrawal = result.value
            memberId = withdrawal.memberID
            amount = withdrawal.amount

            self.ensureWallet(memberId)
            self.adjustBalances(memberId, balance=amount)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        logger.info(f"Withdrawal {withdrawalId} rejected by {actorId}, {amount} refunded to member {memberId}")
        await eventBus.emit(MLMEvents.WITHDRAWAL_REJECTED, {
            "withdrawalId": withdrawalId,
            "memberId": memberId,
            "amount": amount,
            "actorId": actorId,
            "reason": reason,
        })
        return OperationResult.ok()

    # endregion

    # region Listings

    async def getWithdrawalHistory(self, memberId: int, page: int = 1, pageSize: int = 10) -> Page:
        query = self.session.query(Withdrawal).filter(
            Withdrawal.memberID == memberId
        ).order_by(Withdrawal.createdAt.desc(), Withdrawal.withdrawalID.desc())
        return paginate(query, page, pageSize)

    async def getPendingWithdrawals(self, page: int = 1, pageSize: int = 20) -> Page:
        """Open withdrawals for admins, oldest first."""
        query = self.session.query(Withdrawal).filter(
            Withdrawal.status.in_(OPEN_WITHDRAWAL_STATUSES)
        ).order_by(Withdrawal.createdAt.asc(), Withdrawal.withdrawalID.asc())
        return paginate(query, page, pageSize)

    async def listWithdrawals(
            self,
            page: int = 1,
            pageSize: int = 20,
            status: Optional[str] = None,
            method: Optional[str] = None,
            memberId: Optional[int] = None
    ) -> Page:
        """Admin listing with amount totals per status."""
        filters = []
        if method:
            filters.append(Withdrawal.method == method)
        if memberId:
            filters.append(Withdrawal.memberID == memberId)

        stats = {
            "total": Decimal("0.00"),
            "pending": Decimal("0.00"),
            "approved": Decimal("0.00"),
            "paid": Decimal("0.00"),
            "rejected": Decimal("0.00"),
            "pendingCount": 0,
        }
        grouped = self.session.query(
            Withdrawal.status, func.sum(Withdrawal.amount), func.count(Withdrawal.withdrawalID)
        ).filter(*filters).group_by(Withdrawal.status).all()

        for rowStatus, amount, count in grouped:
            amount = _sum(amount)
            stats["total"] += amount
            key = rowStatus.lower()
            if key in stats:
                stats[key] = amount
            if rowStatus == WithdrawalStatus.PENDING.value:
                stats["pendingCount"] = count

        query = self.session.query(Withdrawal).filter(*filters)
        if status:
            query = query.filter(Withdrawal.status == status)
        query = query.order_by(Withdrawal.createdAt.desc(), Withdrawal.withdrawalID.desc())

        return paginate(query, page, pageSize, stats)

    # endregion
