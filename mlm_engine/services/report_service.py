# mlm_engine/services/report_service.py
"""
Admin analytics over members, commissions, withdrawals and wallets.
"""
from decimal import Decimal
from typing import Dict
from sqlalchemy.orm import Session
from sqlalchemy import func
import logging

from models import Member, Order, Commission, Wallet, Withdrawal, CommissionStatus, WithdrawalStatus
from mlm_engine.utils.money import toDecimal, toCents
from mlm_engine.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

MONTHS_IN_REPORT = 6
TOP_EARNERS_LIMIT = 10


def _money(value) -> Decimal:
    return toCents(toDecimal(value)) if value is not None else Decimal("0.00")


class ReportService:
    """Service for admin dashboards."""

    def __init__(self, session: Session):
        self.session = session

    async def getAnalytics(self) -> Dict:
        enabledMembers = (Member.isMLMEnabled == True)

        totalMembers = self.session.query(func.count(Member.memberID)).filter(enabledMembers).scalar() or 0

        # Active = enabled, not deactivated and has ordered at least once
        activeMembers = self.session.query(func.count(func.distinct(Member.memberID))).join(
            Order, Order.memberID == Member.memberID
        ).filter(enabledMembers, Member.isActive == True).scalar() or 0

        approvedCommissions = self.session.query(func.sum(Commission.amount)).filter(
            Commission.status == CommissionStatus.APPROVED.value
        ).scalar()
        pendingCommissions = self.session.query(func.sum(Commission.amount)).filter(
            Commission.status == CommissionStatus.PENDING.value
        ).scalar()

        paidWithdrawals = self.session.query(func.sum(Withdrawal.netAmount)).filter(
            Withdrawal.status == WithdrawalStatus.PAID.value
        ).scalar()
        pendingWithdrawals = self.session.query(func.count(Withdrawal.withdrawalID)).filter(
            Withdrawal.status == WithdrawalStatus.PENDING.value
        ).scalar() or 0

        newSignupsThisMonth = self.session.query(func.count(Member.memberID)).filter(
            enabledMembers,
            Member.createdAt >= timeMachine.startOfMonth
        ).scalar() or 0

        walletBalance, walletPending = self.session.query(
            func.sum(Wallet.balance), func.sum(Wallet.pending)
        ).one()

        membersByLevel = [
            {"level": level, "count": count}
            for level, count in self.session.query(
                Member.mlmLevel, func.count(Member.memberID)
            ).filter(enabledMembers).group_by(Member.mlmLevel).order_by(Member.mlmLevel.asc()).all()
        ]

        analytics = {
            "overview": {
                "totalMembers": totalMembers,
                "activeMembers": activeMembers,
                "totalCommissionsApproved": _money(approvedCommissions),
                "pendingCommissions": _money(pendingCommissions),
                "totalWithdrawals": _money(paidWithdrawals),
                "pendingWithdrawals": pendingWithdrawals,
                "newSignupsThisMonth": newSignupsThisMonth,
                "totalWalletBalance": _money(walletBalance),
                "totalPendingInWallets": _money(walletPending),
            },
            "membersByLevel": membersByLevel,
            "commissionsByMonth": self._getCommissionsByMonth(),
            "topEarners": self._getTopEarners(),
        }

        logger.debug(f"Analytics built: {totalMembers} members, {pendingWithdrawals} pending withdrawals")
        return analytics

    def _getCommissionsByMonth(self):
        """Totals per YYYY-MM for the last six months, newest first."""
        since = timeMachine.startOfMonthsAgo(MONTHS_IN_REPORT - 1)

        months: Dict[str, Dict] = {}
        rows = self.session.query(Commission.createdAt, Commission.amount).filter(
            Commission.createdAt >= since
        ).all()

        for createdAt, amount in rows:
            month = createdAt.strftime('%Y-%m')
            bucket = months.setdefault(month, {"month": month, "total": Decimal("0.00"), "count": 0})
            bucket["total"] += _money(amount)
            bucket["count"] += 1

        return [months[month] for month in sorted(months, reverse=True)][:MONTHS_IN_REPORT]

    def _getTopEarners(self):
        directCounts = self.session.query(
            Member.uplineID.label("sponsorID"), func.count(Member.memberID).label("downlineCount")
        ).filter(Member.uplineID.isnot(None)).group_by(Member.uplineID).subquery()

        rows = self.session.query(
            Member, Wallet.totalEarned, directCounts.c.downlineCount
        ).join(
            Wallet, Wallet.memberID == Member.memberID
        ).outerjoin(
            directCounts, directCounts.c.sponsorID == Member.memberID
        ).filter(
            Member.isMLMEnabled == True
        ).order_by(
            Wallet.totalEarned.desc(), Member.memberID.asc()
        ).limit(TOP_EARNERS_LIMIT).all()

        return [
            {
                "member": {"id": member.memberID, "name": member.name, "email": member.email},
                "totalEarned": _money(totalEarned),
                "downlineCount": downlineCount or 0,
            }
            for member, totalEarned, downlineCount in rows
        ]
