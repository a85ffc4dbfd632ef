# mlm_engine/services/rank_service.py
"""
Member ranks, performance stats and referral links.
"""
from decimal import Decimal
from typing import Dict, Optional
from sqlalchemy.orm import Session
from sqlalchemy import func
import logging

import config
from models import Member, Order, Commission, CommissionStatus, COMMISSIONABLE_ORDER_STATUSES
from mlm_engine.config.ranks import RANK_CONFIG
from mlm_engine.services.hierarchy_service import HierarchyService
from mlm_engine.utils.money import toDecimal, toCents
from mlm_engine.utils.results import OperationResult, ErrorKind
from mlm_engine.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class RankService:
    """Service for member ranks and referral statistics."""

    def __init__(self, session: Session):
        self.session = session
        self.hierarchyService = HierarchyService(session)

    @staticmethod
    def calculateRank(downlineCount: int, totalEarnings) -> Dict:
        """Highest rank whose downline and earnings thresholds are both met."""
        earnings = toDecimal(totalEarnings) or Decimal("0")
        ranks = list(RANK_CONFIG.items())

        currentIndex = 0
        for index in range(len(ranks) - 1, -1, -1):
            rank, requirements = ranks[index]
            if downlineCount >= requirements["minDownline"] and earnings >= requirements["minEarnings"]:
                currentIndex = index
                break

        currentRank, currentConfig = ranks[currentIndex]
        nextRank = None
        if currentIndex + 1 < len(ranks):
            rank, requirements = ranks[currentIndex + 1]
            nextRank = {
                "rank": rank,
                "name": rank.value,
                "minDownline": requirements["minDownline"],
                "minEarnings": requirements["minEarnings"],
                "requirement": (
                    f"{requirements['minDownline']} downlines and "
                    f"Rs. {requirements['minEarnings']:,} earnings"
                ),
            }

        return {
            "rank": currentRank,
            "name": currentRank.value,
            "level": currentConfig["level"],
            "next": nextRank,
        }

    def _sumCommissions(self, memberId: int, since=None, approvedOnly: bool = False) -> Decimal:
        query = self.session.query(func.sum(Commission.amount)).filter(Commission.memberID == memberId)
        if approvedOnly:
            query = query.filter(Commission.status == CommissionStatus.APPROVED.value)
        else:
            query = query.filter(Commission.status != CommissionStatus.CANCELLED.value)
        if since is not None:
            query = query.filter(Commission.createdAt >= since)

        total = query.scalar()
        return toCents(toDecimal(total)) if total is not None else Decimal("0.00")

    async def getMemberStats(self, memberId: int) -> OperationResult:
        member = self.session.query(Member).filter_by(memberID=memberId).first()
        if not member:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "member_not_found")

        totalDownline = await self.hierarchyService.countTotalDownline(memberId)
        directDownline = len(await self.hierarchyService.getDirectDownline(memberId))

        totalCommissions = self._sumCommissions(memberId)
        commissionCount = self.session.query(func.count(Commission.commissionID)).filter(
            Commission.memberID == memberId,
            Commission.status != CommissionStatus.CANCELLED.value
        ).scalar() or 0

        rank = self.calculateRank(totalDownline, totalCommissions)

        return OperationResult.ok({
            "member": {
                "id": member.memberID,
                "name": member.name,
                "sponsorCode": member.sponsorCode,
                "mlmLevel": member.mlmLevel,
                "isMLMEnabled": member.isMLMEnabled,
                "joinedAt": member.createdAt,
            },
            "stats": {
                "rank": rank["name"],
                "rankLevel": rank["level"],
                "totalDownline": totalDownline,
                "directDownline": directDownline,
                "totalCommissions": totalCommissions,
                "commissionCount": commissionCount,
                "monthlyEarnings": self._sumCommissions(memberId, timeMachine.startOfMonth, approvedOnly=True),
                "weeklyEarnings": self._sumCommissions(memberId, timeMachine.startOfWeek, approvedOnly=True),
            },
            "nextRank": rank["next"],
        })

    async def getReferralLink(self, memberId: int, baseUrl: Optional[str] = None) -> OperationResult:
        member = self.session.query(Member).filter_by(memberID=memberId).first()
        if not member:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "member_not_found")

        if not member.isMLMEnabled:
            return OperationResult.fail(ErrorKind.DISABLED, "mlm_disabled")

        if not member.sponsorCode:
            logger.error(f"Member {memberId} has no sponsor code")
            return OperationResult.fail(ErrorKind.NOT_FOUND, "sponsor_code_missing")

        baseUrl = (baseUrl or config.REFERRAL_BASE_URL).rstrip("/")

        directReferrals = self.session.query(func.count(Member.memberID)).filter(
            Member.uplineID == memberId
        ).scalar() or 0

        # Direct referrals with at least one commissionable order
        activeReferrals = self.session.query(func.count(func.distinct(Member.memberID))).join(
            Order, Order.memberID == Member.memberID
        ).filter(
            Member.uplineID == memberId,
            Order.status.in_(COMMISSIONABLE_ORDER_STATUSES)
        ).scalar() or 0

        return OperationResult.ok({
            "sponsorCode": member.sponsorCode,
            "referralUrl": f"{baseUrl}/auth/sign-up?ref={member.sponsorCode}",
            "totalReferrals": await self.hierarchyService.countTotalDownline(memberId),
            "directReferrals": directReferrals,
            "activeReferrals": activeReferrals,
        })
