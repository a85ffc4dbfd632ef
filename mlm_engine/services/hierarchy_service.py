# mlm_engine/services/hierarchy_service.py
"""
Referral tree management: sponsor codes, hierarchy paths, upline/downline queries.
"""
import re
import time
import secrets
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Dict, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy import func, cast, and_, or_, String
import logging

from models import (
    Member, Order, Wallet, Commission, Withdrawal,
    CommissionStatus, WithdrawalStatus, COMPLETED_ORDER_STATUSES
)
from mlm_engine.config.settings import (
    MLMSettings,
    SPONSOR_CODE_ALPHABET,
    SPONSOR_CODE_PREFIX_LENGTH,
    SPONSOR_CODE_SUFFIX_LENGTH,
    SPONSOR_CODE_MAX_ATTEMPTS,
)
from mlm_engine.events.event_bus import eventBus, MLMEvents
from mlm_engine.utils.money import toDecimal, toCents
from mlm_engine.utils.pagination import Page, paginate
from mlm_engine.utils.results import OperationResult, ErrorKind

logger = logging.getLogger(__name__)

SPONSOR_CODE_PATTERN = re.compile(r"^[A-Z0-9]+$")


def _money(value) -> Decimal:
    return toCents(toDecimal(value)) if value is not None else Decimal("0.00")


@dataclass
class DownlineNode:
    """One member in a downline tree report."""

    memberId: int
    name: Optional[str]
    email: Optional[str]
    sponsorCode: Optional[str]
    mlmLevel: int
    isMLMEnabled: bool
    joinedAt: Optional[datetime]
    totalSales: Decimal
    directDownlineCount: int
    children: List["DownlineNode"] = field(default_factory=list)


def _toBase36(number: int) -> str:
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    if number == 0:
        return "0"
    result = ""
    while number:
        number, remainder = divmod(number, 36)
        result = digits[remainder] + result
    return result


class HierarchyService:
    """Service for the sponsor tree and its materialized paths."""

    def __init__(self, session: Session):
        self.session = session

    # region Sponsor codes

    @staticmethod
    def generateSponsorCode(name: Optional[str]) -> str:
        """First three letters of the name plus a random suffix, e.g. JOHK3Z9Q."""
        letters = re.sub(r"[^a-zA-Z]", "", name or "")
        prefix = letters[:SPONSOR_CODE_PREFIX_LENGTH].upper().ljust(SPONSOR_CODE_PREFIX_LENGTH, "X")
        suffix = "".join(
            secrets.choice(SPONSOR_CODE_ALPHABET) for _ in range(SPONSOR_CODE_SUFFIX_LENGTH)
        )
        return f"{prefix}{suffix}"

    @staticmethod
    def normalizeSponsorCode(code: Optional[str]) -> str:
        return (code or "").strip().upper()

    async def issueSponsorCode(self, memberId: int, displayName: Optional[str] = None) -> OperationResult:
        """
        Assign a unique sponsor code to a member.
        Uniqueness is enforced by the members.sponsorCode constraint; collisions are retried.
        """
        member = self.session.query(Member).filter_by(memberID=memberId).first()
        if not member:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "member_not_found")

        if member.sponsorCode:
            return OperationResult.ok(member.sponsorCode)

        name = displayName if displayName is not None else member.name

        for attempt in range(SPONSOR_CODE_MAX_ATTEMPTS):
            code = self.generateSponsorCode(name)
            if self._assignSponsorCode(memberId, code):
                return OperationResult.ok(code)

        # Still colliding - append timestamp
        code = f"{self.generateSponsorCode(name)}{_toBase36(int(time.time() * 1000))[-3:]}"
        if self._assignSponsorCode(memberId, code):
            return OperationResult.ok(code)

        logger.error(f"Could not issue sponsor code for member {memberId}")
        return OperationResult.fail(ErrorKind.STATE_CONFLICT, "sponsor_code_collision")

    def _assignSponsorCode(self, memberId: int, code: str) -> bool:
        try:
            self.session.query(Member).filter(Member.memberID == memberId).update(
                {Member.sponsorCode: code}, synchronize_session=False
            )
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.warning(f"Sponsor code collision on {code} for member {memberId}")
            return False

        logger.info(f"Sponsor code {code} issued to member {memberId}")
        return True

    async def validateSponsorCode(self, code: Optional[str]) -> OperationResult:
        """Resolve a sponsor code to an active, MLM-enabled sponsor."""
        normalized = self.normalizeSponsorCode(code)
        if not normalized:
            return OperationResult.fail(ErrorKind.VALIDATION, "sponsor_code_required")

        if not SPONSOR_CODE_PATTERN.match(normalized):
            return OperationResult.fail(ErrorKind.VALIDATION, "invalid_sponsor_code_format")

        sponsor = self.session.query(Member).filter_by(sponsorCode=normalized).first()
        if not sponsor:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "sponsor_not_found")

        if not sponsor.isActive:
            return OperationResult.fail(ErrorKind.DISABLED, "sponsor_inactive")

        if not sponsor.isMLMEnabled:
            return OperationResult.fail(ErrorKind.DISABLED, "sponsor_mlm_disabled")

        return OperationResult.ok(sponsor)

    # endregion

    # region Tree mutation

    async def wouldCreateCycle(self, memberId: int, sponsorId: int) -> bool:
        """Check whether attaching memberId under sponsorId would close a loop."""
        if memberId == sponsorId:
            return True

        sponsor = self.session.query(Member).filter_by(memberID=sponsorId).first()
        if not sponsor:
            return False

        # Exact id comparison, the path is a list of discrete ids
        if memberId in sponsor.path:
            return True

        return sponsor.uplineID == memberId

    async def attach(self, memberId: int, sponsorId: int) -> OperationResult:
        """
        Attach a member under a sponsor and materialize its hierarchy path.
        Re-parenting also rewrites the paths of the member's descendants.
        """
        member = self.session.query(Member).filter_by(memberID=memberId).first()
        sponsor = self.session.query(Member).filter_by(memberID=sponsorId).first()

        if not member or not sponsor:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "member_not_found")

        if await self.wouldCreateCycle(memberId, sponsorId):
            logger.warning(f"Refused to attach member {memberId} under {sponsorId}: circular reference")
            return OperationResult.fail(ErrorKind.INTEGRITY_VIOLATION, "circular_reference")

        newPath = sponsor.path + [sponsor.memberID]
        previousUpline = member.uplineID

        try:
            member.uplineID = sponsor.memberID
            member.hierarchyPath = newPath
            member.mlmLevel = len(newPath) + 1

            descendants = self._findDescendants(memberId)
            for descendant in descendants:
                currentPath = descendant.path
                tail = currentPath[currentPath.index(memberId):]
                descendant.hierarchyPath = newPath + tail
                descendant.mlmLevel = len(descendant.hierarchyPath) + 1

            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        logger.info(
            f"Member {memberId} attached under {sponsorId} "
            f"(previous upline {previousUpline}, {len(descendants)} descendants moved)"
        )

        await eventBus.emit(MLMEvents.MEMBER_ATTACHED, {
            "memberId": memberId,
            "sponsorId": sponsorId,
            "hierarchyPath": list(newPath),
        })

        return OperationResult.ok(list(newPath))

    async def registerMember(
            self,
            name: str,
            email: Optional[str],
            sponsorCode: Optional[str],
            settings: MLMSettings
    ) -> OperationResult:
        """Create a member, issue its sponsor code and attach it to the sponsor."""
        sponsor = None
        if sponsorCode:
            validation = await self.validateSponsorCode(sponsorCode)
            if not validation.success:
                return validation
            sponsor = validation.value

        member = Member(
            name=name,
            email=email,
            isMLMEnabled=settings.autoEnableMLM,
            isActive=True,
            mlmLevel=1
        )
        try:
            self.session.add(member)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        memberId = member.memberID

        codeResult = await self.issueSponsorCode(memberId, name)
        if not codeResult.success:
            return codeResult

        if sponsor:
            attachResult = await self.attach(memberId, sponsor.memberID)
            if not attachResult.success:
                return attachResult

        logger.info(f"Registered member {memberId} with sponsor {sponsor.memberID if sponsor else None}")

        await eventBus.emit(MLMEvents.MEMBER_REGISTERED, {
            "memberId": memberId,
            "sponsorId": sponsor.memberID if sponsor else None,
            "sponsorCode": codeResult.value,
        })

        return OperationResult.ok(self.session.query(Member).filter_by(memberID=memberId).first())

    async def updateMemberFlags(
            self,
            memberId: int,
            isMLMEnabled: Optional[bool] = None,
            isActive: Optional[bool] = None
    ) -> OperationResult:
        """Admin toggle for MLM participation and account activity."""
        member = self.session.query(Member).filter_by(memberID=memberId).first()
        if not member:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "member_not_found")

        if isMLMEnabled is not None:
            member.isMLMEnabled = bool(isMLMEnabled)
        if isActive is not None:
            member.isActive = bool(isActive)

        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        logger.info(f"Member {memberId} flags updated: mlm={member.isMLMEnabled}, active={member.isActive}")
        return OperationResult.ok(member)

    # endregion

    # region Queries

    async def getUplineLevels(self, memberId: int, maxLevels: int) -> List[Tuple[int, Member]]:
        """
        Ancestors as (level, member) pairs, closest first.
        Level is the position in the ancestor chain; inactive or opted-out
        ancestors are left out and their level stays empty.
        """
        if maxLevels <= 0:
            return []

        member = self.session.query(Member).filter_by(memberID=memberId).first()
        if not member:
            return []

        uplineIds = list(reversed(member.path))[:maxLevels]
        if not uplineIds:
            return []

        uplineMembers = self.session.query(Member).filter(
            Member.memberID.in_(uplineIds),
            Member.isMLMEnabled == True,
            Member.isActive == True
        ).all()
        byId = {upline.memberID: upline for upline in uplineMembers}

        return [
            (position + 1, byId[uplineId])
            for position, uplineId in enumerate(uplineIds)
            if uplineId in byId
        ]

    async def getUpline(self, memberId: int, maxLevels: int = 5) -> List[Member]:
        """Active ancestors, closest first, within maxLevels."""
        return [upline for _, upline in await self.getUplineLevels(memberId, maxLevels)]

    async def getDirectDownline(self, memberId: int) -> List[Member]:
        return self.session.query(Member).filter(
            Member.uplineID == memberId,
            Member.isMLMEnabled == True
        ).order_by(Member.createdAt.desc(), Member.memberID.desc()).all()

    async def getDownlineTree(self, memberId: int, depth: int = 3) -> List[DownlineNode]:
        """
        Downline tree expanded breadth-first, never deeper than depth.
        Each member is visited once even if the stored links are corrupted.
        """
        roots: List[DownlineNode] = []
        if depth <= 0:
            return roots

        queue = deque([(memberId, 0, roots)])
        visited = {memberId}

        while queue:
            parentId, currentDepth, siblings = queue.popleft()

            for child in await self.getDirectDownline(parentId):
                if child.memberID in visited:
                    logger.warning(f"Member {child.memberID} reached twice in downline of {memberId}")
                    continue
                visited.add(child.memberID)

                node = DownlineNode(
                    memberId=child.memberID,
                    name=child.name,
                    email=child.email,
                    sponsorCode=child.sponsorCode,
                    mlmLevel=child.mlmLevel,
                    isMLMEnabled=child.isMLMEnabled,
                    joinedAt=child.createdAt,
                    totalSales=self._getTotalSales(child.memberID),
                    directDownlineCount=self._countDirectDownline(child.memberID),
                )
                siblings.append(node)

                if currentDepth + 1 < depth:
                    queue.append((child.memberID, currentDepth + 1, node.children))

        return roots

    async def countTotalDownline(self, memberId: int) -> int:
        """Count MLM-enabled members whose hierarchy path includes memberId."""
        rows = self.session.query(Member.hierarchyPath).filter(
            self._pathMayContain(memberId),
            Member.isMLMEnabled == True
        ).all()

        return sum(
            1 for (path,) in rows
            if path and memberId in [int(ancestorId) for ancestorId in path]
        )

    def _findDescendants(self, memberId: int) -> List[Member]:
        candidates = self.session.query(Member).filter(self._pathMayContain(memberId)).all()
        return [candidate for candidate in candidates if memberId in candidate.path]

    @staticmethod
    def _pathMayContain(memberId: int):
        """
        Substring match on the serialized path, done by the database.
        It also matches longer ids (1 in [12]), callers confirm on the parsed list.
        """
        return and_(
            Member.hierarchyPath.isnot(None),
            cast(Member.hierarchyPath, String).like(f"%{int(memberId)}%")
        )

    def _getTotalSales(self, memberId: int) -> Decimal:
        total = self.session.query(func.sum(Order.totalAmount)).filter(
            Order.memberID == memberId,
            Order.status.in_(COMPLETED_ORDER_STATUSES)
        ).scalar()
        return Decimal(str(total)) if total is not None else Decimal("0")

    def _countDirectDownline(self, memberId: int) -> int:
        return self.session.query(func.count(Member.memberID)).filter(
            Member.uplineID == memberId
        ).scalar() or 0

    # endregion

    # region Administration

    async def listMembers(
            self,
            page: int = 1,
            pageSize: int = 20,
            search: Optional[str] = None,
            isMLMEnabled: Optional[bool] = None,
            level: Optional[int] = None
    ) -> Page:
        """
        Admin member listing, newest first.
        Search covers name, email and sponsor code; stats ignore the filters.
        """
        directCounts = self.session.query(
            Member.uplineID.label("sponsorID"), func.count(Member.memberID).label("downlineCount")
        ).filter(Member.uplineID.isnot(None)).group_by(Member.uplineID).subquery()

        commissionCounts = self.session.query(
            Commission.memberID.label("memberID"), func.count(Commission.commissionID).label("commissionCount")
        ).group_by(Commission.memberID).subquery()

        query = self.session.query(
            Member, Wallet, directCounts.c.downlineCount, commissionCounts.c.commissionCount
        ).outerjoin(
            Wallet, Wallet.memberID == Member.memberID
        ).outerjoin(
            directCounts, directCounts.c.sponsorID == Member.memberID
        ).outerjoin(
            commissionCounts, commissionCounts.c.memberID == Member.memberID
        )

        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(
                Member.name.ilike(pattern),
                Member.email.ilike(pattern),
                Member.sponsorCode.ilike(pattern)
            ))
        if isMLMEnabled is not None:
            query = query.filter(Member.isMLMEnabled == isMLMEnabled)
        if level:
            query = query.filter(Member.mlmLevel == level)

        query = query.order_by(Member.createdAt.desc(), Member.memberID.desc())

        result = paginate(query, page, pageSize, self._getMemberStats())
        result.data = [
            self._memberRow(member, wallet, downlineCount, commissionCount)
            for member, wallet, downlineCount, commissionCount in result.data
        ]
        return result

    @staticmethod
    def _memberRow(member: Member, wallet: Optional[Wallet], downlineCount, commissionCount) -> Dict:
        upline = member.upline
        return {
            "id": member.memberID,
            "name": member.name,
            "email": member.email,
            "sponsorCode": member.sponsorCode,
            "mlmLevel": member.mlmLevel,
            "isMLMEnabled": member.isMLMEnabled,
            "isActive": member.isActive,
            "createdAt": member.createdAt,
            "upline": {
                "id": upline.memberID,
                "name": upline.name,
                "sponsorCode": upline.sponsorCode,
            } if upline else None,
            "wallet": {
                "balance": _money(wallet.balance),
                "pending": _money(wallet.pending),
                "totalEarned": _money(wallet.totalEarned),
            } if wallet else None,
            "directDownlineCount": downlineCount or 0,
            "commissionCount": commissionCount or 0,
        }

    def _getMemberStats(self) -> Dict:
        totalMembers = self.session.query(func.count(Member.memberID)).filter(
            Member.isMLMEnabled == True
        ).scalar() or 0

        walletBalance, walletEarned = self.session.query(
            func.sum(Wallet.balance), func.sum(Wallet.totalEarned)
        ).one()

        pendingAmount, pendingCount = self.session.query(
            func.sum(Commission.amount), func.count(Commission.commissionID)
        ).filter(Commission.status == CommissionStatus.PENDING.value).one()

        pendingWithdrawals = self.session.query(func.count(Withdrawal.withdrawalID)).filter(
            Withdrawal.status == WithdrawalStatus.PENDING.value
        ).scalar() or 0

        return {
            "totalMembers": totalMembers,
            "totalWalletBalance": _money(walletBalance),
            "totalEarned": _money(walletEarned),
            "pendingCommissions": _money(pendingAmount),
            "pendingCommissionsCount": pendingCount or 0,
            "pendingWithdrawals": pendingWithdrawals,
        }

    # endregion

    # region Maintenance

    async def rebuildAllPaths(self) -> Dict:
        """
        Recompute every hierarchy path from the direct upline links.
        Chains are resolved independently, so processing order does not matter.
        """
        results = {
            "success": True,
            "checked": 0,
            "updated": 0,
            "errors": []
        }

        members = self.session.query(Member).order_by(
            Member.createdAt.asc(), Member.memberID.asc()
        ).all()
        uplineMap = {member.memberID: member.uplineID for member in members}

        for member in members:
            results["checked"] += 1
            try:
                path = self._resolvePath(member.memberID, uplineMap)
            except ValueError as e:
                logger.error(f"Cannot rebuild path for member {member.memberID}: {e}")
                results["errors"].append(f"Failed to update member {member.memberID}: {e}")
                continue

            storedPath = member.path
            expectedLevel = len(path) + 1
            if storedPath != path or member.mlmLevel != expectedLevel or (not path and member.hierarchyPath is not None):
                member.hierarchyPath = path or None
                member.mlmLevel = expectedLevel
                results["updated"] += 1

        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Hierarchy rebuild failed: {e}")
            results["success"] = False
            results["updated"] = 0
            results["errors"].append(f"Fatal error: {e}")
            return results

        logger.info(
            f"Hierarchy rebuild complete: checked={results['checked']}, "
            f"updated={results['updated']}, errors={len(results['errors'])}"
        )

        await eventBus.emit(MLMEvents.PATHS_REBUILT, {
            "checked": results["checked"],
            "updated": results["updated"],
            "errors": len(results["errors"]),
        })

        return results

    @staticmethod
    def _resolvePath(memberId: int, uplineMap: Dict[int, Optional[int]]) -> List[int]:
        """Walk upline links to the root, root first."""
        chain = []
        seen = {memberId}
        current = uplineMap.get(memberId)

        while current is not None:
            if current in seen:
                raise ValueError(f"circular upline chain at member {current}")
            if current not in uplineMap:
                raise ValueError(f"upline {current} does not exist")
            seen.add(current)
            chain.append(current)
            current = uplineMap[current]

        chain.reverse()
        return chain

    # endregion
