"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from decimal import Decimal
from pathlib import Path

# Тестовая база в памяти, .env не нужен
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REFERRAL_BASE_URL", "https://shop.example.com")

# Добавить корень проекта в PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from models import Base, Member, Order, Wallet, CommissionRule
from mlm_engine import eventBus, timeMachine, MLMSettings


@pytest.fixture
def engine():
    """In-memory SQLite shared by every connection of the test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    session = sessionmaker(bind=engine)()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def reset_singletons():
    """Event handlers and virtual time must not leak between tests."""
    eventBus.clear()
    timeMachine.resetToRealTime()
    yield
    eventBus.clear()
    timeMachine.resetToRealTime()


@pytest.fixture
def settings():
    return MLMSettings(
        isMLMEnabled=True,
        maxLevels=5,
        minWithdrawal=Decimal("500"),
        withdrawalFeePercent=Decimal("0"),
        defaultSignupBonus=Decimal("0"),
        autoApproveCommissions=False,
        autoEnableMLM=True,
    )


@pytest.fixture
def captured_events():
    """Subscribe to events by name and collect their payloads."""
    events = []

    def _capture(*eventNames):
        for eventName in eventNames:
            def handler(data, eventName=eventName):
                events.append((eventName, data))
            eventBus.subscribe(eventName, handler)
        return events

    return _capture


@pytest.fixture
def make_member(session):
    """Insert a member directly under an optional upline with a consistent path."""

    def _make(name, upline=None, isMLMEnabled=True, isActive=True, sponsorCode=None):
        path = upline.path + [upline.memberID] if upline else None
        member = Member(
            name=name,
            email=f"{name.lower()}@example.com",
            sponsorCode=sponsorCode or f"{name.upper()}CODE",
            uplineID=upline.memberID if upline else None,
            hierarchyPath=path,
            mlmLevel=len(path or []) + 1,
            isMLMEnabled=isMLMEnabled,
            isActive=isActive,
        )
        session.add(member)
        session.commit()
        return member

    return _make


@pytest.fixture
def chain(make_member):
    """A <- B <- C <- D <- E, A is the root."""
    members = {}
    upline = None
    for name in ("A", "B", "C", "D", "E"):
        upline = make_member(name, upline)
        members[name] = upline
    return members


@pytest.fixture
def make_order(session):
    def _make(member, total, status="CONFIRMED"):
        order = Order(memberID=member.memberID, totalAmount=Decimal(str(total)), status=status)
        session.add(order)
        session.commit()
        return order

    return _make


@pytest.fixture
def make_wallet(session):
    def _make(member, balance="0", pending="0", totalEarned=None):
        wallet = Wallet(
            memberID=member.memberID,
            balance=Decimal(balance),
            pending=Decimal(pending),
            totalEarned=Decimal(totalEarned if totalEarned is not None else balance),
        )
        session.add(wallet)
        session.commit()
        return wallet

    return _make


@pytest.fixture
def make_rule(session):
    def _make(ruleType="SALE", level=1, percentage=None, fixedAmount=None, priority=0,
              minOrderValue=None, maxCommission=None, isActive=True, name=None):
        rule = CommissionRule(
            name=name or f"{ruleType} L{level}",
            ruleType=ruleType,
            level=level,
            percentage=Decimal(str(percentage)) if percentage is not None else None,
            fixedAmount=Decimal(str(fixedAmount)) if fixedAmount is not None else None,
            minOrderValue=Decimal(str(minOrderValue)) if minOrderValue is not None else None,
            maxCommission=Decimal(str(maxCommission)) if maxCommission is not None else None,
            priority=priority,
            isActive=isActive,
        )
        session.add(rule)
        session.commit()
        return rule

    return _make


def wallet_of(session, member):
    """Fresh wallet row, bypassing stale identity-map state."""
    return session.query(Wallet).filter_by(memberID=member.memberID).populate_existing().first()


@pytest.fixture
def read_wallet(session):
    def _read(member):
        return wallet_of(session, member)

    return _read
