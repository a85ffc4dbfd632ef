"""
Tests for wallets and the withdrawal lifecycle.
"""

from decimal import Decimal

import pytest
from sqlalchemy import text

from models import Wallet, Withdrawal
from mlm_engine import WalletService, MLMEvents, ErrorKind

BANK_DETAILS = {"accountTitle": "A. Member", "accountNumber": "PK00123", "bankName": "Meezan"}


@pytest.fixture
def funded(make_member, make_wallet):
    """Member with 1,500 available."""
    member = make_member("Rich")
    make_wallet(member, balance="1500")
    return member


@pytest.fixture
def fee_settings(settings):
    return settings.withChanges(withdrawalFeePercent=Decimal("2"))


class TestWallet:
    """Wallet creation and summary."""

    @pytest.mark.asyncio
    async def test_get_or_create_is_idempotent(self, session, make_member):
        member = make_member("New")
        service = WalletService(session)

        first = await service.getOrCreateWallet(member.memberID)
        second = await service.getOrCreateWallet(member.memberID)

        assert first.walletID == second.walletID
        assert session.query(Wallet).count() == 1
        assert second.balance == 0

    @pytest.mark.asyncio
    async def test_adjust_refuses_overdraft(self, session, funded, read_wallet):
        service = WalletService(session)

        refused = service.adjustBalances(funded.memberID, balance=Decimal("-1500.01"))
        accepted = service.adjustBalances(funded.memberID, balance=Decimal("-1500"))
        session.commit()

        assert refused is False
        assert accepted is True
        assert read_wallet(funded).balance == 0

    @pytest.mark.asyncio
    async def test_summary(self, session, funded, fee_settings):
        service = WalletService(session)
        paid = await service.requestWithdrawal(funded.memberID, 500, "BANK", BANK_DETAILS, fee_settings)
        await service.markPaid(paid.value, actorId=1)
        await service.requestWithdrawal(funded.memberID, 600, "JAZZCASH", {"walletNumber": "0300"}, fee_settings)

        summary = await service.getSummary(funded.memberID)

        assert summary.balance == Decimal("400.00")
        assert summary.totalWithdrawn == Decimal("490.00")
        assert summary.pendingWithdrawalAmount == Decimal("600.00")
        assert summary.totalEarned == Decimal("1500.00")

    @pytest.mark.asyncio
    async def test_amounts_are_stored_as_whole_cents(self, session, funded):
        WalletService(session).adjustBalances(funded.memberID, balance=Decimal("0.10"), pending=Decimal("0.20"))
        session.commit()

        row = session.execute(
            text("SELECT balance, pending FROM wallets WHERE memberID = :memberId"), {"memberId": funded.memberID}
        ).one()

        assert tuple(row) == (150010, 20)


class TestWithdrawalRequest:
    """Withdrawal request validation and hold."""

    @pytest.mark.asyncio
    async def test_request_holds_amount_and_computes_fee(
            self, session, make_member, make_wallet, fee_settings, read_wallet, captured_events):
        events = captured_events(MLMEvents.WITHDRAWAL_REQUESTED)
        member = make_member("Payee")
        make_wallet(member, balance="1000")

        result = await WalletService(session).requestWithdrawal(
            member.memberID, "1000", "bank", BANK_DETAILS, fee_settings
        )

        assert result.success
        withdrawal = session.query(Withdrawal).one()
        assert withdrawal.withdrawalID == result.value
        assert withdrawal.fee == Decimal("20.00")
        assert withdrawal.netAmount == Decimal("980.00")
        assert withdrawal.status == "PENDING"
        assert withdrawal.method == "BANK"
        assert read_wallet(member).balance == 0
        assert events[0][1]["netAmount"] == Decimal("980.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -10, "abc", None, "10.005"])
    async def test_invalid_amount(self, session, funded, settings, amount):
        result = await WalletService(session).requestWithdrawal(funded.memberID, amount, "BANK", BANK_DETAILS, settings)

        assert result.error == ErrorKind.VALIDATION
        assert result.code == "invalid_amount"

    @pytest.mark.asyncio
    async def test_below_minimum(self, session, funded, settings):
        result = await WalletService(session).requestWithdrawal(funded.memberID, 499, "BANK", BANK_DETAILS, settings)

        assert result.code == "below_minimum"

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, session, funded, settings, read_wallet):
        result = await WalletService(session).requestWithdrawal(funded.memberID, 1600, "BANK", BANK_DETAILS, settings)

        assert result.error == ErrorKind.INSUFFICIENT_FUNDS
        assert result.userMessage == "Insufficient balance"
        assert read_wallet(funded).balance == Decimal("1500.00")
        assert session.query(Withdrawal).count() == 0

    @pytest.mark.asyncio
    async def test_full_balance_after_cent_credits(self, session, make_member, make_wallet, settings, read_wallet):
        member = make_member("Saver")
        make_wallet(member)
        service = WalletService(session)
        credits = [Decimal(a) for a in ("176.12", "746.07", "82.72", "334.33", "154.56", "649.38")]
        for amount in credits:
            service.adjustBalances(member.memberID, balance=amount, totalEarned=amount)
            session.commit()

        result = await service.requestWithdrawal(member.memberID, sum(credits), "BANK", BANK_DETAILS, settings)

        assert result.success
        assert read_wallet(member).balance == 0
        assert session.query(Withdrawal).one().amount == Decimal("2143.18")

    @pytest.mark.asyncio
    async def test_member_without_wallet_has_no_balance(self, session, make_member, settings):
        member = make_member("Empty")

        result = await WalletService(session).requestWithdrawal(member.memberID, 500, "BANK", BANK_DETAILS, settings)

        assert result.error == ErrorKind.INSUFFICIENT_FUNDS

    @pytest.mark.asyncio
    async def test_unknown_method(self, session, funded, settings):
        result = await WalletService(session).requestWithdrawal(funded.memberID, 600, "PAYPAL", {}, settings)

        assert result.code == "invalid_method"

    @pytest.mark.asyncio
    async def test_missing_method_details(self, session, funded, settings):
        result = await WalletService(session).requestWithdrawal(
            funded.memberID, 600, "CRYPTO", {"cryptoAddress": "TX1"}, settings
        )

        assert result.code == "missing_method_details"
        assert "cryptoNetwork" in result.detail

    @pytest.mark.asyncio
    async def test_unknown_member(self, session, settings):
        result = await WalletService(session).requestWithdrawal(404, 600, "BANK", BANK_DETAILS, settings)

        assert result.error == ErrorKind.NOT_FOUND


class TestWithdrawalLifecycle:
    """Approve, pay and reject."""

    @pytest.fixture
    async def requested(self, session, funded, fee_settings):
        result = await WalletService(session).requestWithdrawal(
            funded.memberID, 1000, "EASYPAISA", {"walletNumber": "0345"}, fee_settings
        )
        return result.value

    @pytest.mark.asyncio
    async def test_approve_then_pay(self, session, funded, requested, read_wallet):
        service = WalletService(session)

        approved = await service.approveWithdrawal(requested, actorId=7)
        doubleApprove = await service.approveWithdrawal(requested, actorId=7)
        paid = await service.markPaid(requested, actorId=7)
        rejectAfterPaid = await service.rejectWithdrawal(requested, actorId=7)

        assert approved.success
        assert doubleApprove.error == ErrorKind.STATE_CONFLICT
        assert paid.success
        assert rejectAfterPaid.error == ErrorKind.STATE_CONFLICT
        withdrawal = session.query(Withdrawal).populate_existing().one()
        assert withdrawal.status == "PAID"
        assert withdrawal.processedBy == "7"
        assert withdrawal.processedAt is not None
        assert read_wallet(funded).balance == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_pay_directly_from_pending(self, session, requested):
        result = await WalletService(session).markPaid(requested, actorId=1)

        assert result.success

    @pytest.mark.asyncio
    async def test_reject_refunds_balance(self, session, funded, requested, read_wallet, captured_events):
        events = captured_events(MLMEvents.WITHDRAWAL_REJECTED)
        service = WalletService(session)

        result = await service.rejectWithdrawal(requested, actorId=3, reason="wrong account")
        again = await service.rejectWithdrawal(requested, actorId=3)

        assert result.success
        assert again.error == ErrorKind.STATE_CONFLICT
        assert read_wallet(funded).balance == Decimal("1500.00")
        withdrawal = session.query(Withdrawal).populate_existing().one()
        assert withdrawal.status == "REJECTED"
        assert withdrawal.notes == "wrong account"
        assert events[0][1]["amount"] == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_reject_after_approve_refunds_balance(self, session, funded, requested, read_wallet):
        service = WalletService(session)

        approved = await service.approveWithdrawal(requested, actorId=3)
        rejected = await service.rejectWithdrawal(requested, actorId=3, reason="bounced")

        assert approved.success
        assert rejected.success
        assert read_wallet(funded).balance == Decimal("1500.00")
        assert session.query(Withdrawal).populate_existing().one().status == "REJECTED"

    @pytest.mark.asyncio
    async def test_request_beyond_balance_left_by_open_withdrawal(self, session, funded, requested, settings,
                                                                   read_wallet):
        result = await WalletService(session).requestWithdrawal(
            funded.memberID, 600, "BANK", BANK_DETAILS, settings
        )

        assert result.error == ErrorKind.INSUFFICIENT_FUNDS
        assert read_wallet(funded).balance == Decimal("500.00")
        assert session.query(Withdrawal).count() == 1
        assert session.query(Withdrawal).one().status == "PENDING"

    @pytest.mark.asyncio
    async def test_transitions_on_missing_withdrawal(self, session):
        service = WalletService(session)

        for result in (
                await service.approveWithdrawal(9, 1),
                await service.markPaid(9, 1),
                await service.rejectWithdrawal(9, 1),
        ):
            assert result.error == ErrorKind.NOT_FOUND
            assert result.code == "withdrawal_not_found"


class TestWithdrawalListings:
    """History and admin listings."""

    @pytest.mark.asyncio
    async def test_listings_and_stats(self, session, funded, settings):
        service = WalletService(session)
        first = await service.requestWithdrawal(funded.memberID, 500, "BANK", BANK_DETAILS, settings)
        second = await service.requestWithdrawal(funded.memberID, 500, "BANK", BANK_DETAILS, settings)
        third = await service.requestWithdrawal(funded.memberID, 500, "JAZZCASH", {"walletNumber": "1"}, settings)
        await service.rejectWithdrawal(second.value, actorId=1)

        history = await service.getWithdrawalHistory(funded.memberID)
        pending = await service.getPendingWithdrawals()
        listing = await service.listWithdrawals()
        bankOnly = await service.listWithdrawals(method="BANK", status="PENDING")

        assert [w.withdrawalID for w in history.data] == [third.value, second.value, first.value]
        assert [w.withdrawalID for w in pending.data] == [first.value, third.value]
        assert listing.stats["total"] == Decimal("1500.00")
        assert listing.stats["pending"] == Decimal("1000.00")
        assert listing.stats["rejected"] == Decimal("500.00")
        assert listing.stats["pendingCount"] == 2
        assert bankOnly.total == 1
