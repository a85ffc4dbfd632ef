"""
Tests for stored MLM settings.
"""

from decimal import Decimal

import pytest

from models import MLMSettingsRecord
from mlm_engine import SettingsService, MLMSettings, MLMEvents, ErrorKind


@pytest.fixture
def defaults():
    return MLMSettings(maxLevels=5, minWithdrawal=Decimal("500"))


class TestSettingsService:
    """Load and update."""

    @pytest.mark.asyncio
    async def test_defaults_without_row(self, session, defaults):
        settings = await SettingsService(session, defaults).load()

        assert settings == defaults

    @pytest.mark.asyncio
    async def test_null_columns_fall_back_to_defaults(self, session, defaults):
        session.add(MLMSettingsRecord(maxLevels=3))
        session.commit()

        settings = await SettingsService(session, defaults).load()

        assert settings.maxLevels == 3
        assert settings.minWithdrawal == Decimal("500")
        assert settings.isMLMEnabled is True

    @pytest.mark.asyncio
    async def test_update_persists_and_emits(self, session, defaults, captured_events):
        events = captured_events(MLMEvents.SETTINGS_UPDATED)
        service = SettingsService(session, defaults)

        result = await service.update(maxLevels=7, withdrawalFeePercent="2.5", autoApproveCommissions=True)
        reloaded = await SettingsService(session, defaults).load()

        assert result.success
        assert reloaded.maxLevels == 7
        assert reloaded.withdrawalFeePercent == Decimal("2.50")
        assert reloaded.autoApproveCommissions is True
        assert session.query(MLMSettingsRecord).count() == 1
        assert events[0][1]["changes"]["maxLevels"] == 7

    @pytest.mark.asyncio
    async def test_second_update_reuses_row(self, session, defaults):
        service = SettingsService(session, defaults)

        await service.update(minWithdrawal=1000)
        await service.update(defaultSignupBonus="150")

        settings = await service.load()
        assert settings.minWithdrawal == Decimal("1000.00")
        assert settings.defaultSignupBonus == Decimal("150.00")
        assert session.query(MLMSettingsRecord).count() == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("changes", [
        {"maxLevels": 0},
        {"maxLevels": 11},
        {"maxLevels": "5"},
        {"withdrawalFeePercent": 101},
        {"withdrawalFeePercent": -1},
        {"minWithdrawal": -5},
        {"defaultSignupBonus": "lots"},
        {"isMLMEnabled": "yes"},
        {"unknownKnob": 1},
        {"maxLevels": 6, "minWithdrawal": -1},
    ])
    async def test_invalid_changes_write_nothing(self, session, defaults, changes):
        result = await SettingsService(session, defaults).update(**changes)

        assert result.error == ErrorKind.VALIDATION
        assert result.code == "invalid_settings"
        assert session.query(MLMSettingsRecord).count() == 0
