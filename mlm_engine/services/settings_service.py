# mlm_engine/services/settings_service.py
"""
Admin-editable MLM settings stored in a single row, with config defaults.
"""
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

from models import MLMSettingsRecord
from mlm_engine.config.settings import MLMSettings, MAX_LEVELS_LIMIT, MAX_PERCENT
from mlm_engine.events.event_bus import eventBus, MLMEvents
from mlm_engine.utils.money import toDecimal, toCents, ZERO
from mlm_engine.utils.results import OperationResult, ErrorKind

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = (
    "isMLMEnabled",
    "maxLevels",
    "minWithdrawal",
    "withdrawalFeePercent",
    "defaultSignupBonus",
    "autoApproveCommissions",
    "autoEnableMLM",
)
FLAG_FIELDS = ("isMLMEnabled", "autoApproveCommissions", "autoEnableMLM")
MONEY_FIELDS = ("minWithdrawal", "defaultSignupBonus")


class SettingsService:
    """Service for loading and updating MLM settings."""

    def __init__(self, session: Session, defaults: MLMSettings = None):
        self.session = session
        self.defaults = defaults or MLMSettings.fromConfig()

    def _getRecord(self):
        return self.session.query(MLMSettingsRecord).order_by(MLMSettingsRecord.settingsID.asc()).first()

    async def load(self) -> MLMSettings:
        """Current settings; a missing row or empty column falls back to defaults."""
        record = self._getRecord()
        if not record:
            return self.defaults

        stored = {}
        for fieldName in SETTINGS_FIELDS:
            value = getattr(record, fieldName)
            if value is None:
                continue
            if fieldName in MONEY_FIELDS or fieldName == "withdrawalFeePercent":
                value = toDecimal(value)
            stored[fieldName] = value

        return self.defaults.withChanges(**stored)

    async def update(self, **changes) -> OperationResult:
        """Validate and store changes; nothing is written when any value is invalid."""
        cleaned, error = self._validate(changes)
        if error:
            logger.warning(f"Settings update refused: {error}")
            return OperationResult.fail(ErrorKind.VALIDATION, "invalid_settings", error)

        try:
            record = self._getRecord()
            if not record:
                record = MLMSettingsRecord()
                self.session.add(record)
            for fieldName, value in cleaned.items():
                setattr(record, fieldName, value)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        settings = await self.load()
        logger.info(f"MLM settings updated: {sorted(cleaned)}")

        await eventBus.emit(MLMEvents.SETTINGS_UPDATED, {"changes": cleaned, "settings": settings.asDict()})
        return OperationResult.ok(settings)

    @staticmethod
    def _validate(changes):
        """Returns (cleaned, error)."""
        unknown = set(changes) - set(SETTINGS_FIELDS)
        if unknown:
            return None, f"unknown settings: {', '.join(sorted(unknown))}"

        cleaned = {}
        for fieldName, value in changes.items():
            if fieldName in FLAG_FIELDS:
                if not isinstance(value, bool):
                    return None, f"{fieldName} must be true or false"
                cleaned[fieldName] = value

            elif fieldName == "maxLevels":
                if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= MAX_LEVELS_LIMIT:
                    return None, f"maxLevels must be between 1 and {MAX_LEVELS_LIMIT}"
                cleaned[fieldName] = value

            elif fieldName == "withdrawalFeePercent":
                fee = toDecimal(value)
                if fee is None or fee < ZERO or fee > MAX_PERCENT:
                    return None, "withdrawalFeePercent must be between 0 and 100"
                cleaned[fieldName] = fee

            else:
                amount = toDecimal(value)
                if amount is None or amount < ZERO:
                    return None, f"{fieldName} must be a non-negative amount"
                cleaned[fieldName] = toCents(amount)

        return cleaned, None
