# mlm_engine/__init__.py
"""
MLM engine - referral hierarchy, commissions and wallet ledger.
"""

# Services
from mlm_engine.services.hierarchy_service import HierarchyService, DownlineNode
from mlm_engine.services.rule_service import CommissionRuleService, RuleTerms
from mlm_engine.services.commission_service import CommissionService, CommissionCalculation
from mlm_engine.services.wallet_service import WalletService, WalletSummary
from mlm_engine.services.settings_service import SettingsService
from mlm_engine.services.rank_service import RankService
from mlm_engine.services.report_service import ReportService

# Models and configuration
from mlm_engine.config.settings import MLMSettings
from mlm_engine.config.ranks import Rank, RANK_CONFIG

# Utilities
from mlm_engine.utils.time_machine import timeMachine
from mlm_engine.utils.results import OperationResult, ErrorKind, CommissionBatchResult
from mlm_engine.utils.pagination import Page

# Events
from mlm_engine.events.event_bus import eventBus, MLMEvents

__all__ = [
    # Services
    'HierarchyService',
    'DownlineNode',
    'CommissionRuleService',
    'RuleTerms',
    'CommissionService',
    'CommissionCalculation',
    'WalletService',
    'WalletSummary',
    'SettingsService',
    'RankService',
    'ReportService',

    # Config
    'MLMSettings',
    'Rank',
    'RANK_CONFIG',

    # Utils
    'timeMachine',
    'OperationResult',
    'ErrorKind',
    'CommissionBatchResult',
    'Page',

    # Events
    'eventBus',
    'MLMEvents',
]
