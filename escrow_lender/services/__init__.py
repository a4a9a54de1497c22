"""Service modules"""
from .admin import AdminRateController
from .chain_reader import ChainStateReader
from .lender import LenderService, LenderSession
from .position_cache import PositionCache
from .reconciler import PositionReconciler, UserLocks
from .refresh import RefreshScheduler
from .submitter import TransactionSubmitter
from .sweeper import ReconciliationSweeper, SweepReport

__all__ = [
    "AdminRateController",
    "ChainStateReader",
    "LenderService",
    "LenderSession",
    "PositionCache",
    "PositionReconciler",
    "UserLocks",
    "RefreshScheduler",
    "TransactionSubmitter",
    "ReconciliationSweeper",
    "SweepReport",
]
