"""CHIPS tracker - shift receipts, weekly profit distribution and fund ledgers."""

__version__ = "0.1.0"

from chips_tracker.config import Settings, configure_logging, get_settings
from chips_tracker.controller import ControllerState, SyncController
from chips_tracker.distribution import (
    compute_chip_continuity,
    compute_fund_remaining,
    compute_weekly_distribution,
)
from chips_tracker.errors import (
    ChipsTrackerError,
    NetworkError,
    NotConfiguredError,
    RemoteError,
    ValidationError,
)
from chips_tracker.events import ControllerEvent, EventType, SyncStatus
from chips_tracker.gateway import RemoteGateway
from chips_tracker.ledger import aggregate_fund, append_spend
from chips_tracker.models import (
    DataBundle,
    ExpenseEntry,
    FundRecord,
    FundType,
    LineItem,
    ShiftEntry,
    ShiftWindow,
    WeeklySummary,
)
from chips_tracker.store import CacheStore, JsonFileStore, MemoryStore, SettingsStore

__all__ = [
    # Version
    "__version__",
    # Models
    "DataBundle",
    "ExpenseEntry",
    "FundRecord",
    "FundType",
    "LineItem",
    "ShiftEntry",
    "ShiftWindow",
    "WeeklySummary",
    # Engine & ledger
    "compute_weekly_distribution",
    "compute_chip_continuity",
    "compute_fund_remaining",
    "aggregate_fund",
    "append_spend",
    # Sync
    "SyncController",
    "ControllerState",
    "ControllerEvent",
    "EventType",
    "SyncStatus",
    "RemoteGateway",
    # Persistence
    "CacheStore",
    "SettingsStore",
    "JsonFileStore",
    "MemoryStore",
    # Errors
    "ChipsTrackerError",
    "NotConfiguredError",
    "NetworkError",
    "RemoteError",
    "ValidationError",
    # Config
    "Settings",
    "get_settings",
    "configure_logging",
]
