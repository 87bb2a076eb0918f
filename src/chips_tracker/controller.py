"""Reconciliation between the local cache, the remote store and memory.

The controller is the only owner of the in-memory :class:`DataBundle`. It:
1. Loads settings and the cached snapshot before any network call
2. Syncs from the remote store (or falls back to the demo dataset)
3. Runs periodic auto-sync while enabled
4. Sends writes to the remote store and refreshes with a full sync
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from datetime import date
from enum import Enum
from typing import Any

import structlog

from chips_tracker.config import Settings, get_settings
from chips_tracker.demo import demo_bundle
from chips_tracker.distribution import (
    PeriodTotals,
    WeeklyDistribution,
    compute_weekly_distribution,
    summarize_period,
)
from chips_tracker.errors import ChipsTrackerError, ValidationError
from chips_tracker.events import ControllerEvent, EventListener, EventType, SyncStatus
from chips_tracker.formatting import parse_amount, to_iso_date
from chips_tracker.gateway import RemoteGateway
from chips_tracker.ledger import validate_spend
from chips_tracker.models import DataBundle, ExpenseEntry, FundType, ShiftEntry, WeeklySummary
from chips_tracker.store import CacheStore, JsonFileStore, KeyValueStore, SettingsStore
from chips_tracker.views import (
    DashboardView,
    FundTableView,
    IncomeTrackerView,
    ShiftDraft,
    WeeklyRow,
    build_dashboard,
    build_fund_table,
    build_income_tracker,
    build_shift_draft,
    weekly_rows,
)

logger = structlog.get_logger(__name__)


class ControllerState(str, Enum):
    """Lifecycle of the controller."""

    UNINITIALIZED = "uninitialized"
    LOADING_CACHE = "loading_cache"
    SYNCING = "syncing"
    DEMO = "demo"
    IDLE = "idle"
    ERROR = "error"


def validate_shift(entry: ShiftEntry) -> None:
    if entry.date is None:
        raise ValidationError("Shift date is required", field="date")
    if not entry.shift:
        raise ValidationError("Shift time is required", field="shift")
    if entry.cfr <= 0:
        raise ValidationError("CFR must be greater than zero", field="cfr")


def validate_expense(entry: ExpenseEntry) -> None:
    if entry.date is None:
        raise ValidationError("Expense date is required", field="date")
    if not entry.items:
        raise ValidationError("Add at least one expense", field="items")


def validate_period(start: date | None, end: date | None) -> tuple[date, date]:
    if start is None or end is None:
        raise ValidationError("Select dates first", field="start" if start is None else "end")
    if start > end:
        raise ValidationError("Period start must not be after its end", field="start")
    return start, end


def validate_weekly(summary: WeeklySummary) -> None:
    validate_period(summary.start, summary.end)
    if summary.ggr <= 0:
        raise ValidationError("GGR must be greater than zero", field="ggr")


def _require_row(row_index: int | None) -> int:
    if row_index is None or row_index < 1:
        raise ValidationError("A saved row index is required", field="row_index")
    return row_index


class SyncController:
    """Keeps the dashboard data consistent with the cache and the remote store.

    Usage:
        controller = SyncController()
        await controller.start()

        view = controller.dashboard()
        await controller.save_shift(entry)

        await controller.stop()
    """

    def __init__(
        self,
        gateway: RemoteGateway | None = None,
        store: KeyValueStore | None = None,
        auto_sync_interval: float | None = None,
        today: Callable[[], date] | None = None,
    ):
        settings = get_settings()
        self._gateway = gateway or RemoteGateway()
        store = store if store is not None else JsonFileStore()
        self._cache = CacheStore(store)
        self._settings_store = SettingsStore(store)
        self._interval = auto_sync_interval or settings.auto_sync_interval
        self._today = today or date.today

        self._settings = Settings(web_app_url=self._gateway.url)
        self._data = DataBundle()
        self._state = ControllerState.UNINITIALIZED
        self._status = SyncStatus.IDLE
        self._last_error: ChipsTrackerError | None = None
        self._last_synced_at: int | None = None

        self._sync_lock = asyncio.Lock()
        self._auto_sync_task: asyncio.Task[None] | None = None
        self._pending_syncs: set[asyncio.Task[bool]] = set()
        self._listeners: list[EventListener] = []

        self._logger = logger.bind(component="sync_controller")

    # === State ===

    @property
    def data(self) -> DataBundle:
        """Current bundle. Replaced on every sync; do not mutate."""
        return self._data

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def last_error(self) -> ChipsTrackerError | None:
        return self._last_error

    @property
    def is_busy(self) -> bool:
        return self._sync_lock.locked()

    @property
    def is_demo(self) -> bool:
        return not self._gateway.is_configured

    @property
    def auto_sync_active(self) -> bool:
        return self._auto_sync_task is not None and not self._auto_sync_task.done()

    # === Notifications ===

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event_type: EventType, message: str = "", **data: Any) -> None:
        event = ControllerEvent(
            event_type=event_type, status=self._status, message=message, data=data
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                self._logger.error("listener_error", event=event_type.value, error=str(e))

    # === Startup / shutdown ===

    def load_local(self) -> None:
        """Load settings and the cached snapshot. Never touches the network."""
        self._state = ControllerState.LOADING_CACHE
        self._settings = self._settings_store.load(defaults=self._settings)
        self._gateway.url = self._settings.web_app_url

        snapshot = self._cache.load()
        if snapshot is not None:
            self._data = snapshot.data
            self._last_synced_at = snapshot.timestamp
            self._logger.info("cache_loaded", timestamp=snapshot.timestamp)
            self._emit(EventType.CACHE_LOADED, timestamp=snapshot.timestamp)
        else:
            self._logger.info("cache_empty")
        self._state = ControllerState.IDLE

    async def start(self) -> None:
        """Show cached data, sync, then start auto-sync if enabled."""
        self.load_local()
        await self.sync()
        self.setup_auto_sync()

    async def stop(self) -> None:
        """Cancel auto-sync, let in-flight syncs finish, close the HTTP client."""
        await self._cancel_auto_sync()
        await self._drain_pending_syncs()
        await self._gateway.close()
        self._logger.info("controller_stopped")

    # === Sync ===

    async def sync(self, wait: bool = False) -> bool:
        """Refresh the in-memory bundle.

        Args:
            wait: Queue behind a sync already in flight instead of skipping.

        Returns:
            True when new data (remote or demo) was loaded.
        """
        if self._sync_lock.locked() and not wait:
            self._logger.debug("sync_skipped_busy")
            return False

        async with self._sync_lock:
            if not self._gateway.is_configured:
                self._load_demo()
                return True

            previous_state, previous_status = self._state, self._status
            self._state = ControllerState.SYNCING
            self._status = SyncStatus.SYNCING
            self._emit(EventType.SYNC_STARTED)

            try:
                payload = await self._gateway.get_all_data()
            except asyncio.CancelledError:
                self._state, self._status = previous_state, previous_status
                self._logger.info("sync_cancelled")
                raise
            except ChipsTrackerError as e:
                # Keep stale data and the cache as they were.
                self._last_error = e
                self._state = ControllerState.ERROR
                self._status = SyncStatus.ERROR
                self._logger.warning("sync_failed", error=e.message, error_type=type(e).__name__)
                self._emit(EventType.SYNC_FAILED, message=e.message)
                return False

            bundle = DataBundle.from_dict(payload)
            self._data = bundle
            snapshot = self._cache.save(bundle)
            self._last_synced_at = snapshot.timestamp
            self._last_error = None
            self._state = ControllerState.IDLE
            self._status = SyncStatus.SYNCED
            self._logger.info(
                "sync_completed",
                cfr=len(bundle.cfr),
                weekly=len(bundle.weekly),
                last_net_chips=str(bundle.last_net_chips),
            )
            self._emit(EventType.SYNC_COMPLETED, message="Data synced!")
            return True

    def _load_demo(self) -> None:
        self._data = demo_bundle()
        self._state = ControllerState.DEMO
        self._status = SyncStatus.DEMO
        self._last_error = None
        self._logger.info("demo_mode")
        self._emit(EventType.DEMO_MODE, message="Running in Demo Mode")
        self._state = ControllerState.IDLE

    # === Auto-sync ===

    def setup_auto_sync(self) -> None:
        """(Re)create the auto-sync task. Must run inside an event loop."""
        if self._auto_sync_task is not None:
            self._auto_sync_task.cancel()
            self._auto_sync_task = None

        if self._settings.auto_sync and self._gateway.is_configured:
            self._auto_sync_task = asyncio.get_running_loop().create_task(
                self._auto_sync_loop()
            )
            self._logger.info("auto_sync_enabled", interval=self._interval)

    async def _cancel_auto_sync(self) -> None:
        task, self._auto_sync_task = self._auto_sync_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _auto_sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            # Each tick runs in its own task so cancelling the timer never
            # interrupts a fetch already in flight.
            task = asyncio.create_task(self.sync())
            self._pending_syncs.add(task)
            task.add_done_callback(self._pending_syncs.discard)
            try:
                await asyncio.shield(task)
            except Exception as e:
                self._logger.error("auto_sync_error", error=str(e))

    async def _drain_pending_syncs(self) -> None:
        if self._pending_syncs:
            await asyncio.gather(*self._pending_syncs, return_exceptions=True)

    # === Settings ===

    async def save_settings(self, settings: Settings) -> None:
        """Persist settings, rebind the endpoint and restart auto-sync."""
        self._settings_store.save(settings)
        self._settings = settings
        self._gateway.url = settings.web_app_url
        self._emit(EventType.SETTINGS_CHANGED, configured=settings.is_configured)
        self.setup_auto_sync()
        if settings.is_configured:
            await self.sync(wait=True)

    async def test_connection(self, url: str | None = None) -> tuple[bool, str]:
        """Check the endpoint; a given ``url`` is saved first."""
        if url is not None:
            if not url.strip():
                return False, "Enter URL"
            self._settings = self._settings.model_copy(update={"web_app_url": url.strip()})
            self._settings_store.save(self._settings)
            self._gateway.url = self._settings.web_app_url
        return await self._gateway.test_connection()

    # === Writes ===

    async def _refresh_after_write(self, action: str, **context: Any) -> bool:
        self._logger.info(action, **context)
        self._emit(EventType.DATA_CHANGED, action=action, **context)
        return await self.sync(wait=True)

    async def save_shift(self, entry: ShiftEntry) -> bool:
        """Add or (with a row index) update a shift, then resync."""
        validate_shift(entry)
        if entry.row_index is not None:
            await self._gateway.update_cfr_entry(entry)
            return await self._refresh_after_write("shift_updated", row_index=entry.row_index)
        await self._gateway.add_cfr_entry(entry)
        return await self._refresh_after_write("shift_added", day=str(entry.date))

    async def delete_shift(self, row_index: int) -> bool:
        await self._gateway.delete_cfr_entry(_require_row(row_index))
        return await self._refresh_after_write("shift_deleted", row_index=row_index)

    async def save_expense(self, entry: ExpenseEntry) -> bool:
        """Add or (with a row index) update a day's expenses, then resync."""
        validate_expense(entry)
        if entry.row_index is not None:
            await self._gateway.update_expenses_entry(entry)
            return await self._refresh_after_write("expense_updated", row_index=entry.row_index)
        await self._gateway.add_expenses_entry(entry)
        return await self._refresh_after_write("expense_added", day=str(entry.date))

    async def delete_expense(self, row_index: int) -> bool:
        await self._gateway.delete_expenses_entry(_require_row(row_index))
        return await self._refresh_after_write("expense_deleted", row_index=row_index)

    async def save_weekly(self, summary: WeeklySummary) -> bool:
        """Add or (with a row index) update a weekly summary, then resync."""
        validate_weekly(summary)
        if summary.row_index is not None:
            await self._gateway.update_weekly_summary(summary)
            return await self._refresh_after_write("weekly_updated", row_index=summary.row_index)
        await self._gateway.add_weekly_summary(summary)
        return await self._refresh_after_write("weekly_added", start=str(summary.start))

    async def delete_weekly(self, row_index: int) -> bool:
        await self._gateway.delete_weekly_summary(_require_row(row_index))
        return await self._refresh_after_write("weekly_deleted", row_index=row_index)

    async def add_fund_spend(
        self, fund_type: FundType, row_index: int, amount: Any, remarks: str
    ) -> bool:
        """Record a spend against one fund period, then resync."""
        value, text = validate_spend(amount, remarks)
        fund_type = FundType(fund_type)
        await self._gateway.add_fund_expense(fund_type, _require_row(row_index), value, text)
        return await self._refresh_after_write(
            "fund_spend_added", fund=fund_type.value, row_index=row_index
        )

    # === Weekly calculation ===

    async def calculate_period(self, start: Any, end: Any) -> PeriodTotals:
        """Loader salary and other expenses for a period.

        Uses the remote aggregate when configured, otherwise sums the
        in-memory entries.
        """
        start_date, end_date = validate_period(to_iso_date(start), to_iso_date(end))

        if not self._gateway.is_configured:
            return summarize_period(self._data.cfr, self._data.expenses, start_date, end_date)

        result = await self._gateway.calculate_weekly_summary(
            start_date.isoformat(), end_date.isoformat()
        )
        return PeriodTotals(
            loader_salary=parse_amount(result.get("loaderSalary")),
            other_expenses=parse_amount(result.get("otherExpenses")),
        )

    @staticmethod
    def preview_weekly(ggr: Any, loader_salary: Any, other_expenses: Any) -> WeeklyDistribution:
        """Distribution shown before a weekly summary is saved."""
        return compute_weekly_distribution(ggr, loader_salary, other_expenses)

    # === View models ===

    def dashboard(self) -> DashboardView:
        return build_dashboard(self._data)

    def income_tracker(self, today: date | None = None) -> IncomeTrackerView:
        return build_income_tracker(self._data, today or self._today())

    def weekly_table(self) -> list[WeeklyRow]:
        return weekly_rows(self._data)

    def fund_table(self, fund_type: FundType) -> FundTableView:
        return build_fund_table(self._data, fund_type)

    def new_shift_draft(self, today: date | None = None) -> ShiftDraft:
        return build_shift_draft(self._data, today or self._today())

    def get_status(self) -> dict[str, Any]:
        """Summary of controller state for diagnostics."""
        return {
            "state": self._state.value,
            "status": self._status.value,
            "configured": self._gateway.is_configured,
            "auto_sync": self.auto_sync_active,
            "last_synced_at": self._last_synced_at,
            "last_error": self._last_error.message if self._last_error else None,
        }
