"""Tests for the reconciliation/sync controller."""

import asyncio
import json
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from chips_tracker.config import Settings
from chips_tracker.controller import ControllerState, SyncController
from chips_tracker.demo import demo_bundle
from chips_tracker.errors import NetworkError, NotConfiguredError, RemoteError, ValidationError
from chips_tracker.events import EventType, SyncStatus
from chips_tracker.gateway import RemoteGateway
from chips_tracker.models import (
    DataBundle,
    ExpenseEntry,
    FundType,
    LineItem,
    ShiftEntry,
    ShiftWindow,
    WeeklySummary,
)
from chips_tracker.store import CACHE_KEY, SETTINGS_KEY, CacheStore, JsonFileStore, MemoryStore


def _controller(store, interval=30.0):
    return SyncController(
        gateway=RemoteGateway(url=""),
        store=store,
        auto_sync_interval=interval,
        today=lambda: date(2025, 2, 3),
    )


@pytest.fixture
def controller(configured_store, sync_payload):
    """Controller with a configured endpoint and a stubbed getData."""
    ctrl = _controller(configured_store)
    ctrl.load_local()
    ctrl._gateway.get_all_data = AsyncMock(return_value=sync_payload)
    return ctrl


@pytest.fixture
def events(controller):
    received = []
    controller.subscribe(received.append)
    return received


def _shift(**overrides):
    values = dict(
        date=date(2025, 2, 4),
        shift=ShiftWindow.NOON_TO_EIGHT,
        cfr=Decimal("20000"),
        chips_in=[LineItem(Decimal("51000"), "Starting Chips")],
        ending_chips=Decimal("40000"),
    )
    values.update(overrides)
    return ShiftEntry(**values)


class TestStartup:
    """Tests for cache-first startup."""

    def test_initial_state(self, memory_store):
        ctrl = _controller(memory_store)
        assert ctrl.state is ControllerState.UNINITIALIZED
        assert ctrl.data.is_empty

    def test_load_local_uses_cache_without_network(self, configured_store):
        CacheStore(configured_store).save(demo_bundle(), timestamp=123)
        ctrl = _controller(configured_store)
        ctrl._gateway.get_all_data = AsyncMock()

        ctrl.load_local()

        assert ctrl.data == demo_bundle()
        assert ctrl.state is ControllerState.IDLE
        assert ctrl.settings.web_app_url.startswith("https://")
        assert ctrl._gateway.is_configured
        ctrl._gateway.get_all_data.assert_not_awaited()

    def test_load_local_survives_undecodable_cache_file(self, tmp_path):
        (tmp_path / f"{CACHE_KEY}.json").write_bytes(b"\xff\xfe{broken")
        ctrl = _controller(JsonFileStore(tmp_path))

        ctrl.load_local()

        assert ctrl.data.is_empty
        assert ctrl.state is ControllerState.IDLE

    def test_load_local_without_cache(self, memory_store):
        ctrl = _controller(memory_store)
        ctrl.load_local()
        assert ctrl.data.is_empty
        assert ctrl.is_demo

    @pytest.mark.asyncio
    async def test_start_shows_cache_then_syncs(self, configured_store, sync_payload):
        CacheStore(configured_store).save(demo_bundle(), timestamp=123)
        ctrl = _controller(configured_store)
        seen = []
        ctrl.subscribe(lambda e: seen.append((e.event_type, len(ctrl.data.cfr))))

        async def fetch():
            # Cached data is already in memory when the fetch starts
            assert ctrl.data == demo_bundle()
            return sync_payload

        ctrl._gateway.get_all_data = AsyncMock(side_effect=fetch)

        await ctrl.start()

        assert seen[0][0] is EventType.CACHE_LOADED
        assert ctrl.status is SyncStatus.SYNCED
        assert ctrl.data.last_net_chips == Decimal("51000")
        await ctrl.stop()


class TestDemoMode:
    """Tests for the unconfigured fallback."""

    @pytest.mark.asyncio
    async def test_sync_unconfigured_loads_demo(self, memory_store):
        """No endpoint: demo data, Demo Mode status, cache untouched."""
        ctrl = _controller(memory_store)
        ctrl.load_local()
        ctrl._gateway.call = AsyncMock()

        assert await ctrl.sync() is True

        assert ctrl.data == demo_bundle()
        assert ctrl.status is SyncStatus.DEMO
        assert ctrl.is_demo
        assert memory_store.get(CACHE_KEY) is None
        ctrl._gateway.call.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_demo_does_not_overwrite_existing_cache(self, memory_store):
        CacheStore(memory_store).save(DataBundle(), timestamp=7)
        before = memory_store.get(CACHE_KEY)
        ctrl = _controller(memory_store)
        ctrl.load_local()

        await ctrl.sync()

        assert memory_store.get(CACHE_KEY) == before

    @pytest.mark.asyncio
    async def test_demo_event(self, memory_store):
        ctrl = _controller(memory_store)
        received = []
        ctrl.subscribe(received.append)

        await ctrl.sync()

        assert received[-1].event_type is EventType.DEMO_MODE
        assert received[-1].status is SyncStatus.DEMO

    @pytest.mark.asyncio
    async def test_writes_fail_when_unconfigured(self, memory_store):
        ctrl = _controller(memory_store)
        with pytest.raises(NotConfiguredError):
            await ctrl.save_shift(_shift())

    @pytest.mark.asyncio
    async def test_calculate_period_locally(self, memory_store):
        ctrl = _controller(memory_store)
        await ctrl.sync()

        totals = await ctrl.calculate_period("2025-01-01", "2025-01-07")

        assert totals.loader_salary == Decimal("0")
        assert totals.other_expenses == Decimal("7500")


class TestSync:
    """Tests for configured sync."""

    @pytest.mark.asyncio
    async def test_success_replaces_state_and_writes_cache(self, controller, configured_store, events):
        assert await controller.sync() is True

        assert controller.status is SyncStatus.SYNCED
        assert controller.state is ControllerState.IDLE
        assert len(controller.data.cfr) == 2
        assert controller.data.last_net_chips == Decimal("51000")
        cached = CacheStore(configured_store).load()
        assert cached.data == controller.data
        assert [e.event_type for e in events] == [EventType.SYNC_STARTED, EventType.SYNC_COMPLETED]

    @pytest.mark.asyncio
    async def test_replaces_wholesale(self, controller):
        await controller.sync()
        controller._gateway.get_all_data = AsyncMock(return_value={"cfr": [], "lastNetChips": 5})

        await controller.sync()

        assert controller.data.cfr == ()
        assert controller.data.weekly == ()
        assert controller.data.last_net_chips == Decimal("5")

    @pytest.mark.asyncio
    async def test_network_failure_keeps_memory_and_cache(self, controller, configured_store, events):
        """A failed fetch leaves data and cache exactly as they were."""
        await controller.sync()
        data_before = controller.data
        cache_before = configured_store.get(CACHE_KEY)
        controller._gateway.get_all_data = AsyncMock(side_effect=NetworkError("offline"))

        assert await controller.sync() is False

        assert controller.data is data_before
        assert configured_store.get(CACHE_KEY) == cache_before
        assert controller.status is SyncStatus.ERROR
        assert controller.state is ControllerState.ERROR
        assert isinstance(controller.last_error, NetworkError)
        assert events[-1].event_type is EventType.SYNC_FAILED
        assert events[-1].message == "offline"

    @pytest.mark.asyncio
    async def test_remote_error_message_surfaced(self, controller):
        controller._gateway.get_all_data = AsyncMock(side_effect=RemoteError("Sheet missing"))

        await controller.sync()

        assert controller.last_error.message == "Sheet missing"
        assert controller.get_status()["last_error"] == "Sheet missing"

    @pytest.mark.asyncio
    async def test_recovers_after_error(self, controller, sync_payload):
        controller._gateway.get_all_data = AsyncMock(side_effect=[NetworkError("x"), sync_payload])

        await controller.sync()
        await controller.sync()

        assert controller.status is SyncStatus.SYNCED
        assert controller.last_error is None

    @pytest.mark.asyncio
    async def test_response_without_data_keeps_memory_and_cache(
        self, controller, configured_store, sync_payload
    ):
        """A success envelope with no data never empties the bundle."""
        del controller._gateway.get_all_data
        controller._gateway.call = AsyncMock(
            side_effect=[{"success": True, "data": sync_payload}, {"success": True}]
        )
        await controller.sync()
        data_before = controller.data
        cache_before = configured_store.get(CACHE_KEY)

        assert await controller.sync() is False

        assert controller.data is data_before
        assert len(controller.data.cfr) == 2
        assert configured_store.get(CACHE_KEY) == cache_before
        assert controller.status is SyncStatus.ERROR
        assert isinstance(controller.last_error, NetworkError)

    @pytest.mark.asyncio
    async def test_cancelled_sync_restores_status(self, controller, sync_payload):
        await controller.sync()

        async def hang():
            await asyncio.Event().wait()

        controller._gateway.get_all_data = AsyncMock(side_effect=hang)
        task = asyncio.create_task(controller.sync())
        await asyncio.sleep(0)
        assert controller.status is SyncStatus.SYNCING

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.status is SyncStatus.SYNCED
        assert controller.state is ControllerState.IDLE
        assert not controller.is_busy

    @pytest.mark.asyncio
    async def test_overlapping_sync_is_skipped(self, controller, sync_payload):
        release = asyncio.Event()

        async def slow_fetch():
            await release.wait()
            return sync_payload

        controller._gateway.get_all_data = AsyncMock(side_effect=slow_fetch)

        first = asyncio.create_task(controller.sync())
        await asyncio.sleep(0)
        assert controller.is_busy

        assert await controller.sync() is False

        release.set()
        assert await first is True
        assert controller._gateway.get_all_data.await_count == 1

    @pytest.mark.asyncio
    async def test_listener_errors_do_not_break_sync(self, controller):
        def broken(event):
            raise RuntimeError("render failed")

        controller.subscribe(broken)

        assert await controller.sync() is True

    @pytest.mark.asyncio
    async def test_unsubscribe(self, controller):
        received = []
        unsubscribe = controller.subscribe(received.append)
        unsubscribe()

        await controller.sync()

        assert received == []


class TestWrites:
    """Tests for mutating operations."""

    @pytest.mark.asyncio
    async def test_add_shift_then_full_sync(self, controller):
        controller._gateway.add_cfr_entry = AsyncMock(return_value={"success": True})

        assert await controller.save_shift(_shift()) is True

        controller._gateway.add_cfr_entry.assert_awaited_once()
        controller._gateway.get_all_data.assert_awaited_once()
        # State comes from the refreshed payload, not a local patch
        assert len(controller.data.cfr) == 2

    @pytest.mark.asyncio
    async def test_update_shift_with_row_index(self, controller):
        controller._gateway.update_cfr_entry = AsyncMock(return_value={"success": True})
        controller._gateway.add_cfr_entry = AsyncMock()

        await controller.save_shift(_shift(row_index=3))

        controller._gateway.update_cfr_entry.assert_awaited_once()
        controller._gateway.add_cfr_entry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_shift_never_reaches_network(self, controller):
        controller._gateway.add_cfr_entry = AsyncMock()

        with pytest.raises(ValidationError) as exc_info:
            await controller.save_shift(_shift(cfr=Decimal("0")))

        assert exc_info.value.field == "cfr"
        controller._gateway.add_cfr_entry.assert_not_awaited()
        controller._gateway.get_all_data.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_shift_requires_date(self, controller):
        with pytest.raises(ValidationError):
            await controller.save_shift(_shift(date=None))

    @pytest.mark.asyncio
    async def test_remote_failure_aborts_without_sync(self, controller):
        controller._gateway.add_cfr_entry = AsyncMock(side_effect=RemoteError("Locked"))

        with pytest.raises(RemoteError):
            await controller.save_shift(_shift())

        controller._gateway.get_all_data.assert_not_awaited()
        assert controller.data.is_empty

    @pytest.mark.asyncio
    async def test_delete_shift(self, controller):
        controller._gateway.delete_cfr_entry = AsyncMock(return_value={"success": True})

        await controller.delete_shift(3)

        controller._gateway.delete_cfr_entry.assert_awaited_once_with(3)
        controller._gateway.get_all_data.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_requires_row_index(self, controller):
        controller._gateway.delete_cfr_entry = AsyncMock()
        with pytest.raises(ValidationError):
            await controller.delete_shift(0)
        controller._gateway.delete_cfr_entry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expense_requires_items(self, controller):
        controller._gateway.add_expenses_entry = AsyncMock()
        with pytest.raises(ValidationError) as exc_info:
            await controller.save_expense(ExpenseEntry(date=date(2025, 2, 4), items=[]))
        assert exc_info.value.field == "items"
        controller._gateway.add_expenses_entry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_save_and_delete_expense(self, controller):
        controller._gateway.add_expenses_entry = AsyncMock(return_value={"success": True})
        controller._gateway.update_expenses_entry = AsyncMock(return_value={"success": True})
        controller._gateway.delete_expenses_entry = AsyncMock(return_value={"success": True})
        entry = ExpenseEntry(date=date(2025, 2, 4), items=[LineItem(Decimal("500"), "Water")])

        await controller.save_expense(entry)
        entry.row_index = 4
        await controller.save_expense(entry)
        await controller.delete_expense(4)

        controller._gateway.add_expenses_entry.assert_awaited_once()
        controller._gateway.update_expenses_entry.assert_awaited_once()
        controller._gateway.delete_expenses_entry.assert_awaited_once_with(4)
        assert controller._gateway.get_all_data.await_count == 3

    @pytest.mark.asyncio
    async def test_weekly_validation(self, controller):
        with pytest.raises(ValidationError):
            await controller.save_weekly(
                WeeklySummary(start=date(2025, 2, 3), end=date(2025, 2, 9), ggr=Decimal("0"))
            )
        with pytest.raises(ValidationError):
            await controller.save_weekly(
                WeeklySummary(start=date(2025, 2, 9), end=date(2025, 2, 3), ggr=Decimal("10"))
            )

    @pytest.mark.asyncio
    async def test_save_and_delete_weekly(self, controller):
        controller._gateway.add_weekly_summary = AsyncMock(return_value={"success": True})
        controller._gateway.delete_weekly_summary = AsyncMock(return_value={"success": True})

        await controller.save_weekly(
            WeeklySummary(start=date(2025, 2, 3), end=date(2025, 2, 9), ggr=Decimal("200000"))
        )
        await controller.delete_weekly(2)

        controller._gateway.add_weekly_summary.assert_awaited_once()
        controller._gateway.delete_weekly_summary.assert_awaited_once_with(2)

    @pytest.mark.asyncio
    async def test_add_fund_spend(self, controller, events):
        controller._gateway.add_fund_expense = AsyncMock(return_value={"success": True})

        await controller.add_fund_spend(FundType.SITE_FUND, 2, "10,000", " Office ")

        controller._gateway.add_fund_expense.assert_awaited_once_with(
            FundType.SITE_FUND, 2, Decimal("10000"), "Office"
        )
        assert EventType.DATA_CHANGED in [e.event_type for e in events]

    @pytest.mark.asyncio
    async def test_fund_spend_validation(self, controller):
        controller._gateway.add_fund_expense = AsyncMock()
        with pytest.raises(ValidationError):
            await controller.add_fund_spend(FundType.TEAM, 2, 0, "Withdrawal")
        with pytest.raises(ValidationError):
            await controller.add_fund_spend(FundType.TEAM, 2, 100, "")
        controller._gateway.add_fund_expense.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_write_waits_for_in_flight_sync(self, controller, sync_payload):
        release = asyncio.Event()
        calls = []

        async def fetch():
            calls.append("fetch")
            if len(calls) == 1:
                await release.wait()
            return sync_payload

        controller._gateway.get_all_data = AsyncMock(side_effect=fetch)
        controller._gateway.delete_cfr_entry = AsyncMock(return_value={"success": True})

        background = asyncio.create_task(controller.sync())
        await asyncio.sleep(0)
        write = asyncio.create_task(controller.delete_shift(2))
        await asyncio.sleep(0)
        release.set()

        assert await background is True
        assert await write is True
        assert calls == ["fetch", "fetch"]


class TestCalculatePeriod:
    """Tests for weekly aggregate calculation."""

    @pytest.mark.asyncio
    async def test_remote_when_configured(self, controller):
        controller._gateway.calculate_weekly_summary = AsyncMock(
            return_value={"loaderSalary": 3000, "otherExpenses": "1,200"}
        )

        totals = await controller.calculate_period(date(2025, 2, 3), "2025-02-09")

        controller._gateway.calculate_weekly_summary.assert_awaited_once_with(
            "2025-02-03", "2025-02-09"
        )
        assert totals.loader_salary == Decimal("3000")
        assert totals.other_expenses == Decimal("1200")

    @pytest.mark.asyncio
    async def test_requires_dates(self, controller):
        with pytest.raises(ValidationError):
            await controller.calculate_period("", "2025-02-09")

    def test_preview_weekly(self):
        result = SyncController.preview_weekly(500000, 0, 7500)
        assert result.site_fund35 == Decimal("137900")


class TestAutoSync:
    """Tests for periodic sync and settings changes."""

    @pytest.mark.asyncio
    async def test_auto_sync_runs_periodically(self, sync_payload):
        store = MemoryStore({SETTINGS_KEY: json.dumps({"webAppUrl": "https://x.test", "autoSync": True})})
        ctrl = _controller(store, interval=0.01)
        ctrl._gateway.get_all_data = AsyncMock(return_value=sync_payload)

        await ctrl.start()
        assert ctrl.auto_sync_active
        await asyncio.sleep(0.1)
        await ctrl.stop()

        assert ctrl._gateway.get_all_data.await_count >= 3
        assert not ctrl.auto_sync_active

    @pytest.mark.asyncio
    async def test_no_auto_sync_when_disabled(self, controller):
        controller.setup_auto_sync()
        assert not controller.auto_sync_active

    @pytest.mark.asyncio
    async def test_no_auto_sync_in_demo(self, memory_store):
        ctrl = _controller(memory_store)
        await ctrl.start()
        assert not ctrl.auto_sync_active
        await ctrl.stop()

    @pytest.mark.asyncio
    async def test_save_settings_recreates_single_timer(self, controller, configured_store):
        await controller.save_settings(Settings(web_app_url="https://x.test", auto_sync=True))
        first = controller._auto_sync_task
        await controller.save_settings(Settings(web_app_url="https://y.test", auto_sync=True))
        second = controller._auto_sync_task
        await asyncio.sleep(0)

        assert first is not second
        assert first.cancelled() or first.done()
        assert controller.auto_sync_active
        assert controller._gateway.url == "https://y.test"
        assert json.loads(configured_store.get(SETTINGS_KEY))["webAppUrl"] == "https://y.test"
        await controller.stop()

    @pytest.mark.asyncio
    async def test_clearing_url_stops_auto_sync_and_keeps_data(self, controller, events):
        """No sync runs after clearing the URL; loaded data stays until the next sync."""
        await controller.sync()
        loaded = controller.data

        await controller.save_settings(Settings(web_app_url="", auto_sync=True))

        assert not controller.auto_sync_active
        assert controller.is_demo
        assert controller.data is loaded
        assert controller._gateway.get_all_data.await_count == 1
        assert events[-1].event_type is EventType.SETTINGS_CHANGED

    @pytest.mark.asyncio
    async def test_settings_change_does_not_interrupt_fetch(self, sync_payload):
        store = MemoryStore({SETTINGS_KEY: json.dumps({"webAppUrl": "https://x.test", "autoSync": True})})
        ctrl = _controller(store, interval=0.01)
        ctrl.load_local()
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_fetch():
            started.set()
            await release.wait()
            return sync_payload

        ctrl._gateway.get_all_data = AsyncMock(side_effect=slow_fetch)
        ctrl.setup_auto_sync()
        await asyncio.wait_for(started.wait(), timeout=1)

        await ctrl.save_settings(Settings(web_app_url="", auto_sync=True))
        assert not ctrl.auto_sync_active
        release.set()
        await ctrl.stop()

        assert ctrl._gateway.get_all_data.await_count == 1
        assert ctrl.status is SyncStatus.SYNCED
        assert ctrl.state is ControllerState.IDLE
        assert len(ctrl.data.cfr) == 2

    @pytest.mark.asyncio
    async def test_stop_waits_for_auto_sync_fetch(self, sync_payload):
        store = MemoryStore({SETTINGS_KEY: json.dumps({"webAppUrl": "https://x.test", "autoSync": True})})
        ctrl = _controller(store, interval=0.01)
        ctrl.load_local()
        started = asyncio.Event()

        async def slow_fetch():
            started.set()
            await asyncio.sleep(0.05)
            return sync_payload

        ctrl._gateway.get_all_data = AsyncMock(side_effect=slow_fetch)
        ctrl.setup_auto_sync()
        await asyncio.wait_for(started.wait(), timeout=1)

        await ctrl.stop()

        assert ctrl.status is SyncStatus.SYNCED
        assert not ctrl.is_busy

    @pytest.mark.asyncio
    async def test_test_connection_saves_url(self, memory_store):
        ctrl = _controller(memory_store)
        ctrl.load_local()
        ctrl._gateway.test_connection = AsyncMock(return_value=(True, "ok"))

        assert await ctrl.test_connection("https://x.test") == (True, "ok")
        assert ctrl.settings.web_app_url == "https://x.test"
        assert json.loads(memory_store.get(SETTINGS_KEY))["webAppUrl"] == "https://x.test"

    @pytest.mark.asyncio
    async def test_test_connection_blank_url(self, memory_store):
        ok, message = await _controller(memory_store).test_connection("  ")
        assert ok is False
        assert message == "Enter URL"


class TestViews:
    """Tests for view-model accessors."""

    @pytest.mark.asyncio
    async def test_new_shift_draft_carries_last_net_chips(self, controller):
        await controller.sync()

        draft = controller.new_shift_draft()

        assert draft.date == date(2025, 2, 3)
        assert draft.chips_in == [LineItem(Decimal("51000"), "Starting Chips")]
        assert draft.auto_filled

    @pytest.mark.asyncio
    async def test_income_tracker_today(self, controller):
        await controller.sync()

        view = controller.income_tracker()

        assert view.today.cfr == Decimal("58000")
        assert view.today.expenses == Decimal("4200")

    @pytest.mark.asyncio
    async def test_fund_table(self, controller):
        await controller.sync()
        view = controller.fund_table(FundType.TEAM)
        assert view.totals.total_allocated == Decimal("78320")
        assert view.sheet_name == "Team 50%"
