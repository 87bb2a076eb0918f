"""Read-only view models built from a data bundle.

The rendering layer asks the controller for these instead of reading the raw
collections. Builders never mutate the bundle they are given.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from chips_tracker.distribution import (
    DailyTotals,
    WeeklyDistribution,
    compute_weekly_distribution,
    daily_totals,
    default_chip_in,
)
from chips_tracker.formatting import ZERO, sum_amounts, value_class
from chips_tracker.ledger import FundTotals, aggregate_fund, sort_by_period
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

CHART_PERIODS = 12
RECENT_ACTIVITY = 5


@dataclass(frozen=True)
class WeeklyRow:
    summary: WeeklySummary
    distribution: WeeklyDistribution


@dataclass(frozen=True)
class ChartPoint:
    start: date | None
    profit: Decimal
    loss: Decimal


@dataclass(frozen=True)
class DashboardView:
    total_profit: Decimal
    total_ggr: Decimal
    total_chips: Decimal
    avg_roi_percent: Decimal
    fund_remaining: dict[FundType, Decimal]
    chart: list[ChartPoint]
    recent_activity: list[ShiftEntry]


@dataclass(frozen=True)
class DayGroup:
    """All shifts of one day; every window has a slot, empty or not."""

    day: date | None
    slots: dict[ShiftWindow, ShiftEntry | None]
    extra: list[ShiftEntry] = field(default_factory=list)

    @property
    def entries(self) -> list[ShiftEntry]:
        return [entry for entry in self.slots.values() if entry is not None] + self.extra

    @property
    def total_cfr(self) -> Decimal:
        return sum_amounts(entry.cfr for entry in self.entries)

    @property
    def total_loader_salary(self) -> Decimal:
        return sum_amounts(entry.loader_salary for entry in self.entries)


@dataclass(frozen=True)
class IncomeTrackerView:
    last_net_chips: Decimal
    today: DailyTotals
    day_groups: list[DayGroup]
    expenses: list[ExpenseEntry]


@dataclass(frozen=True)
class FundRow:
    record: FundRecord
    css_class: str


@dataclass(frozen=True)
class FundTableView:
    fund_type: FundType
    sheet_name: str
    totals: FundTotals
    remaining_class: str
    rows: list[FundRow]


@dataclass(frozen=True)
class ShiftDraft:
    """Defaults for a new shift form."""

    date: date
    chips_in: list[LineItem]
    last_net_chips: Decimal

    @property
    def auto_filled(self) -> bool:
        return bool(self.chips_in)


def weekly_rows(bundle: DataBundle) -> list[WeeklyRow]:
    """Weekly summaries, newest period first, with derived figures."""
    summaries = sorted(bundle.weekly, key=lambda s: s.start or date.min, reverse=True)
    return [
        WeeklyRow(
            summary=summary,
            distribution=compute_weekly_distribution(
                summary.ggr, summary.loader_salary, summary.other_expenses
            ),
        )
        for summary in summaries
    ]


def build_dashboard(bundle: DataBundle) -> DashboardView:
    distributions = [
        compute_weekly_distribution(s.ggr, s.loader_salary, s.other_expenses)
        for s in bundle.weekly
    ]
    if distributions:
        avg_roi = sum_amounts(d.roi for d in distributions) / len(distributions) * 100
    else:
        avg_roi = ZERO

    # Chart keeps the stored order: the last twelve rows of the weekly sheet.
    chart = [
        ChartPoint(
            start=summary.start,
            profit=max(d.net_profit, ZERO),
            loss=abs(min(d.net_profit, ZERO)),
        )
        for summary, d in list(zip(bundle.weekly, distributions))[-CHART_PERIODS:]
    ]
    recent = sorted(bundle.cfr, key=lambda e: e.date or date.min, reverse=True)

    return DashboardView(
        total_profit=sum_amounts(d.net_profit for d in distributions),
        total_ggr=sum_amounts(s.ggr for s in bundle.weekly),
        total_chips=bundle.last_net_chips,
        avg_roi_percent=avg_roi,
        fund_remaining={
            fund_type: aggregate_fund(bundle.fund(fund_type)).total_remaining
            for fund_type in FundType
        },
        chart=chart,
        recent_activity=recent[:RECENT_ACTIVITY],
    )


def group_shifts_by_day(entries: tuple[ShiftEntry, ...] | list[ShiftEntry]) -> list[DayGroup]:
    """Group shifts by date, newest day first, slotted by shift window."""
    by_day: dict[date | None, list[ShiftEntry]] = defaultdict(list)
    for entry in entries:
        by_day[entry.date].append(entry)

    groups = []
    for day in sorted(by_day, key=lambda d: d or date.min, reverse=True):
        slots: dict[ShiftWindow, ShiftEntry | None] = {window: None for window in ShiftWindow}
        extra = []
        for entry in by_day[day]:
            if isinstance(entry.shift, ShiftWindow) and slots[entry.shift] is None:
                slots[entry.shift] = entry
            else:
                extra.append(entry)
        groups.append(DayGroup(day=day, slots=slots, extra=extra))
    return groups


def build_income_tracker(bundle: DataBundle, today: date) -> IncomeTrackerView:
    expenses = sorted(
        bundle.expenses,
        key=lambda e: (e.date or date.min, e.row_index or 0),
        reverse=True,
    )
    return IncomeTrackerView(
        last_net_chips=bundle.last_net_chips,
        today=daily_totals(bundle.cfr, bundle.expenses, today),
        day_groups=group_shifts_by_day(bundle.cfr),
        expenses=expenses,
    )


def build_fund_table(bundle: DataBundle, fund_type: FundType) -> FundTableView:
    fund_type = FundType(fund_type)
    records = bundle.fund(fund_type)
    totals = aggregate_fund(records)
    return FundTableView(
        fund_type=fund_type,
        sheet_name=fund_type.sheet_name,
        totals=totals,
        remaining_class=value_class(totals.total_remaining),
        rows=[FundRow(record, value_class(record.remaining)) for record in sort_by_period(records)],
    )


def build_shift_draft(bundle: DataBundle, today: date) -> ShiftDraft:
    return ShiftDraft(
        date=today,
        chips_in=default_chip_in(bundle.last_net_chips),
        last_net_chips=bundle.last_net_chips,
    )
