"""Profit distribution and chip custody arithmetic.

Everything here is a pure function of its arguments. Amounts are Decimals so
that the four fund allocations add back up to net profit exactly:

    retained    = net profit x 20%
    distributable = net profit x 80%
    team        = distributable x 50%
    site fund   = distributable x 35%
    savings     = distributable x 15%
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from chips_tracker.formatting import ZERO, parse_amount, sum_amounts
from chips_tracker.models import (
    STARTING_CHIPS_REMARK,
    ExpenseEntry,
    FundType,
    LineItem,
    ProfitStatus,
    ShiftEntry,
)

RETAINED_SHARE = Decimal("0.20")
DISTRIBUTABLE_SHARE = Decimal("0.80")
TEAM_SHARE = Decimal("0.50")
SITE_FUND_SHARE = Decimal("0.35")
SAVINGS_SHARE = Decimal("0.15")


@dataclass(frozen=True)
class WeeklyDistribution:
    """Derived figures for one weekly period."""

    net_profit: Decimal
    roi: Decimal
    status: ProfitStatus
    retained20: Decimal
    distributable80: Decimal
    team50: Decimal
    site_fund35: Decimal
    savings15: Decimal

    def allocation(self, fund_type: FundType) -> Decimal:
        """Amount this period allocates to ``fund_type``."""
        return {
            FundType.TEAM: self.team50,
            FundType.SITE_FUND: self.site_fund35,
            FundType.RETAINED: self.retained20,
            FundType.SAVINGS: self.savings15,
        }[FundType(fund_type)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "netProfit": float(self.net_profit),
            "roi": float(self.roi),
            "status": self.status.value,
            "retained20": float(self.retained20),
            "distributable80": float(self.distributable80),
            "team50": float(self.team50),
            "siteFund35": float(self.site_fund35),
            "savings15": float(self.savings15),
        }


@dataclass(frozen=True)
class ChipContinuity:
    total_chips_in: Decimal
    net_chips: Decimal


@dataclass(frozen=True)
class FundBalance:
    spent: Decimal
    remaining: Decimal


@dataclass(frozen=True)
class PeriodTotals:
    """Loader salary and other expenses falling inside a period."""

    loader_salary: Decimal = ZERO
    other_expenses: Decimal = ZERO


@dataclass(frozen=True)
class DailyTotals:
    cfr: Decimal = ZERO
    loader_salary: Decimal = ZERO
    other_expenses: Decimal = ZERO

    @property
    def expenses(self) -> Decimal:
        return self.loader_salary + self.other_expenses


def compute_weekly_distribution(
    ggr: Any, loader_salary: Any, other_expenses: Any
) -> WeeklyDistribution:
    """Net profit, ROI, status and fund allocations for a period.

    Args:
        ggr: Gross receipts for the period.
        loader_salary: Total loader salary paid in the period.
        other_expenses: Total other expenses in the period.

    Returns:
        The derived distribution. ROI is zero when ``ggr`` is zero.
    """
    gross = parse_amount(ggr)
    net_profit = gross - parse_amount(loader_salary) - parse_amount(other_expenses)
    roi = net_profit / gross if gross != 0 else ZERO
    status = ProfitStatus.PROFIT if net_profit >= 0 else ProfitStatus.LOSS

    retained = net_profit * RETAINED_SHARE
    distributable = net_profit * DISTRIBUTABLE_SHARE
    return WeeklyDistribution(
        net_profit=net_profit,
        roi=roi,
        status=status,
        retained20=retained,
        distributable80=distributable,
        team50=distributable * TEAM_SHARE,
        site_fund35=distributable * SITE_FUND_SHARE,
        savings15=distributable * SAVINGS_SHARE,
    )


def compute_chip_continuity(
    prior_ending_chips: Any,
    chip_in_items: Iterable[LineItem],
    ending_chips: Any,
) -> ChipContinuity:
    """Chip figures for a shift.

    ``prior_ending_chips`` only seeds the default chip-in list (see
    :func:`default_chip_in`); net chips is the shift's ending balance and
    total chips in is informational.
    """
    return ChipContinuity(
        total_chips_in=sum_amounts(item.amount for item in chip_in_items),
        net_chips=parse_amount(ending_chips),
    )


def default_chip_in(last_net_chips: Any) -> list[LineItem]:
    """Opening chip-in list for a new shift, carried from the last net chips."""
    amount = parse_amount(last_net_chips)
    if amount <= 0:
        return []
    return [LineItem(amount=amount, remarks=STARTING_CHIPS_REMARK)]


def compute_fund_remaining(allocated: Any, spent_items: Iterable[LineItem]) -> FundBalance:
    """Spent and remaining for a fund record; remaining may be negative."""
    spent = sum_amounts(item.amount for item in spent_items)
    return FundBalance(spent=spent, remaining=parse_amount(allocated) - spent)


def _in_range(day: date | None, start: date, end: date) -> bool:
    return day is not None and start <= day <= end


def summarize_period(
    shifts: Iterable[ShiftEntry],
    expenses: Iterable[ExpenseEntry],
    start: date,
    end: date,
) -> PeriodTotals:
    """Sum loader salary and other expenses dated within ``[start, end]``."""
    loader_salary = sum_amounts(
        entry.loader_salary for entry in shifts if _in_range(entry.date, start, end)
    )
    other_expenses = sum_amounts(
        entry.total for entry in expenses if _in_range(entry.date, start, end)
    )
    return PeriodTotals(loader_salary=loader_salary, other_expenses=other_expenses)


def daily_totals(
    shifts: Iterable[ShiftEntry], expenses: Iterable[ExpenseEntry], day: date
) -> DailyTotals:
    """CFR and expense totals recorded for a single day."""
    todays_shifts = [entry for entry in shifts if entry.date == day]
    return DailyTotals(
        cfr=sum_amounts(entry.cfr for entry in todays_shifts),
        loader_salary=sum_amounts(entry.loader_salary for entry in todays_shifts),
        other_expenses=sum_amounts(entry.total for entry in expenses if entry.date == day),
    )
