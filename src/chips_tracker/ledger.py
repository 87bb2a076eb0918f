"""Per-fund rollups and spend bookkeeping."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any

from chips_tracker.distribution import compute_fund_remaining, compute_weekly_distribution
from chips_tracker.errors import ValidationError
from chips_tracker.formatting import ZERO, parse_amount, sum_amounts
from chips_tracker.models import FundRecord, FundType, LineItem, WeeklySummary


@dataclass(frozen=True)
class FundTotals:
    """Allocated, spent and remaining across every loaded period of one fund."""

    total_allocated: Decimal = ZERO
    total_spent: Decimal = ZERO
    total_remaining: Decimal = ZERO

    @property
    def is_overspent(self) -> bool:
        return self.total_remaining < 0


def aggregate_fund(records: Iterable[FundRecord]) -> FundTotals:
    """Sum a fund's records. No date filtering; input order does not matter."""
    records = list(records)
    allocated = sum_amounts(record.allocated for record in records)
    spent = sum_amounts(record.spent for record in records)
    return FundTotals(
        total_allocated=allocated,
        total_spent=spent,
        total_remaining=allocated - spent,
    )


def validate_spend(amount: Any, remarks: str | None) -> tuple[Decimal, str]:
    """Check a spend entry before it is recorded.

    Raises:
        ValidationError: amount is not positive or remarks is blank.
    """
    value = parse_amount(amount)
    if value <= 0:
        raise ValidationError("Spend amount must be greater than zero", field="amount")
    text = (remarks or "").strip()
    if not text:
        raise ValidationError("Spend remarks are required", field="remarks")
    return value, text


def append_spend(record: FundRecord, amount: Any, remarks: str) -> FundRecord:
    """Return a copy of ``record`` with one more spend item at the end.

    Spent and remaining are derived from the items, so the copy reflects the
    new item immediately. The original record is left untouched.
    """
    value, text = validate_spend(amount, remarks)
    return replace(record, spent_items=[*record.spent_items, LineItem(value, text)])


def record_balance(record: FundRecord) -> tuple[Decimal, Decimal]:
    """(spent, remaining) for a single record."""
    balance = compute_fund_remaining(record.allocated, record.spent_items)
    return balance.spent, balance.remaining


def sort_by_period(records: Iterable[FundRecord]) -> list[FundRecord]:
    """Newest period first, records without a start date last."""
    return sorted(
        records,
        key=lambda record: record.start or date.min,
        reverse=True,
    )


def allocations_for(summary: WeeklySummary) -> dict[FundType, FundRecord]:
    """Fresh fund records (nothing spent yet) produced by a weekly summary."""
    distribution = compute_weekly_distribution(
        summary.ggr, summary.loader_salary, summary.other_expenses
    )
    return {
        fund_type: FundRecord(
            start=summary.start,
            end=summary.end,
            net_profit=distribution.net_profit,
            allocated=distribution.allocation(fund_type),
        )
        for fund_type in FundType
    }


def fund_overview(funds: Mapping[FundType, Iterable[FundRecord]]) -> dict[FundType, FundTotals]:
    """Totals for each fund type present in ``funds``."""
    return {FundType(fund_type): aggregate_fund(records) for fund_type, records in funds.items()}
