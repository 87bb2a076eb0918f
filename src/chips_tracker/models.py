"""Records tracked by the dashboard and their spreadsheet row encoding.

The remote store keeps one sheet per collection. Rows arrive as JSON objects
with camelCase keys; item lists (chip-ins, expenses, fund spends) are stored
as JSON-encoded strings inside a single cell.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog

from chips_tracker.formatting import (
    SHIFT_LABELS,
    ZERO,
    parse_amount,
    sum_amounts,
    to_iso_date,
)

logger = structlog.get_logger(__name__)

STARTING_CHIPS_REMARK = "Starting Chips"
DEFAULT_REMARK = "No remarks"


def _wire_number(amount: Decimal) -> int | float:
    """JSON-friendly number; integral amounts stay ints."""
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


def _wire_date(value: date | None) -> str:
    return value.isoformat() if value else ""


def _row_index(value: Any) -> int | None:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


class ShiftWindow(str, Enum):
    """The three fixed shift windows, in display order."""

    NOON_TO_EIGHT = "12:00PM to 8:00PM"
    EIGHT_TO_FOUR = "8:00PM to 4:00AM"
    FOUR_TO_NOON = "4:00AM to 12:00PM"

    @property
    def label(self) -> str:
        return SHIFT_LABELS[self.value]

    @property
    def order(self) -> int:
        return list(ShiftWindow).index(self)


class FundType(str, Enum):
    """Allocation buckets fed by each weekly summary."""

    TEAM = "team"
    SITE_FUND = "siteFund"
    RETAINED = "retained"
    SAVINGS = "savings"

    @property
    def sheet_name(self) -> str:
        """Name of the remote sheet holding this fund's rows."""
        return FUND_SHEET_NAMES[self]


FUND_SHEET_NAMES: dict[FundType, str] = {
    FundType.TEAM: "Team 50%",
    FundType.SITE_FUND: "Site Fund 35%",
    FundType.RETAINED: "Retained 20%",
    FundType.SAVINGS: "Savings 15%",
}


class ProfitStatus(str, Enum):
    PROFIT = "Profit"
    LOSS = "Loss"


@dataclass(frozen=True)
class LineItem:
    """One ``{amount, remarks}`` entry of a chip-in, expense or spend list."""

    amount: Decimal
    remarks: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LineItem:
        # Older rows used "remark"
        remarks = data.get("remarks", data.get("remark", ""))
        return cls(amount=parse_amount(data.get("amount")), remarks=str(remarks or ""))

    def to_dict(self) -> dict[str, Any]:
        return {"amount": _wire_number(self.amount), "remarks": self.remarks}


def parse_items(raw: Any) -> list[LineItem]:
    """Decode an item list cell.

    Accepts the JSON string stored in the sheet or an already-decoded list.
    Malformed content yields an empty list.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("item_list_unparseable", raw=raw[:100])
            return []
    if not isinstance(raw, list):
        return []
    return [LineItem.from_dict(item) for item in raw if isinstance(item, dict)]


def serialize_items(items: list[LineItem]) -> str:
    """Encode an item list the way the sheet stores it."""
    return json.dumps([item.to_dict() for item in items], separators=(",", ":"))


def items_total(items: list[LineItem]) -> Decimal:
    return sum_amounts(item.amount for item in items)


@dataclass
class ShiftEntry:
    """One shift's CFR row with its chip custody figures."""

    date: date | None
    shift: ShiftWindow | str
    cfr: Decimal = ZERO
    loader_salary: Decimal = ZERO
    chips_in: list[LineItem] = field(default_factory=list)
    ending_chips: Decimal = ZERO
    row_index: int | None = None

    @property
    def total_chips_in(self) -> Decimal:
        return items_total(self.chips_in)

    @property
    def net_chips(self) -> Decimal:
        # Net chips is the ending balance itself, not chips in minus chips out.
        return self.ending_chips

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ShiftEntry:
        shift_raw = str(data.get("shiftTime", ""))
        try:
            shift: ShiftWindow | str = ShiftWindow(shift_raw)
        except ValueError:
            shift = shift_raw
        ending = data.get("endingChips")
        if ending in (None, ""):
            ending = data.get("netChips")
        return cls(
            date=to_iso_date(data.get("date")),
            shift=shift,
            cfr=parse_amount(data.get("cfr")),
            loader_salary=parse_amount(data.get("loaderSalary")),
            chips_in=parse_items(data.get("chipsInList")),
            ending_chips=parse_amount(ending),
            row_index=_row_index(data.get("rowIndex")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Row payload for ``addCFREntry``/``updateCFREntry``."""
        shift = self.shift.value if isinstance(self.shift, ShiftWindow) else self.shift
        data: dict[str, Any] = {
            "date": _wire_date(self.date),
            "shiftTime": shift,
            "cfr": _wire_number(self.cfr),
            "loaderSalary": _wire_number(self.loader_salary),
            "chipsIn": _wire_number(self.total_chips_in),
            "chipsInList": [item.to_dict() for item in self.chips_in],
            "endingChips": _wire_number(self.ending_chips),
            "netChips": _wire_number(self.net_chips),
        }
        if self.row_index is not None:
            data["rowIndex"] = self.row_index
        return data


@dataclass
class ExpenseEntry:
    """A day's list of other expenses."""

    date: date | None
    items: list[LineItem] = field(default_factory=list)
    row_index: int | None = None

    @property
    def total(self) -> Decimal:
        return items_total(self.items)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExpenseEntry:
        return cls(
            date=to_iso_date(data.get("date")),
            items=parse_items(data.get("expensesList")),
            row_index=_row_index(data.get("rowIndex")),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "date": _wire_date(self.date),
            "total": _wire_number(self.total),
            "expensesList": [item.to_dict() for item in self.items],
        }
        if self.row_index is not None:
            data["rowIndex"] = self.row_index
        return data


@dataclass
class WeeklySummary:
    """Inputs of one reporting period; derived figures come from the engine."""

    start: date | None
    end: date | None
    ggr: Decimal = ZERO
    loader_salary: Decimal = ZERO
    other_expenses: Decimal = ZERO
    row_index: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WeeklySummary:
        return cls(
            start=to_iso_date(data.get("start")),
            end=to_iso_date(data.get("end")),
            ggr=parse_amount(data.get("ggr")),
            loader_salary=parse_amount(data.get("loaderSalary")),
            other_expenses=parse_amount(data.get("otherExpenses")),
            row_index=_row_index(data.get("rowIndex")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Row payload for ``addWeeklySummary``; the store derives the rest."""
        data: dict[str, Any] = {
            "start": _wire_date(self.start),
            "end": _wire_date(self.end),
            "ggr": _wire_number(self.ggr),
            "loaderSalary": _wire_number(self.loader_salary),
            "otherExpenses": _wire_number(self.other_expenses),
        }
        if self.row_index is not None:
            data["rowIndex"] = self.row_index
        return data


@dataclass
class FundRecord:
    """One fund's allocation for one period and what was spent from it."""

    start: date | None
    end: date | None
    net_profit: Decimal = ZERO
    allocated: Decimal = ZERO
    spent_items: list[LineItem] = field(default_factory=list)
    row_index: int | None = None

    @property
    def spent(self) -> Decimal:
        return items_total(self.spent_items)

    @property
    def remaining(self) -> Decimal:
        # May go negative; overspend is shown, not rejected.
        return self.allocated - self.spent

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FundRecord:
        return cls(
            start=to_iso_date(data.get("start")),
            end=to_iso_date(data.get("end")),
            net_profit=parse_amount(data.get("netProfit")),
            allocated=parse_amount(data.get("allocated")),
            spent_items=parse_items(data.get("spentList")),
            row_index=_row_index(data.get("rowIndex")),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "start": _wire_date(self.start),
            "end": _wire_date(self.end),
            "netProfit": _wire_number(self.net_profit),
            "allocated": _wire_number(self.allocated),
            "spent": _wire_number(self.spent),
            "spentList": serialize_items(self.spent_items),
            "remaining": _wire_number(self.remaining),
        }
        if self.row_index is not None:
            data["rowIndex"] = self.row_index
        return data


@dataclass(frozen=True)
class DataBundle:
    """Every collection the dashboard shows, as loaded from one sync.

    Bundles are replaced wholesale on sync and never patched in place.
    """

    cfr: tuple[ShiftEntry, ...] = ()
    expenses: tuple[ExpenseEntry, ...] = ()
    weekly: tuple[WeeklySummary, ...] = ()
    team: tuple[FundRecord, ...] = ()
    site_fund: tuple[FundRecord, ...] = ()
    retained: tuple[FundRecord, ...] = ()
    savings: tuple[FundRecord, ...] = ()
    last_net_chips: Decimal = ZERO

    def fund(self, fund_type: FundType) -> tuple[FundRecord, ...]:
        return {
            FundType.TEAM: self.team,
            FundType.SITE_FUND: self.site_fund,
            FundType.RETAINED: self.retained,
            FundType.SAVINGS: self.savings,
        }[FundType(fund_type)]

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.cfr, self.expenses, self.weekly, self.team,
             self.site_fund, self.retained, self.savings)
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DataBundle:
        """Build from a ``getData`` payload; missing collections are empty."""
        data = data or {}

        def rows(key: str) -> list[dict[str, Any]]:
            value = data.get(key) or []
            return [row for row in value if isinstance(row, dict)] if isinstance(value, list) else []

        return cls(
            cfr=tuple(ShiftEntry.from_dict(row) for row in rows("cfr")),
            expenses=tuple(ExpenseEntry.from_dict(row) for row in rows("expenses")),
            weekly=tuple(WeeklySummary.from_dict(row) for row in rows("weekly")),
            team=tuple(FundRecord.from_dict(row) for row in rows(FundType.TEAM.value)),
            site_fund=tuple(FundRecord.from_dict(row) for row in rows(FundType.SITE_FUND.value)),
            retained=tuple(FundRecord.from_dict(row) for row in rows(FundType.RETAINED.value)),
            savings=tuple(FundRecord.from_dict(row) for row in rows(FundType.SAVINGS.value)),
            last_net_chips=parse_amount(data.get("lastNetChips")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Same shape as the ``getData`` payload, used for the cache slot."""
        from chips_tracker.distribution import compute_weekly_distribution

        weekly_rows = []
        for summary in self.weekly:
            row = summary.to_dict()
            row.update(compute_weekly_distribution(
                summary.ggr, summary.loader_salary, summary.other_expenses
            ).to_dict())
            weekly_rows.append(row)

        shift_rows = []
        for entry in self.cfr:
            row = entry.to_dict()
            row["chipsInList"] = serialize_items(entry.chips_in)
            shift_rows.append(row)

        expense_rows = []
        for expense in self.expenses:
            row = expense.to_dict()
            row["expensesList"] = serialize_items(expense.items)
            expense_rows.append(row)

        return {
            "cfr": shift_rows,
            "expenses": expense_rows,
            "weekly": weekly_rows,
            "team": [record.to_dict() for record in self.team],
            "siteFund": [record.to_dict() for record in self.site_fund],
            "retained": [record.to_dict() for record in self.retained],
            "savings": [record.to_dict() for record in self.savings],
            "lastNetChips": _wire_number(self.last_net_chips),
        }
