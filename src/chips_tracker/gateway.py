"""Client for the spreadsheet web app that stores the dashboard's rows.

Every operation is one GET against the configured endpoint with
``action=<operation>`` and flat query parameters. The web app answers with
``{"success": bool, "error": str, "data": {...}}``.
"""

import json
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, cast

import httpx
import structlog

from chips_tracker.config import get_settings
from chips_tracker.errors import NetworkError, NotConfiguredError, RemoteError
from chips_tracker.models import ExpenseEntry, FundType, ShiftEntry, WeeklySummary

logger = structlog.get_logger(__name__)


class Operation:
    """Operation names understood by the web app."""

    GET_DATA = "getData"
    GET_INCOME_DATA = "getIncomeData"
    GET_WEEKLY_DATA = "getWeeklyData"
    GET_SITE_FUND_DATA = "getSiteFundData"
    GET_RETAINED_DATA = "getRetainedData"
    GET_SAVINGS_DATA = "getSavingsData"
    GET_LAST_NET_CHIPS = "getLastNetChips"
    ADD_CFR_ENTRY = "addCFREntry"
    UPDATE_CFR_ENTRY = "updateCFREntry"
    DELETE_CFR_ENTRY = "deleteCFREntry"
    ADD_EXPENSES_ENTRY = "addExpensesEntry"
    UPDATE_EXPENSES_ENTRY = "updateExpensesEntry"
    DELETE_EXPENSES_ENTRY = "deleteExpensesEntry"
    ADD_WEEKLY_SUMMARY = "addWeeklySummary"
    UPDATE_WEEKLY_SUMMARY = "updateWeeklySummary"
    DELETE_WEEKLY_SUMMARY = "deleteWeeklySummary"
    ADD_FUND_EXPENSE = "addExpense"
    CALCULATE_WEEKLY_SUMMARY = "calculateWeeklySummary"


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f"Cannot encode {type(value).__name__}")


def encode_params(operation: str, params: Mapping[str, Any] | None) -> dict[str, str]:
    """Flatten call parameters into query-string values.

    Dicts and lists are JSON-encoded; scalars are sent as-is. ``None`` values
    are dropped.
    """
    query: dict[str, str] = {"action": operation}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, (dict, list, tuple)):
            query[key] = json.dumps(
                value, separators=(",", ":"), ensure_ascii=False, default=_json_default
            )
        elif isinstance(value, bool):
            query[key] = "true" if value else "false"
        else:
            query[key] = str(value)
    return query


class RemoteGateway:
    """Async client for the remote store.

    No retries and no batching: a failed call surfaces immediately and the
    caller decides whether to try again.
    """

    def __init__(self, url: str | None = None, timeout: float | None = None):
        settings = get_settings()
        self._url = (url if url is not None else settings.web_app_url).strip()
        self._timeout = timeout or settings.request_timeout
        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(component="gateway")

    @property
    def url(self) -> str:
        return self._url

    @url.setter
    def url(self, value: str) -> None:
        self._url = (value or "").strip()
        self._logger.info("endpoint_changed", configured=self.is_configured)

    @property
    def is_configured(self) -> bool:
        return bool(self._url)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RemoteGateway":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # === Generic call ===

    async def call(
        self, operation: str, params: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Run one named operation.

        Returns:
            The decoded response object.

        Raises:
            NotConfiguredError: No endpoint is set.
            NetworkError: Transport failure, non-2xx status or a body that
                is not a JSON object.
            RemoteError: The store answered ``success: false``.
        """
        if not self.is_configured:
            raise NotConfiguredError()

        client = await self._get_client()
        query = encode_params(operation, params)

        try:
            response = await client.get(self._url, params=query)
        except httpx.HTTPError as e:
            self._logger.warning("gateway_call_failed", operation=operation, error=str(e))
            raise NetworkError(f"Request failed: {e}") from e

        if not response.is_success:
            self._logger.warning(
                "gateway_bad_status", operation=operation, status_code=response.status_code
            )
            raise NetworkError(
                "Network response was not ok",
                status_code=response.status_code,
                details={"raw": response.text[:500] if response.text else "empty response"},
            )

        try:
            payload_raw = response.json()
        except ValueError as e:
            raise NetworkError(
                "Invalid response from web app",
                status_code=response.status_code,
                details={"raw": response.text[:500]},
            ) from e
        if not isinstance(payload_raw, dict):
            raise NetworkError("Invalid response format", status_code=response.status_code)
        payload = cast(dict[str, Any], payload_raw)

        if payload.get("success") is False:
            message = str(payload.get("error") or "Unknown error")
            self._logger.warning("gateway_remote_error", operation=operation, error=message)
            raise RemoteError(message, status_code=response.status_code, details=payload)

        self._logger.debug("gateway_call_ok", operation=operation)
        return payload

    @staticmethod
    def _data(payload: dict[str, Any]) -> dict[str, Any]:
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    # === Reads ===

    async def get_all_data(self) -> dict[str, Any]:
        """Every collection in one call (the sync payload).

        Raises:
            NetworkError: The response has no ``data`` object. An empty
                bundle must never replace the current one.
        """
        payload = await self.call(Operation.GET_DATA)
        data = payload.get("data")
        if not isinstance(data, dict):
            self._logger.warning("gateway_missing_data", operation=Operation.GET_DATA)
            raise NetworkError("Invalid response format", details={"keys": sorted(payload)})
        return data

    async def get_income_data(self) -> dict[str, Any]:
        return self._data(await self.call(Operation.GET_INCOME_DATA))

    async def get_weekly_data(self) -> dict[str, Any]:
        return self._data(await self.call(Operation.GET_WEEKLY_DATA))

    async def get_site_fund_data(self) -> dict[str, Any]:
        return self._data(await self.call(Operation.GET_SITE_FUND_DATA))

    async def get_retained_data(self) -> dict[str, Any]:
        return self._data(await self.call(Operation.GET_RETAINED_DATA))

    async def get_savings_data(self) -> dict[str, Any]:
        return self._data(await self.call(Operation.GET_SAVINGS_DATA))

    async def get_last_net_chips(self) -> Any:
        payload = await self.call(Operation.GET_LAST_NET_CHIPS)
        data = self._data(payload)
        return data.get("lastNetChips", payload.get("lastNetChips", 0))

    async def calculate_weekly_summary(self, start: str, end: str) -> dict[str, Any]:
        """Loader salary and other expenses for ``[start, end]``, computed remotely."""
        payload = await self.call(
            Operation.CALCULATE_WEEKLY_SUMMARY, {"startDate": start, "endDate": end}
        )
        # Some deployments return the totals at the top level, others under "data".
        return self._data(payload) or payload

    # === Writes ===

    async def add_cfr_entry(self, entry: ShiftEntry) -> dict[str, Any]:
        return await self.call(Operation.ADD_CFR_ENTRY, {"data": entry.to_dict()})

    async def update_cfr_entry(self, entry: ShiftEntry) -> dict[str, Any]:
        return await self.call(Operation.UPDATE_CFR_ENTRY, {"data": entry.to_dict()})

    async def delete_cfr_entry(self, row_index: int) -> dict[str, Any]:
        return await self.call(Operation.DELETE_CFR_ENTRY, {"rowIndex": row_index})

    async def add_expenses_entry(self, entry: ExpenseEntry) -> dict[str, Any]:
        return await self.call(Operation.ADD_EXPENSES_ENTRY, {"data": entry.to_dict()})

    async def update_expenses_entry(self, entry: ExpenseEntry) -> dict[str, Any]:
        return await self.call(Operation.UPDATE_EXPENSES_ENTRY, {"data": entry.to_dict()})

    async def delete_expenses_entry(self, row_index: int) -> dict[str, Any]:
        return await self.call(Operation.DELETE_EXPENSES_ENTRY, {"rowIndex": row_index})

    async def add_weekly_summary(self, summary: WeeklySummary) -> dict[str, Any]:
        return await self.call(Operation.ADD_WEEKLY_SUMMARY, {"data": summary.to_dict()})

    async def update_weekly_summary(self, summary: WeeklySummary) -> dict[str, Any]:
        return await self.call(Operation.UPDATE_WEEKLY_SUMMARY, {"data": summary.to_dict()})

    async def delete_weekly_summary(self, row_index: int) -> dict[str, Any]:
        return await self.call(Operation.DELETE_WEEKLY_SUMMARY, {"rowIndex": row_index})

    async def add_fund_expense(
        self, fund_type: FundType, row_index: int, amount: Any, remarks: str
    ) -> dict[str, Any]:
        """Append a spend item to one fund row."""
        return await self.call(
            Operation.ADD_FUND_EXPENSE,
            {
                "sheetName": FundType(fund_type).sheet_name,
                "data": {"rowIndex": row_index, "amount": amount, "remarks": remarks},
            },
        )

    # === Connection test ===

    async def test_connection(self) -> tuple[bool, str]:
        """Try a full read; never raises."""
        try:
            await self.call(Operation.GET_DATA)
        except (NotConfiguredError, NetworkError, RemoteError) as e:
            return False, e.message
        return True, "Connection successful! Data loaded."
