"""Pytest configuration and fixtures."""

import json
import os

import pytest

# Keep the developer's environment out of the tests before settings load
os.environ["CHIPS_WEB_APP_URL"] = ""
os.environ.setdefault("CHIPS_AUTO_SYNC_INTERVAL", "30")

from chips_tracker.store import SETTINGS_KEY, MemoryStore  # noqa: E402

WEB_APP_URL = "https://script.example.test/macros/s/abc/exec"


@pytest.fixture
def memory_store():
    """An empty in-memory key-value store."""
    return MemoryStore()


@pytest.fixture
def configured_store():
    """Store whose settings slot points at a web app, auto-sync off."""
    return MemoryStore({SETTINGS_KEY: json.dumps({"webAppUrl": WEB_APP_URL, "autoSync": False})})


@pytest.fixture
def sync_payload():
    """A getData payload as returned by the web app."""
    return {
        "cfr": [
            {
                "rowIndex": 2,
                "date": "2025-02-03T16:00:00.000Z",
                "shiftTime": "12:00PM to 8:00PM",
                "cfr": 40000,
                "loaderSalary": 1500,
                "chipsIn": 45000,
                "chipsInList": '[{"amount":45000,"remarks":"Starting Chips"}]',
                "endingChips": 62000,
                "netChips": 62000,
            },
            {
                "rowIndex": 3,
                "date": "2025-02-03",
                "shiftTime": "8:00PM to 4:00AM",
                "cfr": 18000,
                "loaderSalary": 1500,
                "chipsIn": 62000,
                "chipsInList": '[{"amount":62000,"remarks":"Starting Chips"}]',
                "endingChips": 51000,
                "netChips": 51000,
            },
        ],
        "expenses": [
            {
                "rowIndex": 2,
                "date": "2025-02-03",
                "total": 1200,
                "expensesList": '[{"amount":1200,"remarks":"Snacks"}]',
            },
        ],
        "weekly": [
            {
                "rowIndex": 2,
                "start": "2025-02-03",
                "end": "2025-02-09",
                "ggr": 200000,
                "loaderSalary": 3000,
                "otherExpenses": 1200,
                "netProfit": 195800,
                "roi": 0.979,
                "status": "Profit",
            },
        ],
        "team": [
            {
                "rowIndex": 2,
                "start": "2025-02-03",
                "end": "2025-02-09",
                "netProfit": 195800,
                "allocated": 78320,
                "spent": 0,
                "spentList": "[]",
                "remaining": 78320,
            },
        ],
        "siteFund": [],
        "retained": [],
        "savings": [],
        "lastNetChips": 51000,
    }
