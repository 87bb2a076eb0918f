"""Fixed dataset shown while no web app URL is configured."""

from chips_tracker.models import DataBundle

DEMO_PAYLOAD: dict = {
    "cfr": [
        {
            "rowIndex": 2, "date": "2025-01-01", "shiftTime": "12:00PM to 8:00PM",
            "cfr": 25000, "loaderSalary": 0, "chipsIn": 100000,
            "chipsInList": '[{"amount":100000,"remarks":"Starting Chips"}]',
            "endingChips": 75000, "netChips": 75000,
        },
        {
            "rowIndex": 3, "date": "2025-01-02", "shiftTime": "8:00PM to 4:00AM",
            "cfr": 30000, "loaderSalary": 0, "chipsIn": 75000,
            "chipsInList": '[{"amount":75000,"remarks":"Starting Chips"}]',
            "endingChips": 45000, "netChips": 45000,
        },
    ],
    "expenses": [
        {
            "rowIndex": 2, "date": "2025-01-01", "total": 5000,
            "expensesList": '[{"amount":3000,"remarks":"Groceries"},{"amount":2000,"remarks":"Gas"}]',
        },
        {
            "rowIndex": 3, "date": "2025-01-02", "total": 2500,
            "expensesList": '[{"amount":2500,"remarks":"Load"}]',
        },
    ],
    "weekly": [
        {
            "rowIndex": 2, "start": "2025-01-01", "end": "2025-01-07",
            "ggr": 500000, "loaderSalary": 0, "otherExpenses": 7500,
            "netProfit": 492500, "roi": 0.985, "status": "Profit",
            "team50": 197000, "siteFund35": 137900, "retained20": 98500, "savings15": 59100,
        },
    ],
    "team": [
        {
            "rowIndex": 2, "start": "2025-01-01", "end": "2025-01-07", "netProfit": 492500,
            "allocated": 197000, "spent": 50000,
            "spentList": '[{"amount":50000,"remarks":"Withdrawal"}]', "remaining": 147000,
        },
    ],
    "siteFund": [
        {
            "rowIndex": 2, "start": "2025-01-01", "end": "2025-01-07", "netProfit": 492500,
            "allocated": 137900, "spent": 10000,
            "spentList": '[{"amount":10000,"remarks":"Office"}]', "remaining": 127900,
        },
    ],
    "retained": [
        {
            "rowIndex": 2, "start": "2025-01-01", "end": "2025-01-07", "netProfit": 492500,
            "allocated": 98500, "spent": 15000,
            "spentList": '[{"amount":15000,"remarks":"Bills"}]', "remaining": 83500,
        },
    ],
    "savings": [
        {
            "rowIndex": 2, "start": "2025-01-01", "end": "2025-01-07", "netProfit": 492500,
            "allocated": 59100, "spent": 0, "spentList": "[]", "remaining": 59100,
        },
    ],
    "lastNetChips": 45000,
}


def demo_bundle() -> DataBundle:
    """A fresh copy of the demo data."""
    return DataBundle.from_dict(DEMO_PAYLOAD)
