import asyncio
from datetime import date
from io import BytesIO
from typing import Dict, List, Optional

import pandas as pd
import pytest


BALANCE_ROWS = [
    [None, 2022, 2023, 2024],
    ["Cash", 120000, 135000, 150000],
    ["Accounts Receivable", 80000, 90000, 95000],
    ["Inventory", 135000, 150000, 157000],
    ["Total Current Assets", 335000, 375000, 402000],
    ["Total Assets", 3515000, 3712000, 3958000],
    ["Total Current Liabilities", 180000, 190000, 200000],
    ["Term Debt", 1200000, 1150000, 1100000],
    ["Total Liabilities", 1380000, 1340000, 1300000],
    ["Net Worth", 2135000, 2372000, 2658000],
    ["Total Liabilities and Equity", 3515000, 3712000, 3958000],
]

INCOME_ROWS = [
    ["Description", 2022, 2023, 2024],
    ["Gross Farm Income", 1800000, 1950000, 2100000],
    ["Operating Expenses", 1350000, 1430000, 1630000],
    ["Interest Expense", 96000, 98000, 101000],
    ["Depreciation", 145000, 152000, 160000],
    ["Net Farm Income", 450000, 520000, 470000],
    ["Net Income", 380000, 425000, 395000],
]


def make_workbook(sheets: Dict[str, List[list]]) -> bytes:
    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, header=False, index=False)
    return buffer.getvalue()


class StubLLMClient:
    """Stands in for the Vertex AI client; records prompts and returns a canned reply."""

    def __init__(self, reply: str = "", is_configured: bool = True, delay: float = 0.0, error: Optional[Exception] = None):
        self.reply = reply
        self.is_configured = is_configured
        self.delay = delay
        self.error = error
        self.prompts: List[str] = []

    async def generate_text(self, prompt, system_instruction=None, temperature=0.1, max_tokens=None, purpose="analysis"):
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def clock():
    return lambda: date(2024, 6, 30)


@pytest.fixture
def balance_workbook() -> bytes:
    return make_workbook({"Balance Sheet": BALANCE_ROWS})


@pytest.fixture
def income_workbook() -> bytes:
    return make_workbook({"Income Statement": INCOME_ROWS})


@pytest.fixture
def stub_client():
    return StubLLMClient


@pytest.fixture
def balance_rows() -> List[list]:
    return [list(row) for row in BALANCE_ROWS]


@pytest.fixture
def income_rows() -> List[list]:
    return [list(row) for row in INCOME_ROWS]


@pytest.fixture
def workbook_from():
    return make_workbook
