from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SheetClassification(str, Enum):
    INCOME = "income"
    BALANCE = "balance"
    UNKNOWN = "unknown"


class CanonicalField(str, Enum):
    # Income statement
    GROSS_INCOME = "gross_income"
    NET_FARM_INCOME = "net_farm_income"
    NET_NONFARM_INCOME = "net_nonfarm_income"
    OPERATING_EXPENSES = "operating_expenses"
    INTEREST_EXPENSE = "interest_expense"
    DEPRECIATION = "depreciation"
    NET_INCOME = "net_income"
    # Balance sheet
    CASH = "cash"
    CURRENT_ASSETS = "current_assets"
    TOTAL_ASSETS = "total_assets"
    CURRENT_LIABILITIES = "current_liabilities"
    TERM_DEBT = "term_debt"
    TOTAL_LIABILITIES = "total_liabilities"
    TOTAL_EQUITY = "total_equity"


INCOME_FIELDS = (
    CanonicalField.GROSS_INCOME,
    CanonicalField.NET_FARM_INCOME,
    CanonicalField.NET_NONFARM_INCOME,
    CanonicalField.OPERATING_EXPENSES,
    CanonicalField.INTEREST_EXPENSE,
    CanonicalField.DEPRECIATION,
    CanonicalField.NET_INCOME,
)

BALANCE_FIELDS = (
    CanonicalField.CASH,
    CanonicalField.CURRENT_ASSETS,
    CanonicalField.TOTAL_ASSETS,
    CanonicalField.CURRENT_LIABILITIES,
    CanonicalField.TERM_DEBT,
    CanonicalField.TOTAL_LIABILITIES,
    CanonicalField.TOTAL_EQUITY,
)

FIELD_LABELS = {
    CanonicalField.GROSS_INCOME: "Gross Farm Income",
    CanonicalField.NET_FARM_INCOME: "Net Farm Income",
    CanonicalField.NET_NONFARM_INCOME: "Net Nonfarm Income",
    CanonicalField.OPERATING_EXPENSES: "Operating Expenses",
    CanonicalField.INTEREST_EXPENSE: "Interest Expense",
    CanonicalField.DEPRECIATION: "Depreciation",
    CanonicalField.NET_INCOME: "Net Income",
    CanonicalField.CASH: "Cash",
    CanonicalField.CURRENT_ASSETS: "Current Assets",
    CanonicalField.TOTAL_ASSETS: "Total Assets",
    CanonicalField.CURRENT_LIABILITIES: "Current Liabilities",
    CanonicalField.TERM_DEBT: "Term Debt",
    CanonicalField.TOTAL_LIABILITIES: "Total Liabilities",
    CanonicalField.TOTAL_EQUITY: "Total Equity",
}


def _field_key(field: Union[CanonicalField, str]) -> str:
    return field.value if isinstance(field, CanonicalField) else field


class FinancialTimeSeries(BaseModel):
    """Years plus one value series per recognised line item.

    Every series is aligned positionally to ``years`` and has the same length.
    Values are non-negative magnitudes; missing points are 0.
    """

    model_config = ConfigDict(frozen=True)

    years: List[int] = Field(default_factory=list)
    values: Dict[str, List[float]] = Field(default_factory=dict)
    # Field -> sheet (or "sample") that supplied the series
    sources: Dict[str, str] = Field(default_factory=dict)
    is_sample: bool = False

    @model_validator(mode="after")
    def _check_rectangular(self):
        if list(self.years) != sorted(set(self.years)):
            raise ValueError("years must be ascending and distinct")
        for key, series in self.values.items():
            if len(series) != len(self.years):
                raise ValueError(
                    f"series '{key}' has {len(series)} values for {len(self.years)} years"
                )
        return self

    def get(self, field: Union[CanonicalField, str]) -> Optional[List[float]]:
        return self.values.get(_field_key(field))

    def series(self, field: Union[CanonicalField, str]) -> List[float]:
        """Values for ``field``, or zeros when the field was not extracted."""
        found = self.get(field)
        return list(found) if found is not None else [0.0] * len(self.years)

    def has(self, field: Union[CanonicalField, str]) -> bool:
        return any(v > 0 for v in self.values.get(_field_key(field), []))

    @property
    def is_empty(self) -> bool:
        """True when there are no years or every extracted value is zero."""
        if not self.years:
            return True
        return not any(v > 0 for series in self.values.values() for v in series)


class DerivedMetrics(BaseModel):
    """Ratio series computed from a FinancialTimeSeries, aligned to its years."""

    years: List[int]
    current_ratio: List[float]
    working_capital: List[float]
    equity_ratio: List[float]
    debt_to_equity: List[float]
    financial_leverage: List[float]
    interest_coverage: List[float]
    return_on_assets: List[float]
    return_on_equity: List[float]
    asset_turnover: List[float]
    operating_margin: List[float]
    net_margin: List[float]
    debt_service_coverage: List[float]
    trends: Dict[str, str] = Field(default_factory=dict)
    assessment: Optional[str] = None
