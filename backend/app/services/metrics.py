import logging
from typing import Dict, List, Sequence

from app.schemas.financials import CanonicalField, DerivedMetrics, FinancialTimeSeries

logger = logging.getLogger(__name__)

# Annual debt service is not on either statement; it is approximated as this
# share of current liabilities.
ESTIMATED_DEBT_SERVICE_SHARE = 0.10

# Interest expense stands in at this share of total liabilities when the
# income statement does not report it.
ESTIMATED_INTEREST_RATE = 0.05

# Changes smaller than this many percent read as stable
STABLE_TREND_PERCENT = 2.0

TREND_INSUFFICIENT = "Insufficient data"
TREND_IMPROVING = "Improving"
TREND_DECLINING = "Declining"
TREND_STABLE = "Stable"

# (metric name, higher is better)
TRACKED_TRENDS = [
    ("current_ratio", True),
    ("working_capital", True),
    ("equity_ratio", True),
    ("debt_to_equity", False),
    ("financial_leverage", False),
    ("interest_coverage", True),
    ("return_on_assets", True),
    ("return_on_equity", True),
    ("net_margin", True),
]


def safe_divide(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    return numerator / denominator


def _round(value: float, digits: int = 2) -> float:
    return round(value, digits)


def _profit_series(series: FinancialTimeSeries) -> List[float]:
    # Net income when reported, net farm income otherwise
    net_income = series.series(CanonicalField.NET_INCOME)
    net_farm_income = series.series(CanonicalField.NET_FARM_INCOME)
    return [ni if ni else nfi for ni, nfi in zip(net_income, net_farm_income)]


def _equity_series(series: FinancialTimeSeries) -> List[float]:
    # Fall back to assets minus liabilities when equity is not reported
    equity = series.series(CanonicalField.TOTAL_EQUITY)
    assets = series.series(CanonicalField.TOTAL_ASSETS)
    liabilities = series.series(CanonicalField.TOTAL_LIABILITIES)
    return [
        eq if eq else max(ta - tl, 0.0) if ta and tl else 0.0
        for eq, ta, tl in zip(equity, assets, liabilities)
    ]


def analyze_trend(values: Sequence[float], higher_is_better: bool = True) -> str:
    """Label the change from the previous year to the latest one."""
    if len(values) < 2:
        return TREND_INSUFFICIENT
    first, last = values[-2], values[-1]
    if not first:
        return TREND_STABLE if not last else (TREND_IMPROVING if higher_is_better else TREND_DECLINING)

    change_percent = (last - first) / abs(first) * 100
    if abs(change_percent) < STABLE_TREND_PERCENT:
        return TREND_STABLE
    improved = change_percent > 0 if higher_is_better else change_percent < 0
    return TREND_IMPROVING if improved else TREND_DECLINING


def compute_derived_metrics(series: FinancialTimeSeries, include_assessment: bool = False) -> DerivedMetrics:
    """Compute ratio series aligned to the years of ``series``.

    Ratios whose denominator is missing are 0. Percent-style ratios (equity
    ratio, returns, margins) are expressed in percent.
    """
    current_assets = series.series(CanonicalField.CURRENT_ASSETS)
    current_liabilities = series.series(CanonicalField.CURRENT_LIABILITIES)
    total_assets = series.series(CanonicalField.TOTAL_ASSETS)
    total_liabilities = series.series(CanonicalField.TOTAL_LIABILITIES)
    gross_income = series.series(CanonicalField.GROSS_INCOME)
    operating_expenses = series.series(CanonicalField.OPERATING_EXPENSES)
    net_farm_income = series.series(CanonicalField.NET_FARM_INCOME)
    interest_expense = series.series(CanonicalField.INTEREST_EXPENSE)
    profit = _profit_series(series)
    equity = _equity_series(series)

    metrics: Dict[str, List[float]] = {
        "current_ratio": [],
        "working_capital": [],
        "equity_ratio": [],
        "debt_to_equity": [],
        "financial_leverage": [],
        "interest_coverage": [],
        "return_on_assets": [],
        "return_on_equity": [],
        "asset_turnover": [],
        "operating_margin": [],
        "net_margin": [],
        "debt_service_coverage": [],
    }

    for i in range(len(series.years)):
        earnings = net_farm_income[i] or profit[i]
        metrics["current_ratio"].append(_round(safe_divide(current_assets[i], current_liabilities[i])))
        metrics["working_capital"].append(_round(current_assets[i] - current_liabilities[i]))
        metrics["equity_ratio"].append(_round(safe_divide(equity[i], total_assets[i]) * 100))
        metrics["debt_to_equity"].append(_round(safe_divide(total_liabilities[i], equity[i])))
        metrics["financial_leverage"].append(_round(safe_divide(total_assets[i], equity[i])))
        interest = interest_expense[i] or total_liabilities[i] * ESTIMATED_INTEREST_RATE
        metrics["interest_coverage"].append(_round(safe_divide(earnings + interest, interest)))
        metrics["return_on_assets"].append(_round(safe_divide(profit[i], total_assets[i]) * 100))
        metrics["return_on_equity"].append(_round(safe_divide(profit[i], equity[i]) * 100))
        metrics["asset_turnover"].append(_round(safe_divide(gross_income[i], total_assets[i])))
        operating_profit = gross_income[i] - operating_expenses[i] if operating_expenses[i] else 0.0
        metrics["operating_margin"].append(_round(safe_divide(operating_profit, gross_income[i]) * 100))
        metrics["net_margin"].append(_round(safe_divide(profit[i], gross_income[i]) * 100))
        debt_service = current_liabilities[i] * ESTIMATED_DEBT_SERVICE_SHARE
        metrics["debt_service_coverage"].append(_round(safe_divide(earnings, debt_service)))

    trends = {
        name: analyze_trend(metrics[name], higher_is_better)
        for name, higher_is_better in TRACKED_TRENDS
    }

    derived = DerivedMetrics(years=list(series.years), trends=trends, **metrics)
    if include_assessment and series.years:
        derived = derived.model_copy(update={"assessment": generate_integrated_assessment(derived)})
    return derived


def _latest(values: Sequence[float]) -> float:
    return values[-1] if values else 0.0


def generate_integrated_assessment(metrics: DerivedMetrics) -> str:
    """Summarise the latest year's ratios as a short credit health narrative."""
    roa = _latest(metrics.return_on_assets)
    roe = _latest(metrics.return_on_equity)
    current_ratio = _latest(metrics.current_ratio)
    working_capital = _latest(metrics.working_capital)
    equity_ratio = _latest(metrics.equity_ratio)
    dscr = _latest(metrics.debt_service_coverage)
    turnover = _latest(metrics.asset_turnover)

    if roa >= 5 and roe >= 10:
        profitability = f"Profitability is strong with ROA of {roa:.1f}% and ROE of {roe:.1f}%."
    elif roa >= 3 and roe >= 5:
        profitability = f"Profitability is adequate with ROA of {roa:.1f}% and ROE of {roe:.1f}%."
    else:
        profitability = (
            f"Profitability is weak with ROA of {roa:.1f}% and ROE of {roe:.1f}%, "
            "below typical agricultural lending benchmarks."
        )

    if current_ratio >= 2 and working_capital > 0:
        liquidity = f"Liquidity is strong with a current ratio of {current_ratio:.2f} and positive working capital."
    elif current_ratio >= 1.5 and working_capital > 0:
        liquidity = f"Liquidity is adequate with a current ratio of {current_ratio:.2f}."
    else:
        liquidity = f"Liquidity is a concern with a current ratio of {current_ratio:.2f}."

    if equity_ratio >= 60 and dscr >= 1.5:
        solvency = (
            f"Solvency is strong with an equity ratio of {equity_ratio:.1f}% "
            f"and estimated debt service coverage of {dscr:.2f}."
        )
    elif equity_ratio >= 40 and dscr >= 1.1:
        solvency = (
            f"Solvency is adequate with an equity ratio of {equity_ratio:.1f}% "
            f"and estimated debt service coverage of {dscr:.2f}."
        )
    else:
        solvency = (
            f"Solvency needs attention with an equity ratio of {equity_ratio:.1f}% "
            f"and estimated debt service coverage of {dscr:.2f}."
        )

    if turnover >= 0.7:
        efficiency = f"Asset efficiency is strong with asset turnover of {turnover:.2f}."
    elif turnover >= 0.5:
        efficiency = f"Asset efficiency is adequate with asset turnover of {turnover:.2f}."
    else:
        efficiency = f"Asset efficiency is low with asset turnover of {turnover:.2f}."

    score = sum([roa >= 3, roe >= 5, current_ratio >= 1.5, equity_ratio >= 40, dscr >= 1.1])
    if score >= 4:
        overall = "Overall financial health is strong and supports continued credit extension."
    elif score >= 2:
        overall = "Overall financial health is mixed; structure credit with appropriate conditions."
    else:
        overall = "Overall financial health is weak; additional collateral or guarantees are warranted."

    logger.debug(f"Integrated assessment score {score}/5")
    return " ".join([profitability, liquidity, solvency, efficiency, overall])
