"""
Locally built analyses returned when the LLM is unavailable, times out or
replies with something that cannot be parsed.

They have the same shape as the LLM analyses (executiveSummary plus titled
sections) and are computed from the extracted figures where there are any.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from app.schemas.financials import CanonicalField, DerivedMetrics, FinancialTimeSeries
from app.services.metrics import TREND_DECLINING, TREND_INSUFFICIENT, analyze_trend

logger = logging.getLogger(__name__)

NOT_CONFIGURED_NOTICE = (
    "AI analysis is not configured. This summary is computed from the extracted figures."
)
TIME_CONSTRAINT_NOTICE = (
    "Analysis completed with time constraints. The AI review did not finish in time, "
    "so this summary is computed from the extracted figures."
)
PARSE_FAILURE_NOTICE = (
    "The AI response could not be read. This summary is computed from the extracted figures."
)
SERVICE_ERROR_NOTICE = (
    "The AI service returned an error. This summary is computed from the extracted figures."
)

STANDARD_PRINCIPLES = (
    "Analysis follows GAAP presentation and agricultural lending practice: "
    "1.5:1 current ratio, 1.25:1 debt coverage and 40% minimum equity ratio."
)

MANUAL_REVIEW = "Requires manual evaluation"


def _money(value: float) -> str:
    return f"${value:,.0f}"


def _percent(value: float) -> str:
    return f"{value:.1f}%"


def _ratio(value: float) -> str:
    return f"{value:.2f}:1"


def _grade(passed: int, total: int) -> str:
    if total == 0:
        return "C"
    share = passed / total
    if share >= 0.9:
        return "A"
    if share >= 0.7:
        return "B"
    if share >= 0.4:
        return "C"
    if share >= 0.2:
        return "D"
    return "F"


def _risk_level(grade: str) -> str:
    return {"A": "Low", "B": "Low"}.get(grade, "Medium" if grade == "C" else "High")


def _latest(values: List[float]) -> float:
    return values[-1] if values else 0.0


def _metric(name: str, value: str, trend: str, analysis: str) -> Dict[str, str]:
    return {"name": name, "value": value, "trend": trend, "analysis": analysis}


def _series_metric(series: FinancialTimeSeries, field: CanonicalField, name: str, higher_is_better: bool = True):
    values = series.get(field)
    if not values or not any(values):
        return None
    trend = analyze_trend(values, higher_is_better)
    history = ", ".join(f"{year}: {_money(v)}" for year, v in zip(series.years, values))
    return _metric(name, _money(values[-1]), trend, f"Reported values by year: {history}.")


def _checks_outcome(checks: List[Tuple[bool, str, str]]) -> Tuple[int, List[str], List[str]]:
    """Count passing checks and split their messages into strengths and weaknesses."""
    strengths = [good for ok, good, _ in checks if ok]
    weaknesses = [bad for ok, _, bad in checks if not ok]
    return len(strengths), strengths, weaknesses


def _credit_factors(capacity: str, capital: str, collateral: str) -> List[Dict[str, str]]:
    return [
        {"factor": "Character", "assessment": MANUAL_REVIEW, "score": "Adequate"},
        {"factor": "Capacity", "assessment": capacity, "score": "Adequate"},
        {"factor": "Capital", "assessment": capital, "score": "Adequate"},
        {"factor": "Collateral", "assessment": collateral, "score": "Adequate"},
        {"factor": "Conditions", "assessment": MANUAL_REVIEW, "score": "Neutral"},
    ]


def _recommendation(category: str, text: str, priority: str, rationale: str) -> Dict[str, str]:
    return {"category": category, "recommendation": text, "priority": priority, "rationale": rationale}


def _executive_summary(
    notice: str,
    grade: str,
    trend_key: str,
    trend: str,
    strengths: List[str],
    weaknesses: List[str],
    performance: str,
) -> Dict[str, Any]:
    return {
        "overallPerformance": performance,
        "creditGrade": grade,
        "gradeExplanation": (
            f"Grade {grade} assigned from the ratio checks that could be computed from the "
            "extracted figures. A full review should confirm it."
        ),
        "standardPrinciples": STANDARD_PRINCIPLES,
        trend_key: trend,
        "riskLevel": _risk_level(grade),
        "keyStrengths": strengths or ["Statement data processed successfully"],
        "criticalWeaknesses": weaknesses or ["No critical weaknesses detected in the extracted figures"],
        "notice": notice,
    }


def _usable(series: Optional[FinancialTimeSeries]) -> bool:
    return series is not None and not series.is_empty


def build_income_fallback(
    series: Optional[FinancialTimeSeries],
    derived: Optional[DerivedMetrics],
    notice: str,
) -> Dict[str, Any]:
    earnings_metrics: List[Dict[str, str]] = []
    checks: List[Tuple[bool, str, str]] = []
    profit_trend = TREND_INSUFFICIENT

    if _usable(series) and derived is not None:
        for field, name in (
            (CanonicalField.GROSS_INCOME, "Gross Farm Income"),
            (CanonicalField.NET_FARM_INCOME, "Net Farm Income"),
            (CanonicalField.NET_NONFARM_INCOME, "Net Nonfarm Income"),
            (CanonicalField.NET_INCOME, "Net Income (NIAT)"),
        ):
            entry = _series_metric(series, field, name)
            if entry:
                earnings_metrics.append(entry)

        profit_trend = derived.trends.get("net_margin", TREND_INSUFFICIENT)
        gross = series.series(CanonicalField.GROSS_INCOME)
        opex = series.series(CanonicalField.OPERATING_EXPENSES)
        if _latest(gross):
            net_margin = _latest(derived.net_margin)
            checks.append((
                net_margin >= 10,
                f"Net margin of {_percent(net_margin)} on gross farm income",
                f"Thin net margin of {_percent(net_margin)} on gross farm income",
            ))
            if _latest(opex):
                expense_ratio = _latest(opex) / _latest(gross) * 100
                checks.append((
                    expense_ratio <= 75,
                    f"Operating expense ratio of {_percent(expense_ratio)} within the 65-75% benchmark",
                    f"Operating expense ratio of {_percent(expense_ratio)} above the 75% benchmark",
                ))
        if profit_trend != TREND_INSUFFICIENT:
            checks.append((
                profit_trend != TREND_DECLINING,
                f"Net margin trend is {profit_trend.lower()}",
                "Net margin declined in the latest year",
            ))

    passed, strengths, weaknesses = _checks_outcome(checks)
    grade = _grade(passed, len(checks))
    logger.info(f"Built income fallback analysis (grade {grade}, {passed}/{len(checks)} checks)")

    return {
        "executiveSummary": _executive_summary(
            notice, grade, "profitabilityTrend",
            profit_trend if profit_trend != TREND_INSUFFICIENT else "Stable",
            strengths, weaknesses,
            "Income statement reviewed from extracted figures" if checks else "Analysis completed with limited data",
        ),
        "sections": [
            {
                "title": "Earnings Analysis",
                "summary": "Farm income and profitability from the extracted figures",
                "metrics": earnings_metrics,
                "keyFindings": [s for s in strengths[:2]] or ["Earnings analysis requires manual review"],
            },
            {
                "title": "Cash Flow and Debt Service Analysis",
                "summary": "Debt service capacity requires scheduled principal and interest data",
                "metrics": [],
                "keyFindings": ["Compare margin after servicing with the 1.25:1 debt coverage standard"],
            },
            {
                "title": "5 C's of Credit Assessment",
                "summary": "Credit evaluation framework assessment",
                "creditFactors": _credit_factors(MANUAL_REVIEW, MANUAL_REVIEW, MANUAL_REVIEW),
                "keyFindings": ["Manual credit assessment required"],
            },
            {
                "title": "Lending Standards Compliance",
                "summary": "Comparison with agricultural lending benchmarks",
                "metrics": [],
                "keyFindings": weaknesses[:2] or ["No benchmark exceptions detected"],
            },
            {
                "title": "Credit Recommendations",
                "summary": "Lending recommendations based on available analysis",
                "recommendations": [
                    _recommendation(
                        "Data Review", "Review the income statement with the borrower",
                        "High", notice,
                    )
                ],
                "keyFindings": ["Manual review recommended"],
            },
        ],
    }


def build_balance_fallback(
    series: Optional[FinancialTimeSeries],
    derived: Optional[DerivedMetrics],
    notice: str,
) -> Dict[str, Any]:
    liquidity_metrics: List[Dict[str, str]] = []
    leverage_metrics: List[Dict[str, str]] = []
    asset_metrics: List[Dict[str, str]] = []
    checks: List[Tuple[bool, str, str]] = []
    capacity = capital = collateral = MANUAL_REVIEW
    trend = TREND_INSUFFICIENT

    if _usable(series) and derived is not None:
        current_ratio = _latest(derived.current_ratio)
        working_capital = _latest(derived.working_capital)
        equity_ratio = _latest(derived.equity_ratio)
        debt_to_equity = _latest(derived.debt_to_equity)
        trend = derived.trends.get("equity_ratio", TREND_INSUFFICIENT)

        if series.has(CanonicalField.CURRENT_LIABILITIES):
            liquidity_metrics.append(_metric(
                "Current Ratio", _ratio(current_ratio), derived.trends.get("current_ratio", TREND_INSUFFICIENT),
                f"Current ratio of {_ratio(current_ratio)} against the 1.5:1 lending standard.",
            ))
            liquidity_metrics.append(_metric(
                "Working Capital", _money(working_capital), derived.trends.get("working_capital", TREND_INSUFFICIENT),
                "Working capital buffer for seasonal operating needs.",
            ))
            checks.append((
                current_ratio >= 1.5,
                f"Current ratio of {_ratio(current_ratio)} meets the 1.5:1 standard",
                f"Current ratio of {_ratio(current_ratio)} is below the 1.5:1 standard",
            ))
            checks.append((
                working_capital > 0,
                f"Positive working capital of {_money(working_capital)}",
                f"Negative working capital of {_money(working_capital)}",
            ))
            capacity = f"Current ratio of {_ratio(current_ratio)} with working capital of {_money(working_capital)}"

        if series.has(CanonicalField.TOTAL_ASSETS):
            leverage_metrics.append(_metric(
                "Equity Ratio", _percent(equity_ratio), derived.trends.get("equity_ratio", TREND_INSUFFICIENT),
                f"Owner equity funds {_percent(equity_ratio)} of total assets.",
            ))
            checks.append((
                equity_ratio >= 40,
                f"Equity ratio of {_percent(equity_ratio)} provides a capital cushion",
                f"Equity ratio of {_percent(equity_ratio)} is below 40%",
            ))
            capital = f"Equity ratio of {_percent(equity_ratio)}"
            total_assets = _series_metric(series, CanonicalField.TOTAL_ASSETS, "Total Assets")
            if total_assets:
                asset_metrics.append(total_assets)
                collateral = f"Total assets of {total_assets['value']} available as collateral"

        if debt_to_equity:
            leverage_metrics.append(_metric(
                "Debt to Equity", _ratio(debt_to_equity), derived.trends.get("debt_to_equity", TREND_INSUFFICIENT),
                "Total liabilities relative to owner equity.",
            ))
            checks.append((
                debt_to_equity <= 1.5,
                f"Moderate leverage at {_ratio(debt_to_equity)} debt to equity",
                f"High leverage at {_ratio(debt_to_equity)} debt to equity",
            ))
            leverage = _latest(derived.financial_leverage)
            leverage_metrics.append(_metric(
                "Financial Leverage", _ratio(leverage), derived.trends.get("financial_leverage", TREND_INSUFFICIENT),
                f"Each dollar of equity supports {_ratio(leverage)} of assets.",
            ))

        term_debt = _series_metric(series, CanonicalField.TERM_DEBT, "Term Debt", higher_is_better=False)
        if term_debt:
            leverage_metrics.append(term_debt)

    passed, strengths, weaknesses = _checks_outcome(checks)
    grade = _grade(passed, len(checks))
    logger.info(f"Built balance fallback analysis (grade {grade}, {passed}/{len(checks)} checks)")

    return {
        "executiveSummary": _executive_summary(
            notice, grade, "financialTrend",
            trend if trend != TREND_INSUFFICIENT else "Stable",
            strengths, weaknesses,
            "Balance sheet reviewed from extracted figures" if checks else "Analysis completed with limited data",
        ),
        "sections": [
            {
                "title": "Working Capital Analysis",
                "summary": "Liquidity position from the extracted figures",
                "metrics": liquidity_metrics,
                "keyFindings": [c[1] if c[0] else c[2] for c in checks[:2]] or ["Liquidity requires manual review"],
            },
            {
                "title": "Leverage and Solvency Analysis",
                "summary": "Capital structure from the extracted figures",
                "metrics": leverage_metrics,
                "keyFindings": [c[1] if c[0] else c[2] for c in checks[2:]] or ["Leverage requires manual review"],
            },
            {
                "title": "Asset Quality and Collateral",
                "summary": "Asset base available to secure credit",
                "metrics": asset_metrics,
                "keyFindings": ["Confirm asset values with an appraisal"],
            },
            {
                "title": "5 C's of Credit Assessment",
                "summary": "Credit evaluation framework assessment",
                "creditFactors": _credit_factors(capacity, capital, collateral),
                "keyFindings": ["Character and conditions require manual assessment"],
            },
            {
                "title": "Credit Recommendations",
                "summary": "Lending recommendations based on available analysis",
                "recommendations": [
                    _recommendation(
                        "Data Review", "Review the balance sheet with the borrower",
                        "High", notice,
                    )
                ],
                "keyFindings": ["Manual review recommended"],
            },
        ],
    }


def build_combined_fallback(
    series: Optional[FinancialTimeSeries],
    derived: Optional[DerivedMetrics],
    notice: str,
) -> Dict[str, Any]:
    profitability: List[Dict[str, str]] = []
    structure: List[Dict[str, str]] = []
    checks: List[Tuple[bool, str, str]] = []
    trend = TREND_INSUFFICIENT
    findings = ["Integrated analysis requires manual review"]

    if _usable(series) and derived is not None:
        roa = _latest(derived.return_on_assets)
        roe = _latest(derived.return_on_equity)
        current_ratio = _latest(derived.current_ratio)
        equity_ratio = _latest(derived.equity_ratio)
        dscr = _latest(derived.debt_service_coverage)
        turnover = _latest(derived.asset_turnover)
        trend = derived.trends.get("return_on_assets", TREND_INSUFFICIENT)

        profitability.extend([
            _metric("Return on Assets", _percent(roa), derived.trends.get("return_on_assets", TREND_INSUFFICIENT),
                    "Profit relative to total assets."),
            _metric("Return on Equity", _percent(roe), derived.trends.get("return_on_equity", TREND_INSUFFICIENT),
                    "Profit relative to owner equity."),
            _metric("Asset Turnover", f"{turnover:.2f}", TREND_INSUFFICIENT, "Gross farm income per dollar of assets."),
        ])
        structure.extend([
            _metric("Current Ratio", _ratio(current_ratio), derived.trends.get("current_ratio", TREND_INSUFFICIENT),
                    "Short-term liquidity against the 1.5:1 standard."),
            _metric("Equity Ratio", _percent(equity_ratio), derived.trends.get("equity_ratio", TREND_INSUFFICIENT),
                    "Share of assets funded by owner equity."),
            _metric("Debt Service Coverage", _ratio(dscr), TREND_INSUFFICIENT,
                    "Estimated from net farm income and current liabilities."),
            _metric("Interest Coverage", _ratio(_latest(derived.interest_coverage)),
                    derived.trends.get("interest_coverage", TREND_INSUFFICIENT),
                    "Earnings before interest per dollar of interest expense."),
            _metric("Financial Leverage", _ratio(_latest(derived.financial_leverage)),
                    derived.trends.get("financial_leverage", TREND_INSUFFICIENT),
                    "Total assets per dollar of owner equity."),
        ])
        checks = [
            (roa >= 3, f"ROA of {_percent(roa)}", f"Low ROA of {_percent(roa)}"),
            (roe >= 5, f"ROE of {_percent(roe)}", f"Low ROE of {_percent(roe)}"),
            (current_ratio >= 1.5, f"Current ratio of {_ratio(current_ratio)}",
             f"Current ratio of {_ratio(current_ratio)} below 1.5:1"),
            (equity_ratio >= 40, f"Equity ratio of {_percent(equity_ratio)}",
             f"Equity ratio of {_percent(equity_ratio)} below 40%"),
            (dscr >= 1.1, f"Estimated debt service coverage of {_ratio(dscr)}",
             f"Estimated debt service coverage of {_ratio(dscr)} below 1.1:1"),
        ]
        if derived.assessment:
            findings = [derived.assessment]

    passed, strengths, weaknesses = _checks_outcome(checks)
    grade = _grade(passed, len(checks))
    logger.info(f"Built combined fallback analysis (grade {grade}, {passed}/{len(checks)} checks)")

    return {
        "executiveSummary": _executive_summary(
            notice, grade, "overallTrend",
            trend if trend != TREND_INSUFFICIENT else "Stable",
            strengths, weaknesses,
            "Combined statements reviewed from extracted figures" if checks else "Analysis completed with limited data",
        ),
        "sections": [
            {
                "title": "Integrated Profitability and Liquidity",
                "summary": "Returns and efficiency from both statements",
                "metrics": profitability,
                "keyFindings": findings,
            },
            {
                "title": "Capital Structure and Risk Assessment",
                "summary": "Liquidity, leverage and debt service",
                "metrics": structure,
                "keyFindings": weaknesses[:3] or ["No ratio exceptions detected"],
            },
            {
                "title": "Credit Risk Evaluation",
                "summary": f"{passed} of {len(checks)} benchmark checks passed" if checks else "Risk rating requires manual review",
                "metrics": [],
                "keyFindings": [f"Indicative risk level: {_risk_level(grade)}"],
            },
            {
                "title": "Lending Recommendations",
                "summary": "Lending recommendations based on available analysis",
                "recommendations": [
                    _recommendation(
                        "Data Review", "Confirm the extracted figures before a credit decision",
                        "High", notice,
                    )
                ],
                "keyFindings": ["Manual review recommended"],
            },
            {
                "title": "Risk Mitigation and Monitoring",
                "summary": "Indicators to monitor through the loan term",
                "metrics": [],
                "keyFindings": [
                    "Monitor current ratio, equity ratio and debt service coverage annually",
                ],
            },
        ],
    }
