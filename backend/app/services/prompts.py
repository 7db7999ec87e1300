import json
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.schemas.analysis import AnalysisType

INCOME_SECTIONS = [
    "Earnings Analysis",
    "Cash Flow and Debt Service Analysis",
    "5 C's of Credit Assessment",
    "Lending Standards Compliance",
    "Credit Recommendations",
]

BALANCE_SECTIONS = [
    "Working Capital Analysis",
    "Leverage and Solvency Analysis",
    "Asset Quality and Collateral",
    "5 C's of Credit Assessment",
    "Credit Recommendations",
]

COMBINED_SECTIONS = [
    "Integrated Profitability and Liquidity",
    "Capital Structure and Risk Assessment",
    "Credit Risk Evaluation",
    "Lending Recommendations",
    "Risk Mitigation and Monitoring",
]

ANALYST_ROLE = (
    "You are an expert agricultural credit analyst working for a farm lender. "
    "You assess borrowers with the 5 C's of Credit (Character, Capacity, Capital, "
    "Collateral, Conditions) and standard agricultural lending benchmarks."
)

QUESTION_SYSTEM_INSTRUCTION = (
    "You are a financial analysis expert. Generate insightful follow-up questions "
    "that help a lender understand a credit analysis better. Return only the "
    "questions as a JSON array of strings, no additional text."
)


def _truncate(text: str, limit: Optional[int] = None) -> str:
    limit = limit or settings.MAX_PROMPT_DATA_CHARS
    if len(text) <= limit:
        return text
    return text[:limit] + "\n[... data truncated ...]"


def _json_schema(section_titles: List[str], summary_trend_key: str) -> str:
    sections = []
    for title in section_titles:
        section: Dict[str, Any] = {
            "title": title,
            "summary": "string - section narrative with dollar amounts and ratios",
            "metrics": [
                {
                    "name": "string - metric name",
                    "value": "string - value with units for the latest year",
                    "trend": "Improving|Stable|Declining",
                    "analysis": "string - year-over-year analysis against benchmarks",
                }
            ],
            "keyFindings": ["string"],
        }
        if "5 C's" in title:
            section["creditFactors"] = [
                {"factor": "Character|Capacity|Capital|Collateral|Conditions",
                 "assessment": "string", "score": "Strong|Adequate|Weak"}
            ]
        if "Recommendations" in title:
            section["recommendations"] = [
                {"category": "string", "recommendation": "string",
                 "priority": "High|Medium|Low", "rationale": "string"}
            ]
        sections.append(section)

    schema = {
        "executiveSummary": {
            "overallPerformance": "string - brief overall assessment",
            "creditGrade": "A|B|C|D|F",
            "gradeExplanation": "string - why this grade, citing specific ratios and benchmarks",
            "standardPrinciples": "string - accounting standards and lending principles applied",
            summary_trend_key: "Improving|Stable|Declining",
            "riskLevel": "Low|Medium|High",
            "keyStrengths": ["string"],
            "criticalWeaknesses": ["string"],
        },
        "sections": sections,
    }
    return json.dumps(schema, indent=2)


def _data_block(file_name: str, data_hash: str, raw_text: str, series_summary: str) -> str:
    block = f"File: {file_name}\nData Hash: {data_hash}\n"
    if series_summary:
        block += f"\nEXTRACTED MULTI-YEAR FIGURES (most recent year first):\n{series_summary}\n"
    block += f"\nSTATEMENT DATA:\n{_truncate(raw_text)}\n"
    return block


def build_income_prompt(file_name: str, data_hash: str, raw_text: str, series_summary: str) -> str:
    return f"""{ANALYST_ROLE}
Analyze the following income statement with a focus on earnings trends and repayment capacity.

{_data_block(file_name, data_hash, raw_text, series_summary)}
ANALYSIS REQUIREMENTS:
1. Trend analysis of Gross Farm Income, Net Farm Income, Net Nonfarm Income and Net Income (NIAT)
2. Debt service: term interest and principal demand, margin after servicing, debt coverage against the 1.25:1 standard
3. Operating expense ratio against the typical 65-75% agricultural benchmark
4. Cash flow adequacy for family living and capital expenditures
5. A credit grade (A, B, C, D or F) with a detailed explanation
6. Specific dollar amounts, percentages and comparisons to the three-year average

Provide the analysis in the following JSON format:

{_json_schema(INCOME_SECTIONS, "profitabilityTrend")}

IMPORTANT: Return ONLY valid JSON. No additional text, explanations, or markdown formatting.
"""


def build_balance_prompt(file_name: str, data_hash: str, raw_text: str, series_summary: str) -> str:
    return f"""{ANALYST_ROLE}
Analyze the following balance sheet with a focus on liquidity, leverage and collateral.

{_data_block(file_name, data_hash, raw_text, series_summary)}
ANALYSIS REQUIREMENTS:
1. Liquidity: current ratio against the 1.5:1 standard and working capital adequacy
2. Leverage: debt-to-equity and equity ratio trends
3. Asset quality and collateral coverage for term debt
4. The 5 C's of Credit with a score for each factor
5. A credit grade (A, B, C, D or F) with a detailed explanation
6. Specific dollar amounts, ratios and year-over-year changes

Provide the analysis in the following JSON format:

{_json_schema(BALANCE_SECTIONS, "financialTrend")}

IMPORTANT: Return ONLY valid JSON. No additional text, explanations, or markdown formatting.
"""


def build_combined_prompt(
    income_file_name: str,
    balance_file_name: str,
    data_hash: str,
    income_text: str,
    balance_text: str,
    series_summary: str,
    assessment: Optional[str] = None,
) -> str:
    half = settings.MAX_PROMPT_DATA_CHARS // 2
    assessment_block = f"\nCALCULATED HEALTH ASSESSMENT:\n{assessment}\n" if assessment else ""
    return f"""{ANALYST_ROLE}
Perform an integrated credit analysis of the income statement and balance sheet below.

Data Hash: {data_hash}

EXTRACTED MULTI-YEAR FIGURES (most recent year first):
{series_summary or "No figures could be extracted automatically."}
{assessment_block}
INCOME STATEMENT DATA ({income_file_name}):
{_truncate(income_text, half)}

BALANCE SHEET DATA ({balance_file_name}):
{_truncate(balance_text, half)}

ANALYSIS REQUIREMENTS:
1. Ratios that need both statements: ROA, ROE, asset turnover and debt service coverage
2. Earnings quality and working capital management
3. Leverage trends, asset-liability matching and collateral adequacy
4. Repayment capacity, stress scenarios and a risk rating
5. Loan structure, covenants, approval conditions and monitoring indicators

Provide the analysis in the following JSON format:

{_json_schema(COMBINED_SECTIONS, "overallTrend")}

IMPORTANT: Return ONLY valid JSON. No additional text, explanations, or markdown formatting.
"""


_FOLLOW_UP_FOCUS = {
    AnalysisType.INCOME: "an income statement analysis",
    AnalysisType.BALANCE: "a balance sheet analysis",
    AnalysisType.COMBINED: "a combined income statement and balance sheet analysis",
    AnalysisType.GENERAL: "a financial analysis",
}

_COMBINED_FOLLOW_UP_NOTE = """
Since this is a COMBINED analysis, favour insights that need both statements together:
profitability ratios such as ROA and ROE, asset turnover, debt service coverage, and how
earnings trends affect balance sheet strength over time.
"""


def build_follow_up_prompt(
    analysis_type: AnalysisType,
    question: str,
    analysis: Any,
    metrics: Optional[Dict[str, Any]] = None,
    file_names: Optional[List[str]] = None,
) -> str:
    analysis_text = analysis if isinstance(analysis, str) else json.dumps(analysis, indent=2, default=str)
    prompt = f"""{ANALYST_ROLE}
Answer the following follow-up question about {_FOLLOW_UP_FOCUS[analysis_type]} that was previously generated.

QUESTION: {question}

ANALYSIS DATA:
{_truncate(analysis_text)}
"""
    if metrics:
        prompt += f"\nFINANCIAL METRICS:\n{json.dumps(metrics, indent=2, default=str)}\n"
    if file_names:
        prompt += f"\nFiles analyzed: {', '.join(name for name in file_names if name)}\n"

    prompt += """
INSTRUCTIONS:
1. Answer the question directly and specifically based on the data provided
2. Include specific numbers, ratios and metrics from the analysis when relevant
3. For trend questions, give year-over-year comparisons
4. For recommendation questions, refer to the lending recommendations in the analysis
5. If the data cannot answer the question, explain what information would be needed
6. Use only simple markdown (#, ##, **, -, 1.) and no HTML
7. Keep the answer concise but complete
"""
    if analysis_type == AnalysisType.COMBINED:
        prompt += _COMBINED_FOLLOW_UP_NOTE
    return prompt


def summarize_analysis_for_questions(analysis: Dict[str, Any]) -> Dict[str, Any]:
    """Reduce an analysis to the parts that steer question generation."""
    context: Dict[str, Any] = {}
    summary = analysis.get("executiveSummary") or {}
    if isinstance(summary, dict):
        for key in ("creditGrade", "riskLevel", "keyStrengths", "criticalWeaknesses"):
            if summary.get(key):
                context[key] = summary[key]

    sections = analysis.get("sections") or []
    if isinstance(sections, list):
        context["sections"] = [
            {
                "title": section.get("title", ""),
                "hasMetrics": bool(section.get("metrics")),
                "hasRecommendations": bool(section.get("recommendations")),
                "hasFindings": bool(section.get("keyFindings")),
            }
            for section in sections
            if isinstance(section, dict)
        ]
    return context


def build_question_prompt(analysis: Dict[str, Any], count: int) -> str:
    context = summarize_analysis_for_questions(analysis)
    prompt = (
        f"Based on the following financial analysis, generate {count} insightful follow-up "
        "questions that would help the user understand their financial position better. "
        "Focus on actionable insights, risk factors and areas for improvement.\n\n"
    )
    if context.get("creditGrade"):
        prompt += f"Credit Grade: {context['creditGrade']}\n"
    if context.get("riskLevel"):
        prompt += f"Risk Level: {context['riskLevel']}\n"
    if context.get("keyStrengths"):
        prompt += "\nKey Strengths:\n" + "\n".join(f"- {s}" for s in context["keyStrengths"]) + "\n"
    if context.get("criticalWeaknesses"):
        prompt += "\nCritical Weaknesses:\n" + "\n".join(f"- {w}" for w in context["criticalWeaknesses"]) + "\n"

    if context.get("sections"):
        prompt += "\nAnalysis Sections Available:\n"
        for section in context["sections"]:
            line = f"- {section['title']}"
            if section["hasMetrics"]:
                line += " (includes metrics)"
            if section["hasRecommendations"]:
                line += " (includes recommendations)"
            if section["hasFindings"]:
                line += " (includes key findings)"
            prompt += line + "\n"

    prompt += """
Generate questions that would help the user:
1. Understand specific financial ratios and their implications
2. Explore trends and changes over time
3. Assess and mitigate risks
4. Implement recommendations effectively

Return the questions as a JSON array of strings."""
    return prompt
