import logging
import math
import numbers
import re
from dataclasses import dataclass, field, replace
from datetime import date
from functools import reduce
from typing import Callable, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple

from app.core.config import settings
from app.core.exceptions import ExtractionFailed
from app.schemas.financials import (
    BALANCE_FIELDS,
    FIELD_LABELS,
    INCOME_FIELDS,
    CanonicalField,
    FinancialTimeSeries,
    SheetClassification,
)

logger = logging.getLogger(__name__)


# A worksheet as ordered rows of cells (number, string or None)
RawSheet = Sequence[Sequence[object]]
Clock = Callable[[], date]

# A side must match more than this many vocabulary terms to win the vote
CLASSIFICATION_THRESHOLD = 2

INCOME_VOCABULARY = [
    "income",
    "revenue",
    "sales",
    "gross income",
    "net income",
    "farm income",
    "operating expenses",
    "expenses",
    "earnings",
    "profit",
]

BALANCE_VOCABULARY = [
    "assets",
    "liabilities",
    "equity",
    "current assets",
    "total assets",
    "current liabilities",
    "cash",
    "net worth",
    "receivable",
    "inventory",
]

# Ordered (pattern, field) tables. The first pattern that matches a row label
# decides the row's field, so specific labels come before broad ones.
INCOME_PATTERNS: List[Tuple[Pattern, CanonicalField]] = [
    (re.compile(r"net\s+non-?\s?farm\s+income"), CanonicalField.NET_NONFARM_INCOME),
    (re.compile(r"net\s+farm\s+income"), CanonicalField.NET_FARM_INCOME),
    (
        re.compile(
            r"gross\s+(?:farm\s+)?income|total\s+(?:farm\s+)?(?:revenues?|income)\b"
            r"|^(?:farm\s+)?revenues?\b|^(?:net|total)\s+sales|^sales\b"
        ),
        CanonicalField.GROSS_INCOME,
    ),
    (
        re.compile(r"(?:farm\s+)?operating\s+expenses|^total\s+(?:farm\s+)?expenses"),
        CanonicalField.OPERATING_EXPENSES,
    ),
    (
        re.compile(r"interest\s+expense|^interest\b(?!\s+(?:income|earned|received))"),
        CanonicalField.INTEREST_EXPENSE,
    ),
    (re.compile(r"depreciation"), CanonicalField.DEPRECIATION),
    (
        re.compile(r"net\s+income|net\s+profit|profit\s+after\s+tax|\bniat\b|net\s+earnings"),
        CanonicalField.NET_INCOME,
    ),
]

BALANCE_PATTERNS: List[Tuple[Pattern, CanonicalField]] = [
    (re.compile(r"total\s+current\s+assets|^current\s+assets"), CanonicalField.CURRENT_ASSETS),
    (
        re.compile(r"total\s+current\s+liabilities|^current\s+liabilities"),
        CanonicalField.CURRENT_LIABILITIES,
    ),
    # "Cash rent" is an expense line, "cash flow" belongs to another statement
    (re.compile(r"^(?:total\s+)?cash\b(?!\s+(?:rent|flows?)\b)"), CanonicalField.CASH),
    (re.compile(r"\btotal\s+assets\b"), CanonicalField.TOTAL_ASSETS),
    (
        re.compile(
            r"(?:long|intermediate)[\s-]+term\s+(?:debt|liabilities)"
            r"|^(?:total\s+)?term\s+(?:debt|liabilities)"
        ),
        CanonicalField.TERM_DEBT,
    ),
    # "Total liabilities and equity" is a grand total, not a liabilities line
    (re.compile(r"^total\s+liabilities\b(?!\s*(?:and\b|&))"), CanonicalField.TOTAL_LIABILITIES),
    (
        re.compile(
            r"^(?:total\s+)?(?:owners?'?s?|stockholders?'?|shareholders?'?|partners?'?)\s+equity"
            r"|^total\s+equity|^(?:total\s+)?net\s+worth"
        ),
        CanonicalField.TOTAL_EQUITY,
    ),
]

YEAR_PATTERN = re.compile(r"(?<!\d)(20\d{2})(?!\d)")

_STRIP_FROM_NUMBER = re.compile(r"[\s$€£¥,()]")

# Literal three-year statement used only when the caller opts in to sample
# data for a workbook with nothing extractable. Oldest year first.
SAMPLE_INCOME_STATEMENT: Dict[CanonicalField, Tuple[float, float, float]] = {
    CanonicalField.GROSS_INCOME: (1800000, 1950000, 2100000),
    CanonicalField.OPERATING_EXPENSES: (1350000, 1430000, 1630000),
    CanonicalField.NET_FARM_INCOME: (450000, 520000, 470000),
    CanonicalField.NET_NONFARM_INCOME: (85000, 85000, 85000),
    CanonicalField.INTEREST_EXPENSE: (96000, 98000, 101000),
    CanonicalField.DEPRECIATION: (145000, 152000, 160000),
    CanonicalField.NET_INCOME: (380000, 425000, 395000),
}

SAMPLE_BALANCE_SHEET: Dict[CanonicalField, Tuple[float, float, float]] = {
    CanonicalField.CASH: (420000, 465000, 380000),
    CanonicalField.CURRENT_ASSETS: (2500000, 2650000, 2200000),
    CanonicalField.TOTAL_ASSETS: (8200000, 8500000, 8900000),
    CanonicalField.CURRENT_LIABILITIES: (1255000, 1382000, 1514000),
    CanonicalField.TERM_DEBT: (1400000, 1400000, 1447000),
    CanonicalField.TOTAL_LIABILITIES: (2655000, 2782000, 2961000),
    CanonicalField.TOTAL_EQUITY: (5545000, 5718000, 5939000),
}

SAMPLE_SOURCE = "sample"


@dataclass(frozen=True)
class SheetExtraction:
    """Line items pulled from one worksheet."""
    sheet_name: str
    classification: SheetClassification
    years: Tuple[int, ...]
    values: Mapping[CanonicalField, Tuple[float, ...]] = field(default_factory=dict)
    # True when no year header was found and the years are a default label
    years_defaulted: bool = False


def normalize_cell_value(value: object) -> float:
    """Return the non-negative magnitude of a spreadsheet cell.

    Numbers keep their magnitude. Text has currency symbols, thousands
    separators, parentheses and whitespace removed before parsing, so
    "(500)" and "$1,234.56" become 500.0 and 1234.56. Anything that does not
    parse degrades to 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, numbers.Number):
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        if math.isnan(number) or math.isinf(number):
            return 0.0
        return abs(number)
    if not isinstance(value, str):
        return 0.0
    cleaned = _STRIP_FROM_NUMBER.sub("", value).replace("−", "-")
    if not cleaned:
        return 0.0
    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return abs(number)


def cell_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    if isinstance(value, numbers.Integral) and not isinstance(value, bool):
        return str(int(value))
    return str(value).strip()


def _normalize_label(value: object) -> str:
    text = cell_text(value).lower().replace("’", "'")
    return re.sub(r"\s+", " ", text).strip()


def classify_sheet(rows: RawSheet, sheet_name: str = "") -> SheetClassification:
    """Vote on whether a sheet reads like an income statement or a balance sheet."""
    parts = [sheet_name or ""]
    for row in rows:
        parts.extend(cell_text(cell) for cell in row)
    text = " ".join(parts).lower()

    income_score = sum(1 for term in INCOME_VOCABULARY if term in text)
    balance_score = sum(1 for term in BALANCE_VOCABULARY if term in text)

    if income_score > balance_score and income_score > CLASSIFICATION_THRESHOLD:
        result = SheetClassification.INCOME
    elif balance_score > income_score and balance_score > CLASSIFICATION_THRESHOLD:
        result = SheetClassification.BALANCE
    else:
        result = SheetClassification.UNKNOWN

    logger.debug(
        f"Sheet '{sheet_name}' classified as {result.value} "
        f"(income={income_score}, balance={balance_score})"
    )
    return result


def locate_year_columns(rows: RawSheet, max_rows: Optional[int] = None) -> List[Tuple[int, int]]:
    """Find the year header and the column each year heads.

    Returns ``(year, column)`` pairs in ascending year order for the first
    row that mentions any 20xx token, or an empty list. A year repeated in
    the header keeps its leftmost column.
    """
    limit = max_rows if max_rows is not None else settings.YEAR_SCAN_ROWS
    for row in list(rows)[:limit]:
        columns: Dict[int, int] = {}
        for index, cell in enumerate(row):
            for year in YEAR_PATTERN.findall(cell_text(cell)):
                columns.setdefault(int(year), index)
        if columns:
            return sorted(columns.items())
    return []


def locate_years(rows: RawSheet, max_rows: Optional[int] = None) -> List[int]:
    """Ascending distinct years of the header row, or an empty list."""
    return [year for year, _ in locate_year_columns(rows, max_rows)]


def _value_columns(year_columns: Sequence[Tuple[int, int]]) -> Optional[List[int]]:
    # Years sharing a cell, or sitting in the label column, cannot address
    # their own values; such sheets are read left to right instead
    columns = [column for _, column in year_columns]
    if not columns or min(columns) < 1 or len(set(columns)) != len(columns):
        return None
    return columns


def default_years(clock: Clock = date.today) -> List[int]:
    current_year = clock().year
    return [current_year - 2, current_year - 1, current_year]


def patterns_for(classification: SheetClassification) -> List[Tuple[Pattern, CanonicalField]]:
    if classification == SheetClassification.INCOME:
        return INCOME_PATTERNS
    if classification == SheetClassification.BALANCE:
        return BALANCE_PATTERNS
    return INCOME_PATTERNS + BALANCE_PATTERNS


def _match_field(
    description: str, patterns: Sequence[Tuple[Pattern, CanonicalField]]
) -> Optional[CanonicalField]:
    for pattern, canonical in patterns:
        if pattern.search(description):
            return canonical
    return None


def _row_values(row: Sequence[object], year_count: int, columns: Optional[Sequence[int]] = None) -> List[float]:
    cells = list(row)
    if columns is not None:
        return [normalize_cell_value(cells[c]) if c < len(cells) else 0.0 for c in columns]
    values = [normalize_cell_value(cell) for cell in cells[1:year_count + 1]]
    values.extend([0.0] * (year_count - len(values)))
    return values


def extract_line_items(
    rows: RawSheet,
    classification: SheetClassification,
    year_count: int,
    columns: Optional[Sequence[int]] = None,
) -> Dict[CanonicalField, List[float]]:
    """Map recognised row labels to ``year_count`` values each.

    ``columns`` gives the cell index holding each year's value, in year
    order; without it the cells after the label are read left to right.
    The first row that claims a field keeps it; rows whose values are all
    zero are ignored and leave the field open for a later row.
    """
    patterns = patterns_for(classification)
    found: Dict[CanonicalField, List[float]] = {}

    for row in rows:
        if len(row) < 2:
            continue
        description = _normalize_label(row[0])
        if not description:
            continue
        canonical = _match_field(description, patterns)
        if canonical is None or canonical in found:
            continue
        values = _row_values(row, year_count, columns)
        if not any(values):
            logger.debug(f"Ignoring all-zero row '{description}' for {canonical.value}")
            continue
        found[canonical] = values
        logger.debug(f"Matched '{description}' -> {canonical.value}: {values}")

    return found


def extract_sheet(
    rows: RawSheet,
    sheet_name: str,
    clock: Clock = date.today,
    max_year_rows: Optional[int] = None,
) -> SheetExtraction:
    classification = classify_sheet(rows, sheet_name)
    year_columns = locate_year_columns(rows, max_year_rows)
    years = [year for year, _ in year_columns]
    columns = _value_columns(year_columns)
    years_defaulted = not years
    if years_defaulted:
        years = default_years(clock)
        logger.info(f"No year header in sheet '{sheet_name}', labelling columns {years}")

    values = extract_line_items(rows, classification, len(years), columns)
    return SheetExtraction(
        sheet_name=sheet_name,
        classification=classification,
        years=tuple(years),
        values={key: tuple(series) for key, series in values.items()},
        years_defaulted=years_defaulted,
    )


def _reindex(series: Sequence[float], from_years: Sequence[int], to_years: Sequence[int]) -> List[float]:
    by_year = dict(zip(from_years, series))
    return [float(by_year.get(year, 0.0)) for year in to_years]


def merge_extraction(accumulated: FinancialTimeSeries, extraction: SheetExtraction) -> FinancialTimeSeries:
    """Fold one sheet into the accumulated series.

    Years are unioned and every series is re-indexed onto the union by year
    label. A field supplied again by a later sheet replaces the earlier
    series entirely.
    """
    if not extraction.values:
        return accumulated

    years = sorted(set(accumulated.years) | set(extraction.years))
    values = {
        key: _reindex(series, accumulated.years, years)
        for key, series in accumulated.values.items()
    }
    sources = dict(accumulated.sources)

    for canonical, series in extraction.values.items():
        key = canonical.value
        if key in values:
            logger.info(
                f"Field {key} from sheet '{extraction.sheet_name}' replaces "
                f"values from sheet '{sources.get(key)}'"
            )
        values[key] = _reindex(series, extraction.years, years)
        sources[key] = extraction.sheet_name

    return FinancialTimeSeries(years=years, values=values, sources=sources)


def align_defaulted_years(extractions: Sequence[SheetExtraction]) -> List[SheetExtraction]:
    """Move sheets without a year header onto the years other sheets declare.

    Unlabelled columns are taken as running oldest to newest, so they are
    matched right to left against the most recent header years. Columns
    beyond the header years are dropped. Without any header years the
    sheets keep their clock years.
    """
    header_years = sorted({
        year
        for extraction in extractions
        if extraction.values and not extraction.years_defaulted
        for year in extraction.years
    })
    if not header_years:
        return list(extractions)

    aligned = []
    for extraction in extractions:
        if not extraction.years_defaulted or not extraction.values:
            aligned.append(extraction)
            continue
        count = min(len(extraction.years), len(header_years))
        years = tuple(header_years[-count:])
        logger.info(f"Sheet '{extraction.sheet_name}' has no year header, aligning its columns to {list(years)}")
        aligned.append(replace(
            extraction,
            years=years,
            values={key: tuple(series[-count:]) for key, series in extraction.values.items()},
        ))
    return aligned


def assemble_time_series(extractions: Sequence[SheetExtraction]) -> FinancialTimeSeries:
    return reduce(merge_extraction, align_defaulted_years(extractions), FinancialTimeSeries())


def _sample_kind(file_label: str) -> Tuple[bool, bool]:
    name = (file_label or "").lower()
    has_income = any(term in name for term in ("income", "profit", "p&l", "pnl", "earnings"))
    has_balance = "balance" in name
    if has_income == has_balance:
        return True, True
    return has_income, has_balance


def generate_sample_statement(file_label: str = "", clock: Clock = date.today) -> FinancialTimeSeries:
    """Build the literal three-year sample statement, flagged ``is_sample``.

    A file name that mentions income gets income lines only, one that
    mentions balance gets balance lines only, anything else gets both.
    """
    include_income, include_balance = _sample_kind(file_label)
    statement: Dict[CanonicalField, Tuple[float, float, float]] = {}
    if include_income:
        statement.update(SAMPLE_INCOME_STATEMENT)
    if include_balance:
        statement.update(SAMPLE_BALANCE_SHEET)

    return FinancialTimeSeries(
        years=default_years(clock),
        values={key.value: [float(v) for v in series] for key, series in statement.items()},
        sources={key.value: SAMPLE_SOURCE for key in statement},
        is_sample=True,
    )


def extract_sheets(
    sheets: Sequence[Tuple[str, RawSheet]],
    file_label: str = "<workbook>",
    clock: Clock = date.today,
) -> List[SheetExtraction]:
    """Extract every sheet in order; a sheet that fails to parse is skipped."""
    extractions = []
    for sheet_name, rows in sheets:
        try:
            extractions.append(extract_sheet(rows, sheet_name, clock=clock))
        except Exception as sheet_err:
            logger.warning(f"Sheet parse failed for '{sheet_name}' in {file_label}: {sheet_err}")
    return extractions


def series_from_extractions(
    extractions: Sequence[SheetExtraction],
    file_label: str = "<workbook>",
    clock: Clock = date.today,
    sample_on_failure: bool = False,
    sample_label: Optional[str] = None,
    sheets_scanned: Optional[int] = None,
) -> FinancialTimeSeries:
    """Assemble sheet extractions, failing loudly when nothing was found.

    Raises ExtractionFailed when no year carries a non-zero value, unless
    ``sample_on_failure`` asks for the sample statement instead.
    """
    series = assemble_time_series(extractions)
    if not series.is_empty:
        logger.info(
            f"Extracted {len(series.values)} line items over years {series.years} from {file_label}"
        )
        return series

    if sample_on_failure:
        logger.warning(f"Nothing extractable in {file_label}; substituting sample statement")
        return generate_sample_statement(sample_label if sample_label is not None else file_label, clock)
    raise ExtractionFailed(file_label, sheets_scanned if sheets_scanned is not None else len(extractions))


def extract_financials(
    sheets: Sequence[Tuple[str, RawSheet]],
    file_label: str = "<workbook>",
    clock: Clock = date.today,
    sample_on_failure: bool = False,
) -> FinancialTimeSeries:
    """Run the full pipeline over the sheets of one workbook, folded in order."""
    extractions = extract_sheets(sheets, file_label, clock)
    return series_from_extractions(
        extractions, file_label, clock, sample_on_failure, sheets_scanned=len(sheets)
    )


def _format_currency(value: float) -> str:
    return f"${value:,.0f}"


def format_time_series_for_prompt(series: FinancialTimeSeries) -> str:
    """Render the series as prompt lines, most recent year first.

    Example line: ``Total Assets: $3,958,000, $3,712,000, $3,515,000``.
    """
    if not series.years:
        return ""

    lines = []
    if series.is_sample:
        lines.append("NOTE: Sample figures, not extracted from the uploaded document.")
    lines.append("Years: " + ", ".join(str(year) for year in reversed(series.years)))
    for canonical in list(INCOME_FIELDS) + list(BALANCE_FIELDS):
        values = series.get(canonical)
        if values is None:
            continue
        formatted = ", ".join(_format_currency(v) for v in reversed(values))
        lines.append(f"{FIELD_LABELS[canonical]}: {formatted}")
    return "\n".join(lines)
