import pytest

from app.core.exceptions import ExtractionFailed
from app.schemas.financials import CanonicalField, FinancialTimeSeries, SheetClassification
from app.services.financials_extractor import (
    SAMPLE_SOURCE,
    SheetExtraction,
    assemble_time_series,
    classify_sheet,
    extract_financials,
    extract_line_items,
    extract_sheet,
    extract_sheets,
    format_time_series_for_prompt,
    generate_sample_statement,
    locate_year_columns,
    locate_years,
    normalize_cell_value,
    series_from_extractions,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("$1,234.56", 1234.56),
        ("(500)", 500.0),
        ("1,000", 1000.0),
        ("€ 2 500", 2500.0),
        (-250, 250.0),
        (1500.5, 1500.5),
        ("n/a", 0.0),
        ("", 0.0),
        (None, 0.0),
        (True, 0.0),
        (float("nan"), 0.0),
        (float("inf"), 0.0),
        ([1, 2], 0.0),
    ],
)
def test_normalize_cell_value(raw, expected):
    assert normalize_cell_value(raw) == pytest.approx(expected)


class TestClassifySheet:
    def test_income_statement(self, income_rows):
        assert classify_sheet(income_rows, "Income Statement") == SheetClassification.INCOME

    def test_balance_sheet(self, balance_rows):
        assert classify_sheet(balance_rows, "Balance Sheet") == SheetClassification.BALANCE

    def test_two_terms_do_not_reach_threshold(self):
        rows = [["Cash", 1], ["Inventory", 2]]
        assert classify_sheet(rows, "") == SheetClassification.UNKNOWN

    def test_three_terms_reach_threshold(self):
        rows = [["Cash", 1], ["Total Assets", 2]]
        assert classify_sheet(rows, "") == SheetClassification.BALANCE

    def test_tie_is_unknown(self):
        rows = [["Revenue", 1], ["Net Income", 1], ["Profit", 1], ["Total Assets", 1], ["Cash", 1], ["Inventory", 1]]
        assert classify_sheet(rows, "") == SheetClassification.UNKNOWN

    def test_sheet_name_counts(self):
        rows = [["Net income", 1]]
        assert classify_sheet(rows, "Farm income and expenses") == SheetClassification.INCOME


class TestLocateYears:
    def test_header_row(self):
        assert locate_years([["", 2022, 2023, 2024]]) == [2022, 2023, 2024]

    def test_float_years_sorted_and_deduplicated(self):
        assert locate_years([[None, 2024.0, 2023.0, "FY 2023"]]) == [2023, 2024]

    def test_no_years(self):
        assert locate_years([["Cash", 100], ["Assets", 1999]]) == []

    def test_longer_digit_runs_are_not_years(self):
        assert locate_years([["Account 202212", 5]]) == []

    def test_only_first_rows_scanned(self):
        rows = [["Line", i] for i in range(10)] + [["", 2022, 2023]]
        assert locate_years(rows) == []
        assert locate_years(rows, max_rows=11) == [2022, 2023]

    def test_first_matching_row_wins(self):
        rows = [["Prepared 2025"], ["", 2022, 2023]]
        assert locate_years(rows) == [2025]

    def test_year_columns_follow_header_order(self):
        assert locate_year_columns([["", "FY2024", "FY2023", 2022]]) == [(2022, 3), (2023, 2), (2024, 1)]

    def test_repeated_year_keeps_leftmost_column(self):
        assert locate_year_columns([[None, 2024.0, 2023.0, "FY 2023"]]) == [(2023, 2), (2024, 1)]


class TestExtractLineItems:
    def test_balance_scenario(self):
        rows = [
            ["", 2022, 2023, 2024],
            ["Total Current Assets", 335000, 375000, 402000],
            ["Total Assets", 3515000, 3712000, 3958000],
        ]
        extraction = extract_sheet(rows, "")

        assert extraction.classification == SheetClassification.BALANCE
        assert extraction.years == (2022, 2023, 2024)
        assert not extraction.years_defaulted
        assert dict(extraction.values) == {
            CanonicalField.CURRENT_ASSETS: (335000.0, 375000.0, 402000.0),
            CanonicalField.TOTAL_ASSETS: (3515000.0, 3712000.0, 3958000.0),
        }

    def test_newest_first_header(self):
        rows = [
            ["", 2024, 2023, 2022],
            ["Total Assets", 3958000, 3712000, 3515000],
            ["Total Liabilities", 1300000, 1340000, 1380000],
        ]
        extraction = extract_sheet(rows, "Balance Sheet")

        assert extraction.years == (2022, 2023, 2024)
        assert extraction.values[CanonicalField.TOTAL_ASSETS] == (3515000.0, 3712000.0, 3958000.0)
        assert extraction.values[CanonicalField.TOTAL_LIABILITIES] == (1380000.0, 1340000.0, 1300000.0)

    def test_values_read_from_year_columns(self):
        rows = [
            ["Line", "Notes", 2023, 2024],
            ["Total Assets", "audited", 100, 200],
            ["Cash", "", 7],
        ]
        extraction = extract_sheet(rows, "Balance Sheet")

        assert extraction.values[CanonicalField.TOTAL_ASSETS] == (100.0, 200.0)
        assert extraction.values[CanonicalField.CASH] == (7.0, 0.0)

    def test_years_in_one_cell_read_left_to_right(self):
        extraction = extract_sheet([["Balance 2023 vs 2024"], ["Total Assets", 10, 20]], "Balance Sheet")
        assert extraction.years == (2023, 2024)
        assert extraction.values[CanonicalField.TOTAL_ASSETS] == (10.0, 20.0)

    def test_interest_income_is_not_interest_expense(self):
        rows = [["Interest income", 5000, 6000], ["Interest expense", 90000, 95000]]
        found = extract_line_items(rows, SheetClassification.INCOME, 2)
        assert found == {CanonicalField.INTEREST_EXPENSE: [90000.0, 95000.0]}

    def test_bare_interest_line_is_an_expense(self):
        found = extract_line_items([["Interest", 90000, 95000]], SheetClassification.INCOME, 2)
        assert found[CanonicalField.INTEREST_EXPENSE] == [90000.0, 95000.0]

    @pytest.mark.parametrize("classification", [SheetClassification.BALANCE, SheetClassification.UNKNOWN])
    def test_cash_rent_and_cash_flow_are_not_cash(self, classification):
        rows = [["Cash rent", 40000, 42000], ["Cash flow from operations", 1, 2], ["Cash", 25000, 31000]]
        found = extract_line_items(rows, classification, 2)
        assert found[CanonicalField.CASH] == [25000.0, 31000.0]

    def test_first_match_wins(self):
        rows = [["Total Assets", 100, 200], ["Total assets", 300, 400]]
        found = extract_line_items(rows, SheetClassification.BALANCE, 2)
        assert found[CanonicalField.TOTAL_ASSETS] == [100.0, 200.0]

    def test_all_zero_row_does_not_claim_field(self):
        rows = [["Total Assets", 0, "-"], ["Total Assets", 5, 6]]
        found = extract_line_items(rows, SheetClassification.BALANCE, 2)
        assert found[CanonicalField.TOTAL_ASSETS] == [5.0, 6.0]

    @pytest.mark.parametrize("label", ["Total Liabilities and Equity", "Total liabilities & equity"])
    def test_grand_total_is_not_liabilities_or_equity(self, label):
        found = extract_line_items([[label, 10, 20]], SheetClassification.BALANCE, 2)
        assert found == {}

    def test_specific_labels_before_broad(self):
        rows = [
            ["Net Farm Income", 450, 520],
            ["Net Nonfarm Income", 85, 85],
            ["Net Income", 380, 425],
        ]
        found = extract_line_items(rows, SheetClassification.INCOME, 2)
        assert found[CanonicalField.NET_FARM_INCOME] == [450.0, 520.0]
        assert found[CanonicalField.NET_NONFARM_INCOME] == [85.0, 85.0]
        assert found[CanonicalField.NET_INCOME] == [380.0, 425.0]

    def test_values_padded_and_truncated(self):
        found = extract_line_items([["Cash", 1], ["Total Assets", 1, 2, 3, 4]], SheetClassification.BALANCE, 3)
        assert found[CanonicalField.CASH] == [1.0, 0.0, 0.0]
        assert found[CanonicalField.TOTAL_ASSETS] == [1.0, 2.0, 3.0]

    def test_rows_without_values_or_label_skipped(self):
        rows = [["Cash"], [None, 100, 200], ["   ", 5, 5]]
        assert extract_line_items(rows, SheetClassification.BALANCE, 2) == {}

    def test_unknown_sheet_uses_both_tables(self):
        rows = [["Gross Farm Income", 5], ["Total Assets", 7]]
        found = extract_line_items(rows, SheetClassification.UNKNOWN, 1)
        assert set(found) == {CanonicalField.GROSS_INCOME, CanonicalField.TOTAL_ASSETS}

    def test_balance_sheet_ignores_income_labels(self):
        found = extract_line_items([["Net Income", 10]], SheetClassification.BALANCE, 1)
        assert found == {}

    def test_series_are_rectangular(self, balance_rows):
        extraction = extract_sheet(balance_rows, "Balance Sheet")
        assert extraction.values
        for series in extraction.values.values():
            assert len(series) == len(extraction.years)

    def test_extraction_is_repeatable(self, income_rows):
        assert extract_sheet(income_rows, "Income") == extract_sheet(income_rows, "Income")

    def test_missing_years_use_clock(self, clock):
        extraction = extract_sheet([["Total Assets", 1, 2, 3]], "Assets", clock=clock)
        assert extraction.years == (2022, 2023, 2024)
        assert extraction.years_defaulted
        assert extraction.values[CanonicalField.TOTAL_ASSETS] == (1.0, 2.0, 3.0)


class TestAssembleTimeSeries:
    def test_years_unioned_and_reindexed(self):
        first = SheetExtraction(
            sheet_name="2022-2023",
            classification=SheetClassification.BALANCE,
            years=(2022, 2023),
            values={
                CanonicalField.TOTAL_ASSETS: (100.0, 200.0),
                CanonicalField.CURRENT_ASSETS: (5.0, 6.0),
            },
        )
        second = SheetExtraction(
            sheet_name="2023-2024",
            classification=SheetClassification.BALANCE,
            years=(2023, 2024),
            values={
                CanonicalField.TOTAL_ASSETS: (300.0, 400.0),
                CanonicalField.CASH: (10.0, 20.0),
            },
        )

        series = assemble_time_series([first, second])

        assert series.years == [2022, 2023, 2024]
        assert series.get(CanonicalField.TOTAL_ASSETS) == [0.0, 300.0, 400.0]
        assert series.get(CanonicalField.CURRENT_ASSETS) == [5.0, 6.0, 0.0]
        assert series.get(CanonicalField.CASH) == [0.0, 10.0, 20.0]
        assert series.sources["total_assets"] == "2023-2024"
        assert series.sources["current_assets"] == "2022-2023"

    def test_sheets_without_fields_add_no_years(self):
        empty = SheetExtraction("Notes", SheetClassification.UNKNOWN, (2019,))
        assets = SheetExtraction(
            "Assets", SheetClassification.BALANCE, (2023,), {CanonicalField.TOTAL_ASSETS: (1.0,)}
        )
        series = assemble_time_series([empty, assets])
        assert series.years == [2023]

    def test_sheet_without_header_aligned_to_header_years(self, clock):
        income = extract_sheet([["", 2020, 2021], ["Net Income", 10, 20]], "Income", clock=clock)
        assets = extract_sheet([["Total Assets", 1, 2, 3]], "Assets", clock=clock)
        assert assets.years_defaulted

        series = assemble_time_series([income, assets])

        assert series.years == [2020, 2021]
        assert series.get(CanonicalField.NET_INCOME) == [10.0, 20.0]
        assert series.get(CanonicalField.TOTAL_ASSETS) == [2.0, 3.0]

    def test_clock_years_kept_without_any_header(self, clock):
        first = extract_sheet([["Net Income", 10, 20, 30]], "Income", clock=clock)
        second = extract_sheet([["Total Assets", 1, 2, 3]], "Assets", clock=clock)

        series = assemble_time_series([first, second])

        assert series.years == [2022, 2023, 2024]
        assert series.get(CanonicalField.TOTAL_ASSETS) == [1.0, 2.0, 3.0]

    def test_no_extractions_is_empty(self):
        assert assemble_time_series([]).is_empty


class TestFailureAndSample:
    def test_nothing_extracted_raises(self, clock):
        with pytest.raises(ExtractionFailed) as excinfo:
            extract_financials([("Notes", [["Prepared by", "Jane"]])], "notes.xlsx", clock=clock)
        assert excinfo.value.file_label == "notes.xlsx"
        assert excinfo.value.sheets_scanned == 1

    def test_all_zero_series_raises(self, clock):
        zeros = SheetExtraction("Zeros", SheetClassification.BALANCE, (2023, 2024), {CanonicalField.CASH: (0.0, 0.0)})
        with pytest.raises(ExtractionFailed):
            series_from_extractions([zeros], "zeros.xlsx", clock=clock)

    def test_sample_only_on_request(self, clock):
        series = series_from_extractions([], "farm_income_2024.xlsx", clock=clock, sample_on_failure=True)
        assert series.is_sample
        assert series.years == [2022, 2023, 2024]
        assert series.has(CanonicalField.GROSS_INCOME)
        assert not series.has(CanonicalField.TOTAL_ASSETS)

    @pytest.mark.parametrize(
        "label, has_income, has_balance",
        [
            ("income.xlsx", True, False),
            ("balance_sheet.xlsx", False, True),
            ("statements.xlsx", True, True),
        ],
    )
    def test_sample_kind_follows_file_name(self, clock, label, has_income, has_balance):
        series = generate_sample_statement(label, clock)
        assert len(series.years) == 3
        assert series.has(CanonicalField.GROSS_INCOME) is has_income
        assert series.has(CanonicalField.TOTAL_ASSETS) is has_balance
        assert set(series.sources.values()) == {SAMPLE_SOURCE}

    def test_bad_sheet_is_skipped(self, balance_rows):
        extractions = extract_sheets([("Broken", None), ("Balance Sheet", balance_rows)], "book.xlsx")
        assert [e.sheet_name for e in extractions] == ["Balance Sheet"]


def test_extract_financials_from_balance_sheet(balance_rows, clock):
    series = extract_financials([("Balance Sheet", balance_rows)], "balance.xlsx", clock=clock)

    assert series.years == [2022, 2023, 2024]
    assert series.get(CanonicalField.TOTAL_ASSETS) == [3515000.0, 3712000.0, 3958000.0]
    assert series.get(CanonicalField.TOTAL_LIABILITIES) == [1380000.0, 1340000.0, 1300000.0]
    assert series.get(CanonicalField.TOTAL_EQUITY) == [2135000.0, 2372000.0, 2658000.0]
    assert series.get(CanonicalField.TERM_DEBT) == [1200000.0, 1150000.0, 1100000.0]
    assert not series.is_sample


def test_time_series_rejects_ragged_values():
    with pytest.raises(ValueError):
        FinancialTimeSeries(years=[2023, 2024], values={"cash": [1.0]})


class TestFormatTimeSeriesForPrompt:
    def test_most_recent_year_first(self):
        series = FinancialTimeSeries(
            years=[2022, 2023, 2024],
            values={"total_assets": [3515000.0, 3712000.0, 3958000.0]},
        )
        assert format_time_series_for_prompt(series) == (
            "Years: 2024, 2023, 2022\n"
            "Total Assets: $3,958,000, $3,712,000, $3,515,000"
        )

    def test_income_fields_listed_before_balance_fields(self):
        series = FinancialTimeSeries(
            years=[2024],
            values={"cash": [10.0], "gross_income": [20.0]},
        )
        lines = format_time_series_for_prompt(series).splitlines()
        assert lines[1] == "Gross Farm Income: $20"
        assert lines[2] == "Cash: $10"

    def test_sample_is_flagged(self, clock):
        text = format_time_series_for_prompt(generate_sample_statement("income.xlsx", clock))
        assert text.startswith("NOTE: Sample figures")

    def test_empty_series(self):
        assert format_time_series_for_prompt(FinancialTimeSeries()) == ""
