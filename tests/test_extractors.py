"""Tests for static extraction strategies and quote building."""

from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from ratewatch.extractors import CaptionTableExtractor, TableDrivenExtractor, build_quotes
from ratewatch.models import Institution, RawRate
from ratewatch.normalizer import CHASE_PRODUCT_NAMES

FETCHED_AT = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


def raw(name: str, rate: str = "6.000%", apr: str = "6.100%", points: str = "0.5") -> RawRate:
    return RawRate(product_name=name, interest_rate=rate, apr=apr, points=points)


class TestTableDrivenExtractor:
    """Test suite for hand-maintained tables."""

    def test_returns_rows_in_order_without_document(self) -> None:
        rows = [raw("30-year fixed"), raw("15-year fixed")]
        extractor = TableDrivenExtractor(rows)

        assert not extractor.requires_document
        assert extractor.extract() == rows
        assert extractor.extract(None) == rows

    def test_points_aliases_rewrite_only_matching_values(self) -> None:
        extractor = TableDrivenExtractor(
            [raw("a", points="--"), raw("b", points="0.125")],
            points_aliases={"--": "-"},
        )

        points = [row.points for row in extractor.extract()]

        assert points == ["-", "0.125"]
        assert extractor.rows[0].points == "--"


class TestCaptionTableExtractor:
    """Test suite for heading-selected table scraping."""

    def test_reads_only_matching_section(
        self, rate_table_html_factory: Callable[..., str]
    ) -> None:
        html = rate_table_html_factory(
            {
                "Conventional Loan Rates": [("30-year fixed", "6.250%", "0.375", "6.402%")],
                "VA Loan Rates": [
                    ("30-year VA", "5.375%", "0.500", "5.789%"),
                    ("15-year VA", "4.875%", "0.500", "5.558%"),
                ],
            }
        )

        rows = CaptionTableExtractor("VA Loan Rates").extract(html)

        assert rows == [
            RawRate(product_name="30-year VA", interest_rate="5.375%", points="0.500", apr="5.789%"),
            RawRate(product_name="15-year VA", interest_rate="4.875%", points="0.500", apr="5.558%"),
        ]

    def test_heading_phrase_is_substring_match(
        self, rate_table_html_factory: Callable[..., str]
    ) -> None:
        html = rate_table_html_factory(
            {"Today's VA Loan Rates (updated daily)": [("30-year VA", "5.375%", "0.5", "5.7%")]}
        )

        assert len(CaptionTableExtractor("VA Loan Rates").extract(html)) == 1

    def test_whitespace_in_cells_collapsed(
        self, rate_table_html_factory: Callable[..., str]
    ) -> None:
        html = rate_table_html_factory(
            {"VA Loan Rates": [("\n  30-year\n   VA  ", " 5.375% ", "\t0.500", "5.789%\n")]}
        )

        (row,) = CaptionTableExtractor("VA Loan Rates").extract(html)

        assert row.product_name == "30-year VA"
        assert row.interest_rate == "5.375%"
        assert row.points == "0.500"
        assert row.apr == "5.789%"

    def test_short_and_headerless_rows_skipped(
        self, rate_table_html_factory: Callable[..., str]
    ) -> None:
        extra = """
            <div class="ratesTable">
                <h2>VA Loan Rates</h2>
                <table><tbody>
                    <tr><td>no header</td><td>1</td><td>2</td></tr>
                    <tr><th>Too short</th><td>5.0%</td><td>0.5</td></tr>
                    <tr><th>Complete</th><td>5.0%</td><td>0.5</td><td>5.2%</td></tr>
                </tbody></table>
            </div>
        """
        html = rate_table_html_factory({}, extra_body=extra)

        rows = CaptionTableExtractor("VA Loan Rates").extract(html)

        assert [row.product_name for row in rows] == ["Complete"]

    @pytest.mark.parametrize("html", [None, "", "<html><body><p>Maintenance</p></body></html>"])
    def test_missing_table_yields_no_rows(self, html: str | None) -> None:
        assert CaptionTableExtractor("VA Loan Rates").extract(html) == []

    def test_name_includes_phrase(self) -> None:
        assert CaptionTableExtractor("VA Loan Rates").name == "caption-table[VA Loan Rates]"


class TestBuildQuotes:
    """Test suite for normalization, selection filtering and stamping."""

    def test_normalizes_filters_and_stamps(
        self, institution_factory: Callable[..., Institution]
    ) -> None:
        chase = institution_factory(
            name="Chase",
            mortgage_types=["30-year Fixed", "15-year Fixed", "30-year FHA"],
            selected=["30-year Fixed", "30-year FHA"],
        )
        rows = [
            raw("30-Year Fixed Rate", rate="6.500%"),
            raw("15 Year Fixed"),
            raw("30 Year FHA", rate="6.000%"),
        ]

        quotes = build_quotes(chase, rows, CHASE_PRODUCT_NAMES, FETCHED_AT)

        assert [(q.mortgage_type, q.interest_rate) for q in quotes] == [
            ("30-year Fixed", "6.500%"),
            ("30-year FHA", "6.000%"),
        ]
        assert all(q.bank_name == "Chase" for q in quotes)
        assert all(q.fetch_date == FETCHED_AT for q in quotes)

    def test_unmapped_names_pass_through_and_match_by_identity(
        self, institution_factory: Callable[..., Institution]
    ) -> None:
        bank = institution_factory(selected=["15-year Fixed"])

        quotes = build_quotes(bank, [raw("15-year Fixed"), raw("Unknown ARM")], {}, FETCHED_AT)

        assert [q.mortgage_type for q in quotes] == ["15-year Fixed"]

    def test_empty_selection_keeps_nothing(
        self, institution_factory: Callable[..., Institution]
    ) -> None:
        bank = institution_factory()

        assert build_quotes(bank, [raw("30-year Fixed")], {}, FETCHED_AT) == []

    def test_raw_values_kept_verbatim(
        self, institution_factory: Callable[..., Institution]
    ) -> None:
        bank = institution_factory(selected=["30-year Fixed"])

        (quote,) = build_quotes(
            bank, [raw("30-year Fixed", rate="--", apr="$3,200", points="-")], {}, FETCHED_AT
        )

        assert (quote.interest_rate, quote.apr, quote.points) == ("--", "$3,200", "-")
