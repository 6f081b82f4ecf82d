"""Per-institution extraction strategies for the static path.

Two variants live here:

- TableDrivenExtractor returns a fixed, hand-maintained table. It is used
  for sites whose markup is too unstable or bot-walled to scrape.
- CaptionTableExtractor scrapes a server-rendered rate table, picking the
  table by the phrase in its heading.

Both produce RawRate rows. `build_quotes` is the single place where rows
become BankRate quotes: it normalizes product names, drops anything the
user has not selected, and stamps the fetch time. The dynamic path uses
it too.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from datetime import datetime

from bs4 import BeautifulSoup
from bs4.element import Tag

from ratewatch.logger import get_logger
from ratewatch.models import BankRate, Institution, RawRate
from ratewatch.normalizer import NormalizeTable, normalize_with

log = get_logger(__name__)


def _clean_text(value: str) -> str:
    """Collapse runs of whitespace and trim."""
    return " ".join(value.split())


class DocumentExtractor(ABC):
    """Contract for turning an HTML document into raw rate rows."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable strategy name for logging."""
        ...

    @property
    def requires_document(self) -> bool:
        """Whether `extract` needs a fetched page."""
        return True

    @abstractmethod
    def extract(self, html: str | None) -> list[RawRate]:
        """Extract raw rows.

        Args:
            html: The fetched document, or None when not required.

        Returns:
            Raw rows in page order (may be empty).
        """
        ...


class TableDrivenExtractor(DocumentExtractor):
    """Serves a fixed per-institution rate table.

    Attributes:
        rows: The published rows, in display order.
        points_aliases: Rewrites applied to the points column.
    """

    def __init__(
        self,
        rows: Iterable[RawRate],
        points_aliases: Mapping[str, str] | None = None,
    ) -> None:
        self.rows = tuple(rows)
        self.points_aliases = dict(points_aliases or {})

    @property
    def name(self) -> str:
        return "table-driven"

    @property
    def requires_document(self) -> bool:
        return False

    def extract(self, html: str | None = None) -> list[RawRate]:
        if not self.points_aliases:
            return list(self.rows)
        return [
            row.model_copy(update={"points": self.points_aliases.get(row.points, row.points)})
            for row in self.rows
        ]


class CaptionTableExtractor(DocumentExtractor):
    """Scrapes rate rows from the table under a matching heading.

    Each candidate container holds one heading and one table. Only
    containers whose first heading contains `heading_phrase` are read.
    Every body row with a header cell and at least three data cells
    yields (loan type, rate, points, APR) from th, td[0], td[1], td[2].

    Attributes:
        heading_phrase: Text the container heading must contain.
        container_selector: CSS selector of candidate containers.
        heading_selector: CSS selector of the heading inside a container.
    """

    def __init__(
        self,
        heading_phrase: str,
        container_selector: str = "div.ratesTable",
        heading_selector: str = "h2",
    ) -> None:
        self.heading_phrase = heading_phrase
        self.container_selector = container_selector
        self.heading_selector = heading_selector

    @property
    def name(self) -> str:
        return f"caption-table[{self.heading_phrase}]"

    def extract(self, html: str | None) -> list[RawRate]:
        if not html:
            log.warning("No document to extract from", extractor=self.name)
            return []

        soup = BeautifulSoup(html, "html.parser")
        rows: list[RawRate] = []

        containers = soup.select(self.container_selector)
        matched = [c for c in containers if self._heading_matches(c)]

        log.debug(
            "Rate table containers scanned",
            extractor=self.name,
            containers=len(containers),
            matched=len(matched),
        )

        for container in matched:
            for row in container.select("tbody tr"):
                parsed = self._parse_row(row)
                if parsed is not None:
                    rows.append(parsed)

        if not rows:
            log.warning(
                "No rate rows found under heading",
                extractor=self.name,
                containers=len(containers),
            )
        return rows

    def _heading_matches(self, container: Tag) -> bool:
        heading = container.select_one(self.heading_selector)
        return heading is not None and self.heading_phrase in heading.get_text()

    def _parse_row(self, row: Tag) -> RawRate | None:
        header = row.find("th")
        cells = row.find_all("td")
        if header is None or len(cells) < 3:
            return None

        return RawRate(
            product_name=_clean_text(header.get_text()),
            interest_rate=_clean_text(cells[0].get_text()),
            points=_clean_text(cells[1].get_text()),
            apr=_clean_text(cells[2].get_text()),
        )


def build_quotes(
    institution: Institution,
    rows: Iterable[RawRate],
    normalize_table: NormalizeTable,
    fetched_at: datetime,
) -> list[BankRate]:
    """Normalize, filter by selection, and stamp extracted rows.

    Args:
        institution: Institution the rows were extracted for.
        rows: Raw rows in page order.
        normalize_table: The institution's product-name table.
        fetched_at: Acquisition timestamp applied to every quote.

    Returns:
        Quotes for selected mortgage types only, in page order.
    """
    quotes: list[BankRate] = []
    skipped: list[str] = []

    for row in rows:
        mortgage_type = normalize_with(normalize_table, row.product_name)
        if mortgage_type not in institution.selected_mortgage_types:
            skipped.append(mortgage_type)
            continue

        quotes.append(
            BankRate(
                bank_name=institution.name,
                mortgage_type=mortgage_type,
                interest_rate=row.interest_rate,
                apr=row.apr,
                points=row.points,
                fetch_date=fetched_at,
            )
        )

    log.debug(
        "Quotes built",
        institution=institution.name,
        kept=len(quotes),
        skipped=len(skipped),
        skipped_types=skipped[:10],
    )
    return quotes
