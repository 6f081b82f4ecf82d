"""Historical rate records from the canonical single source.

Apart from the multi-institution snapshot, one canonical source is read on
a schedule and every parsed row is appended to a local history. The
history is append-only CSV so it stays readable outside the application,
and it is loaded back through pandas for charting and summaries.

The scheduler itself lives with the caller. `CanonicalRateTracker.refresh`
does one fetch-parse-append pass and lets fetch errors propagate so the
caller can decide when to try again.
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from config.settings import GlobalConfig, get_config
from ratewatch.exceptions import HistoryWriteError
from ratewatch.extractors import CaptionTableExtractor
from ratewatch.fetcher import StaticPageFetcher
from ratewatch.logger import get_logger
from ratewatch.models import HistoricalRecord

log = get_logger(__name__)

HISTORY_COLUMNS = ["date", "loan_type", "interest_rate", "apr"]


def _percent_to_float(series: pd.Series) -> pd.Series:
    """'5.375%' → 5.375; anything unparseable becomes NaN."""
    return pd.to_numeric(series.str.replace("%", "", regex=False).str.strip(), errors="coerce")


class HistoryStore:
    """Append-only CSV store of HistoricalRecord rows.

    Attributes:
        path: CSV file location. Created with a header on first append.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def append(self, records: Iterable[HistoricalRecord]) -> int:
        """Append records to the history file.

        Args:
            records: Records to persist, in order.

        Returns:
            Number of records written.

        Raises:
            HistoryWriteError: If the file cannot be written.
        """
        rows = [
            {**record.model_dump(), "date": record.date.isoformat()}
            for record in records
        ]
        if not rows:
            return 0

        frame = pd.DataFrame(rows, columns=HISTORY_COLUMNS)
        write_header = not self.path.exists() or self.path.stat().st_size == 0

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            frame.to_csv(self.path, mode="a", header=write_header, index=False)
        except OSError as exc:
            raise HistoryWriteError(path=str(self.path), reason=str(exc)) from exc

        log.info("History appended", path=str(self.path), records=len(rows))
        return len(rows)

    def load(self) -> pd.DataFrame:
        """Load the full history.

        Returns:
            DataFrame with HISTORY_COLUMNS; `date` is tz-aware UTC and the
            rate columns are kept as published strings. Empty when the
            file does not exist yet.
        """
        if not self.path.exists() or self.path.stat().st_size == 0:
            return pd.DataFrame(columns=HISTORY_COLUMNS)

        frame = pd.read_csv(self.path, dtype=str, keep_default_na=False)
        frame["date"] = pd.to_datetime(frame["date"], utc=True, format="ISO8601")
        return frame

    def records(self) -> list[HistoricalRecord]:
        """History as model objects, in file order."""
        return [
            HistoricalRecord(
                date=row.date.to_pydatetime(),
                loan_type=row.loan_type,
                interest_rate=row.interest_rate,
                apr=row.apr,
            )
            for row in self.load().itertuples(index=False)
        ]

    def summary(self) -> dict[str, dict[str, Any]]:
        """Per-loan-type statistics over the numeric interest rate.

        Returns:
            {loan_type: {records, latest_rate, min_rate, max_rate, last_seen}}
        """
        frame = self.load()
        if frame.empty:
            return {}

        frame = frame.assign(rate=_percent_to_float(frame["interest_rate"]))
        summary: dict[str, dict[str, Any]] = {}

        for loan_type, group in frame.sort_values("date").groupby("loan_type", sort=False):
            latest = group.iloc[-1]
            summary[loan_type] = {
                "records": len(group),
                "latest_rate": latest["interest_rate"],
                "min_rate": None if pd.isna(group["rate"].min()) else float(group["rate"].min()),
                "max_rate": None if pd.isna(group["rate"].max()) else float(group["rate"].max()),
                "last_seen": latest["date"].isoformat(),
            }
        return summary


class CanonicalRateTracker:
    """Scrapes the canonical rate table and appends it to history.

    Attributes:
        fetcher: Static fetcher used for the canonical page.
        store: Destination history store.
        config: Source URL and heading phrase.

    Example:
        async with StaticPageFetcher() as fetcher:
            tracker = CanonicalRateTracker(fetcher, HistoryStore("history.csv"))
            records = await tracker.refresh()
    """

    def __init__(
        self,
        fetcher: StaticPageFetcher,
        store: HistoryStore,
        config: GlobalConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.store = store
        self.config = config or get_config()
        self.extractor = CaptionTableExtractor(self.config.canonical_source_heading)
        self._clock = clock or (lambda: datetime.now(UTC))

    async def refresh(self) -> list[HistoricalRecord]:
        """Fetch, parse and append one round of canonical rates.

        Returns:
            The records appended (empty when the table was not found).

        Raises:
            StaticFetchError: If the canonical page cannot be fetched.
            HistoryWriteError: If the history cannot be written.
        """
        url = self.config.canonical_source_url
        html = await self.fetcher.fetch(url)
        rows = self.extractor.extract(html)

        fetched_at = self._clock()
        records = [
            HistoricalRecord(
                date=fetched_at,
                loan_type=row.product_name,
                interest_rate=row.interest_rate,
                apr=row.apr,
            )
            for row in rows
        ]

        self.store.append(records)
        log.info(
            "Canonical rates refreshed",
            url=url,
            heading=self.config.canonical_source_heading,
            records=len(records),
        )
        return records
