"""Canonical rate model shared by every pipeline stage.

All rate values are carried as the strings the institution published
("6.125%", "-", "--", "$3,200"). Source formats vary too much to parse
them into numbers at this layer; the presentation collaborator decides
how to render them.

Lifecycle:
    - Institution objects come from the catalog and carry the user's
      opt-in selection, the only mutable state in this module.
    - RawRate rows come out of extractors and are never shown directly.
    - BankRate quotes are built once per fetch and never modified.
    - RateSnapshot values are replaced wholesale by the aggregator.
"""

import json
from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from ratewatch.exceptions import CatalogLoadError
from ratewatch.logger import get_logger

log = get_logger(__name__)


class InstitutionField(BaseModel):
    """A display column offered for an institution (name + label)."""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str


class Institution(BaseModel):
    """A lender whose published mortgage rates are tracked.

    Attributes:
        name: Unique institution key, also used to resolve strategies.
        base_url: Published rate page.
        mortgage_types: Canonical product types offered, in display order.
        display_fields: Display columns, in display order.
        selected_mortgage_types: User opt-in; always a subset of mortgage_types.
    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    name: str = Field(..., min_length=1)
    base_url: str = Field(..., alias="url", min_length=1)
    mortgage_types: list[str] = Field(default_factory=list, alias="mortgageTypes")
    display_fields: list[InstitutionField] = Field(default_factory=list, alias="fields")
    selected_mortgage_types: set[str] = Field(default_factory=set, exclude=True)

    @model_validator(mode="after")
    def validate_selection(self) -> "Institution":
        """Enforce selected_mortgage_types ⊆ mortgage_types."""
        unknown = self.selected_mortgage_types - set(self.mortgage_types)
        if unknown:
            raise ValueError(
                f"Selected mortgage types not offered by {self.name}: {sorted(unknown)}"
            )
        return self

    def select(self, *mortgage_types: str) -> None:
        """Opt in to the given mortgage types.

        Raises:
            ValueError: If a type is not offered by this institution.
        """
        unknown = [t for t in mortgage_types if t not in self.mortgage_types]
        if unknown:
            raise ValueError(f"{self.name} does not offer {unknown}")
        self.selected_mortgage_types = self.selected_mortgage_types | set(mortgage_types)

    def deselect(self, *mortgage_types: str) -> None:
        """Opt out of the given mortgage types (unknown types are ignored)."""
        self.selected_mortgage_types = self.selected_mortgage_types - set(mortgage_types)

    def select_all(self) -> None:
        """Opt in to every offered mortgage type."""
        self.selected_mortgage_types = set(self.mortgage_types)

    @property
    def has_selection(self) -> bool:
        """Whether at least one mortgage type is selected."""
        return bool(self.selected_mortgage_types)


class LoanParameters(BaseModel):
    """Borrower inputs used to parameterize bank queries.

    The model does not enforce validity; `is_valid()` reports it and
    `ratewatch.validator.validate` is the checked constructor for user input.
    """

    model_config = ConfigDict(frozen=True)

    purchase_price: int
    down_payment: int
    zip_code: str

    @classmethod
    def default(cls) -> "LoanParameters":
        """Parameters used when the user has not entered any."""
        return cls(purchase_price=250000, down_payment=50000, zip_code="95464")

    @property
    def loan_amount(self) -> int:
        """Amount financed."""
        return self.purchase_price - self.down_payment

    @property
    def down_payment_percentage(self) -> float:
        """Down payment as a percentage of price (0.0 when price ≤ 0)."""
        if self.purchase_price <= 0:
            return 0.0
        return self.down_payment / self.purchase_price * 100

    def is_valid(self) -> bool:
        """Validity predicate: positive price, non-negative down, 5-digit ZIP."""
        return (
            self.purchase_price > 0
            and self.down_payment >= 0
            and len(self.zip_code) == 5
            and self.zip_code.isascii()
            and self.zip_code.isdigit()
        )


class RawRate(BaseModel):
    """One extracted row before normalization and filtering."""

    model_config = ConfigDict(frozen=True)

    product_name: str
    interest_rate: str
    apr: str
    points: str


class BankRate(BaseModel):
    """A published quote for one canonical mortgage type."""

    model_config = ConfigDict(frozen=True)

    bank_name: str
    mortgage_type: str
    interest_rate: str
    apr: str
    points: str
    fetch_date: datetime


class RateSnapshot(BaseModel):
    """Complete result of one aggregation cycle, keyed by bank name.

    Snapshots are values: the aggregator builds a new one per cycle and
    swaps it in, so readers never see a partially merged state.
    The bank mapping is read-only as well.
    """

    model_config = ConfigDict(frozen=True)

    rates: Mapping[str, tuple[BankRate, ...]] = Field(default_factory=dict, validate_default=True)
    last_fetch_date: datetime | None = None
    is_loading: bool = False

    @field_validator("rates", mode="after")
    @classmethod
    def freeze_rates(
        cls, value: Mapping[str, tuple[BankRate, ...]]
    ) -> Mapping[str, tuple[BankRate, ...]]:
        return MappingProxyType(dict(value))

    @field_serializer("rates", mode="wrap")
    def dump_rates(self, value: Mapping[str, Any], handler: SerializerFunctionWrapHandler) -> Any:
        return handler(dict(value))

    @classmethod
    def empty(cls) -> "RateSnapshot":
        """Snapshot before anything has been fetched."""
        return cls()

    @classmethod
    def from_quotes(cls, quotes: Iterable[BankRate], fetched_at: datetime) -> "RateSnapshot":
        """Group quotes by bank name, preserving arrival order within each bank."""
        grouped: dict[str, list[BankRate]] = {}
        for quote in quotes:
            grouped.setdefault(quote.bank_name, []).append(quote)
        return cls(
            rates={bank: tuple(items) for bank, items in grouped.items()},
            last_fetch_date=fetched_at,
            is_loading=False,
        )

    def rates_for(self, bank_name: str) -> tuple[BankRate, ...]:
        """Quotes for one bank (empty when the bank contributed nothing)."""
        return self.rates.get(bank_name, ())

    @property
    def bank_names(self) -> list[str]:
        return list(self.rates)

    @property
    def quote_count(self) -> int:
        return sum(len(quotes) for quotes in self.rates.values())


class HistoricalRecord(BaseModel):
    """Append-only history entry written by the canonical-source refresh."""

    model_config = ConfigDict(frozen=True)

    date: datetime
    loan_type: str
    interest_rate: str
    apr: str


class InstitutionCatalog(BaseModel):
    """On-disk catalog shape: {"banks": [...]}."""

    banks: list[Institution]

    @field_validator("banks")
    @classmethod
    def unique_names(cls, value: list[Institution]) -> list[Institution]:
        """Institution names are the identity key and must not repeat."""
        seen: set[str] = set()
        for institution in value:
            if institution.name in seen:
                raise ValueError(f"Duplicate institution name '{institution.name}'")
            seen.add(institution.name)
        return value


def load_catalog(path: Path) -> list[Institution]:
    """Load the institution catalog from a JSON file.

    Args:
        path: JSON file shaped {"banks": [{name, url, mortgageTypes, fields}]}.

    Returns:
        Institutions in catalog order, with empty selections.

    Raises:
        CatalogLoadError: If the file is missing, not JSON, or invalid.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise CatalogLoadError(path=str(path), reason=str(exc)) from exc
    except json.JSONDecodeError as exc:
        raise CatalogLoadError(path=str(path), reason=f"Invalid JSON: {exc}") from exc

    try:
        catalog = InstitutionCatalog.model_validate(raw)
    except ValidationError as exc:
        raise CatalogLoadError(
            path=str(path), reason=f"{exc.error_count()} validation error(s): {exc}"
        ) from exc

    log.info("Institution catalog loaded", path=str(path), institutions=len(catalog.banks))
    return catalog.banks
