"""Product-name normalization.

Each institution publishes its own product vocabulary ("Fixed 30 Years",
"30-Year Fixed Rate", "30 Year Fixed"). The catalog lists canonical
mortgage types per institution, and these tables map the published labels
onto them.

Unmapped names pass through unchanged. A renamed or new product then
shows up under its published label instead of disappearing, which makes
it visible for adding a table entry.
"""

from collections.abc import Mapping

NormalizeTable = Mapping[str, str]

CHASE_PRODUCT_NAMES: dict[str, str] = {
    "30 Year Fixed": "30-year Fixed",
    "30-Year Fixed Rate": "30-year Fixed",
    "30 Year FHA": "30-year FHA",
    "30-Year FHA": "30-year FHA",
    "15 Year Fixed": "15-year Fixed",
    "15-Year Fixed Rate": "15-year Fixed",
    "7/6 ARM": "7/6-month ARM",
    "7/6-Month ARM": "7/6-month ARM",
    "5/6 ARM": "5/6-month ARM",
    "5/6-Month ARM": "5/6-month ARM",
    "30 Year Jumbo": "30-year Jumbo",
    "30-Year Jumbo": "30-year Jumbo",
    "10/6 Interest Only ARM": "10/6 Interest Only Jumbo ARM",
    "10/6 IO Jumbo ARM": "10/6 Interest Only Jumbo ARM",
}

BANK_OF_AMERICA_PRODUCT_NAMES: dict[str, str] = {
    "Fixed 30 Years": "30-year fixed",
    "Fixed 20 Years": "20-year fixed",
    "Fixed 15 Years": "15-year fixed",
    "ARM Fixed First 10 Years, Then Adjusts Every 6 Months": "10-year/6-month ARM variable",
    "ARM Fixed First 7 Years, Then Adjusts Every 6 Months": "7-year/6-month ARM variable",
    "ARM Fixed First 5 Years, Then Adjusts Every 6 Months": "5-year/6-month ARM variable",
}

WELLS_FARGO_PRODUCT_NAMES: dict[str, str] = {
    "15-Year Fixed Rate": "15-year Fixed",
    "15-Year Fixed": "15-year Fixed",
    "15-year Fixed": "15-year Fixed",
    "30-Year Fixed Rate": "30-year Fixed",
    "30-Year Fixed": "30-year Fixed",
    "30-year Fixed": "30-year Fixed",
    "30-Year Fixed-Rate VA": "30-year Fixed VA",
    "30-Year Fixed VA": "30-year Fixed VA",
    "30-year Fixed VA": "30-year Fixed VA",
}

PRODUCT_NAME_TABLES: dict[str, NormalizeTable] = {
    "Chase": CHASE_PRODUCT_NAMES,
    "Bank of America": BANK_OF_AMERICA_PRODUCT_NAMES,
    "Wells Fargo": WELLS_FARGO_PRODUCT_NAMES,
}


def normalize(
    institution_name: str,
    raw_product_name: str,
    tables: Mapping[str, NormalizeTable] = PRODUCT_NAME_TABLES,
) -> str:
    """Map a published product label to the institution's canonical type.

    Args:
        institution_name: Catalog name of the institution.
        raw_product_name: Label as extracted from the page.
        tables: Per-institution lookup tables.

    Returns:
        The canonical mortgage type, or the raw name when unmapped.
    """
    return normalize_with(tables.get(institution_name, {}), raw_product_name)


def normalize_with(table: NormalizeTable, raw_product_name: str) -> str:
    """Look up one label in an already-resolved table (identity fallback)."""
    return table.get(raw_product_name, raw_product_name)
