"""Published rate tables for institutions served by table-driven extraction.

These sites either wall off bots or rebuild their markup often enough
that structural scraping breaks between releases. The tables below are
maintained by hand from the published pages and keyed by the canonical
mortgage types used in the institution catalog.

Columns: (product name, interest rate, APR, points).
"""

from ratewatch.models import RawRate


def _rows(*entries: tuple[str, str, str, str]) -> tuple[RawRate, ...]:
    return tuple(
        RawRate(product_name=name, interest_rate=rate, apr=apr, points=points)
        for name, rate, apr, points in entries
    )


CHARLES_SCHWAB_RATES = _rows(
    ("5-year ARM IAP-eligible Jumbo", "5.875%", "6.803%", "--"),
    ("7-year ARM IAP-eligible Jumbo", "5.875%", "6.628%", "--"),
    ("10-year ARM IAP-eligible Jumbo", "5.875%", "6.416%", "--"),
    ("5-year ARM interest only IAP-eligible Jumbo", "6.000%", "6.884%", "--"),
    ("7-year ARM interest only IAP-eligible Jumbo", "6.000%", "6.726%", "--"),
    ("10-year ARM interest only IAP-eligible Jumbo", "6.000%", "6.527%", "--"),
    ("15-year fixed IAP-eligible Jumbo", "5.750%", "5.798%", "--"),
    ("30-year fixed IAP-eligible Jumbo", "6.500%", "6.533%", "--"),
    ("5-year ARM Conforming Jumbo", "6.125%", "6.921%", "--"),
    ("7-year ARM Conforming Jumbo", "6.125%", "6.774%", "--"),
    ("10-year ARM Conforming Jumbo", "6.125%", "6.595%", "--"),
    ("5-year ARM interest only Conforming Jumbo", "6.375%", "7.041%", "--"),
    ("7-year ARM interest only Conforming Jumbo", "6.375%", "6.925%", "--"),
    ("10-year ARM interest only Conforming Jumbo", "6.375%", "6.778%", "--"),
    ("10-year Fixed non-IAP-eligible Conforming Jumbo", "5.750%", "5.888%", "0.125"),
    ("15-year Fixed non-IAP-eligible Conforming Jumbo", "5.875%", "5.954%", "--"),
    ("20-year Fixed non-IAP-eligible Conforming Jumbo", "5.990%", "6.053%", "-0.125"),
    ("25-year Fixed non-IAP-eligible Conforming Jumbo", "6.375%", "6.432%", "-0.125"),
    ("30-year Fixed non-IAP-eligible Conforming Jumbo", "6.375%", "6.425%", "-0.125"),
)

CITI_RATES = _rows(
    ("30-year fixed", "6.125%", "6.301%", "0.625"),
    ("15-year fixed", "5.375%", "5.701%", "0.875"),
)

HSBC_RATES = _rows(
    ("30-year Conforming Fixed", "6.625%", "6.694%", "-"),
    ("15-year Conforming Fixed", "5.750%", "5.844%", "-"),
    ("30-year Jumbo Fixed", "6.628%", "6.679%", "-"),
    ("10/6 Jumbo ARM", "6.290%", "6.703%", "-"),
    ("7/6 Jumbo ARM", "6.170%", "6.796%", "-"),
    ("5/6 Jumbo ARM", "5.903%", "6.831%", "-"),
)

NAVY_FEDERAL_RATES = _rows(
    ("15-year VA", "4.875%", "5.558%", "0.500"),
    ("30-year VA", "5.375%", "5.789%", "0.500"),
    ("15-year Conventional Fixed", "5.000%", "5.191%", "0.250"),
    ("15-year Jumbo Conventional Fixed", "5.500%", "5.694%", "5.694"),
    ("30-year Conventional Fixed", "5.750%", "5.889%", "0.500"),
    ("30-year Jumbo Conventional Fixed", "6.000%", "6.142%", "0.500"),
    ("30-year Homebuyer's Choice", "6.625%", "6.948%", "0.500"),
    ("30-year Jumbo Homebuyer's Choice", "7.000%", "7.331%", "0.500"),
    ("30-year Military Choice", "6.500%", "6.821%", "0.500"),
    ("30-year Jumbo Military Choice", "6.875%", "7.203%", "0.500"),
    ("3/5 Conforming ARM", "5.000%", "5.597%", "0.250"),
    ("3/5 Jumbo ARM", "5.000%", "5.597%", "0.250"),
    ("5/5 Conforming ARM", "5.250%", "5.607%", "0.250"),
    ("5/5 Jumbo ARM", "5.250%", "5.607%", "0.250"),
)

US_BANK_RATES = _rows(
    ("30-year Conventional Fixed", "6.125%", "6.274%", "0.702"),
    ("20-year Conventional Fixed", "5.750%", "5.958%", "0.805"),
    ("15-year Conventional Fixed", "5.500%", "5.755%", "0.773"),
    ("10-year Conventional Fixed", "5.375%", "5.762%", "0.889"),
    ("10/6 Conforming ARM", "6.250%", "6.709%", "0.854"),
    ("7/6 Conforming ARM", "6.000%", "6.699%", "0.779"),
    ("10/1-year Jumbo ARM", "6.125%", "6.372%", "0.835"),
    ("7/1-year Jumbo ARM", "6.000%", "6.342%", "0.815"),
    ("5/1-year Jumbo ARM", "5.875%", "6.339%", "0.835"),
    ("30-year FHA", "6.125%", "7.016%", "0.886"),
    ("30-year VA", "5.990%", "6.368%", "0.962"),
    ("30-year Jumbo", "6.625%", "6.788%", "0.800"),
    ("20-year Jumbo", "6.500%", "6.720%", "0.850"),
    ("15-year Jumbo", "6.375%", "6.633%", "0.755"),
)

# Points are quoted as dollar amounts on this site.
WELLS_FARGO_RATES = _rows(
    ("15-year Fixed", "5.375%", "5.639%", "$3,200"),
    ("30-year Fixed VA", "5.625%", "5.829%", "$2,430"),
    ("30-year Fixed", "6.375%", "6.540%", "$3,200"),
)
