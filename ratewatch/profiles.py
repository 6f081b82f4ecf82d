"""Form profiles for institutions whose rates need a scripted calculator.

Selectors are listed most-specific first. Sites rename ids between
releases, so each field carries several fallbacks; the fill script uses
the first one that matches.
"""

from ratewatch.dynamic import FormField, FormProfile, RowExtraction, TableExtraction

BANK_OF_AMERICA_PROFILE = FormProfile(
    fields=(
        FormField("purchase_price", ("#purchase-price-input-medium",)),
        FormField("down_payment", ("#down-payment-input-medium",)),
        FormField("zip_code", ("#zip-code-input-medium",)),
    ),
    submit_selectors=("#update-button-medium", '[id*="update"]'),
    submit_texts=("Update", "Calculate"),
    extraction=RowExtraction(
        row_selectors=(
            "[data-product-name]",
            ".row[data-product-name]",
            ".mortgage-rate-row",
            ".rate-row",
        ),
        rate_selectors=(
            ".partial-rate .update-partial",
            '[class*="rate"] [class*="update"]',
            ".rate-value",
            ".interest-rate",
        ),
        apr_selectors=(
            ".partial-apr .update-partial",
            '[class*="apr"] [class*="update"]',
            ".apr-value",
        ),
        points_selectors=(
            ".partial-points .update-partial",
            '[class*="points"] [class*="update"]',
            ".points-value",
        ),
    ),
    query_template=(
        "purchasePrice={purchase_price}&downPayment={down_payment}"
        "&zipcode={zip_code}&loanType=mortgage"
    ),
)

# Chase only asks for a ZIP code; the calculator needs a moment to enable
# its button after the value lands.
CHASE_PROFILE = FormProfile(
    fields=(
        FormField(
            "zip_code",
            (
                'input[name="ZIP code"]',
                'input[aria-label="ZIP code"]',
                'input[pattern="[0-9]{5}"]',
                'input[maxlength="5"]',
                'input[autocomplete="postal-code"]',
            ),
            required=True,
        ),
    ),
    submit_selectors=('button[data-pt-name="sm_next"]',),
    submit_texts=("See Rates",),
    submit_delay_ms=1000,
    extraction=TableExtraction(),
)
