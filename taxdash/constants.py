"""
taxdash.constants — Single source of truth for dataset constants.

Region tables, country-name canonicalisation, enum value sets and the
per-region bases used by the heuristic derivations all live here.
Every module that needs these values imports them from this module.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Regions
# ---------------------------------------------------------------------------

DEFAULT_REGION: str = "Global"
"""Region assigned to unknown continent codes and to records with an empty region."""

NORTH_AMERICA_CARIBBEAN: str = "North America & Caribbean"
"""The offshore-leaning region with special reputation and treaty rules."""

REGION_MAP: dict[str, str] = {
    "AF": "Africa",
    "AS": "Asia-Pacific",
    "EU": "Europe",
    "NO": NORTH_AMERICA_CARIBBEAN,
    "OC": "Oceania",
    "SA": "South America",
}
"""Continent code in the source CSV → display region."""

# ---------------------------------------------------------------------------
# Country-name canonicalisation (raw CSV name → display name)
# ---------------------------------------------------------------------------

COUNTRY_NAME_REPLACEMENTS: dict[str, str] = {
    "Bolivia (Plurinational State of)": "Bolivia",
    "Congo": "Republic of the Congo",
    "Democratic Republic of the Congo": "Democratic Republic of the Congo",
    "Cabo Verde": "Cape Verde",
    "Cote d'Ivoire": "Côte d'Ivoire",
    "Czechia": "Czech Republic",
    "Hong Kong Special Administrative Region of China": "Hong Kong",
    "Iran (Islamic Republic of)": "Iran",
    "Korea, Democratic People's Republic of": "North Korea",
    "Korea, Republic of": "South Korea",
    "Lao People's Democratic Republic": "Laos",
    "Macao Special Administrative Region of China": "Macao",
    "Micronesia (Federated States of)": "Micronesia",
    "Moldova, Republic of": "Moldova",
    "North Macedonia": "North Macedonia",
    "Palestine, State of": "Palestine",
    "Russian Federation": "Russia",
    "Syrian Arab Republic": "Syria",
    "Taiwan, Province of China": "Taiwan",
    "Tanzania, United Republic of": "Tanzania",
    "United Kingdom of Great Britain and Northern Ireland": "United Kingdom",
    "United States of America": "United States",
    "Venezuela (Bolivarian Republic of)": "Venezuela",
    "Viet Nam": "Vietnam",
}

# ---------------------------------------------------------------------------
# Enum value sets
# ---------------------------------------------------------------------------

COMPLIANCE_LEVELS: tuple[str, ...] = ("Low", "Moderate", "High")

REPUTATION_LEVELS: tuple[str, ...] = ("Very Low", "Low", "Moderate", "Elevated", "High")

FRIENDLY_SCORE_MIN: int = 0
FRIENDLY_SCORE_MAX: int = 5

# ---------------------------------------------------------------------------
# Source CSV membership columns → group flag
# ---------------------------------------------------------------------------

GROUP_COLUMNS: dict[str, str] = {
    "oecd": "oecd",
    "eu": "eu27",
    "g7": "gseven",
    "g20": "gtwenty",
    "brics": "brics",
}

REQUIRED_SOURCE_COLUMNS: frozenset[str] = frozenset({"country", "continent", "rate"})

# ---------------------------------------------------------------------------
# Heuristic bases per region: (value, default for unknown regions)
# ---------------------------------------------------------------------------

COST_INDEX_BASE: dict[str, float] = {
    "Africa": 38.0,
    "Asia-Pacific": 56.0,
    "Europe": 70.0,
    NORTH_AMERICA_CARIBBEAN: 64.0,
    "Oceania": 67.0,
    "South America": 54.0,
}
COST_INDEX_DEFAULT: float = 60.0

SOCIAL_RATE_BASE: dict[str, float] = {
    "Africa": 8.0,
    "Asia-Pacific": 11.0,
    "Europe": 17.0,
    NORTH_AMERICA_CARIBBEAN: 10.0,
    "Oceania": 9.0,
    "South America": 14.0,
}
SOCIAL_RATE_DEFAULT: float = 12.0

INCORPORATION_FEE_BASE: dict[str, float] = {
    "Africa": 160.0,
    "Asia-Pacific": 220.0,
    "Europe": 260.0,
    NORTH_AMERICA_CARIBBEAN: 230.0,
    "Oceania": 240.0,
    "South America": 200.0,
}
INCORPORATION_FEE_DEFAULT: float = 220.0

# ---------------------------------------------------------------------------
# Templated text
# ---------------------------------------------------------------------------

REGION_INCENTIVES: dict[str, str] = {
    "Africa": "Investment promotion agencies exchange tax credits for infrastructure and workforce expansion commitments.",
    "Asia-Pacific": "Special economic and free trade zones extend multi-year tax holidays for export-led projects.",
    "Europe": "EU directives enable withholding tax relief on qualifying intra-group dividends and interest.",
    NORTH_AMERICA_CARIBBEAN: "International business company statutes streamline territorial taxation with light-touch accounting.",
    "Oceania": "Export development incentives include accelerated depreciation and refundable R&D offsets.",
    "South America": "Regional trade pacts grant tariff preferences for manufacturing and logistics investments.",
}
REGION_INCENTIVE_DEFAULT: str = "Investment incentives tailored to strategic industries."

REGION_FOUNDATION_NOTES: dict[str, tuple[str, ...]] = {
    "Africa": (
        "Regulators emphasise socio-economic impact reporting for privately controlled foundations.",
        "Cross-border grants and investments typically require approval from central authorities.",
    ),
    "Asia-Pacific": (
        "Beneficial ownership registers apply to council members and controlling donors.",
        "Cross-border structuring must align with CRS and regional substance expectations.",
    ),
    "Europe": (
        "EU substance and transparency directives shape governance standards for private foundations.",
        "Anti-hybrid and DAC6 disclosure regimes affect cross-border holding structures.",
    ),
    NORTH_AMERICA_CARIBBEAN: (
        "Economic substance tests focus on locally resident directors and demonstrable management.",
        "Information exchange agreements cover banking and entity ownership reporting.",
    ),
    "Oceania": (
        "Regulators expect resident trustees and onshore board deliberations for active holdings.",
        "Trans-Tasman transparency frameworks facilitate data sharing on charitable controllers.",
    ),
    "South America": (
        "Civil-law foundations often need alignment with non-profit registries and public benefit mandates.",
        "Cross-border remittances may require central bank pre-approval for large transfers.",
    ),
}
REGION_FOUNDATION_NOTES_DEFAULT: tuple[str, ...] = (
    "Foundation governance aligns with international transparency standards.",
    "Professional trustee support recommended for cross-border ownership structures.",
)

OVERSIGHT_NOTE: str = (
    "Regulators increasingly monitor economic substance and beneficial ownership "
    "disclosures for cross-border groups."
)

# ---------------------------------------------------------------------------
# Query engine
# ---------------------------------------------------------------------------

CHART_SIZE: int = 12
"""Number of jurisdictions shown in the ranked overview chart."""

DEFAULT_SORT_KEY: str = "corporate_tax_rate"

NUMERIC_SORT_KEYS: frozenset[str] = frozenset({
    "corporate_tax_rate",
    "operating_cost_index",
    "employer_social_security_rate",
    "incorporation_fees_usd",
    "annual_filing_cost_usd",
    "friendly_score",
})
"""Keys accepted by top_n(); ``friendly_score`` reads foundation_terms."""
