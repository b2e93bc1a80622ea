"""
taxdash.derivation — Heuristic field derivations for jurisdiction records.

Pure-computation module. Zero I/O. Zero global state. Zero randomness.
Every function is a deterministic function of a jurisdiction's raw inputs
(region, headline tax rate, GDP, membership flags) or of values derived
from them earlier in the chain:

    cost      = operating_cost_index(region, tax_rate, gdp)
    social    = social_security_rate(region, tax_rate, cost)
    fee       = incorporation_fee(region, tax_rate, cost)
    annual    = annual_filing_cost(cost, social, gdp)
    burden    = compliance_burden(cost, tax_rate)
    risk      = reputation_risk(region, tax_rate)
    terms     = foundation_terms(region, tax_rate, annual, burden, risk)

The figures are indicative heuristics, not sourced data.
"""

from __future__ import annotations

import math
from collections.abc import Mapping

from taxdash.constants import (
    COST_INDEX_BASE,
    COST_INDEX_DEFAULT,
    INCORPORATION_FEE_BASE,
    INCORPORATION_FEE_DEFAULT,
    NORTH_AMERICA_CARIBBEAN,
    OVERSIGHT_NOTE,
    REGION_FOUNDATION_NOTES,
    REGION_FOUNDATION_NOTES_DEFAULT,
    REGION_INCENTIVE_DEFAULT,
    REGION_INCENTIVES,
    SOCIAL_RATE_BASE,
    SOCIAL_RATE_DEFAULT,
)

# Foundation governance templates, keyed by friendliness tier.
_GOVERNANCE_FRIENDLY = {
    "availability": "Widely available for private benefit foundations that can own operating subsidiaries subject to oversight.",
    "control_requirements": "Requires a resident director or council member plus documented governance minutes.",
    "reporting": "Annual financial statements and beneficial ownership registers filed via secure online portals.",
    "substance_requirements": "Demonstrate mind-and-management through local service providers and periodic in-jurisdiction board meetings.",
}
_GOVERNANCE_NEUTRAL = {
    "availability": "Permitted for philanthropic and holding activities; commercial control reviewed on a case-by-case basis.",
    "control_requirements": "At least one locally qualified fiduciary or administrator must supervise decision making.",
    "reporting": "Yearly activity reports and financial summaries lodged with the foundation supervisor.",
    "substance_requirements": "Maintain registered office services and retain evidentiary support for strategic management decisions.",
}
_GOVERNANCE_RESTRICTIVE = {
    "availability": "Primarily restricted to charitable purposes with limited ability to own active businesses.",
    "control_requirements": "Regulator approval needed before foundations may influence corporate management.",
    "reporting": "Detailed programme and financial reporting required, often with advance budgeting submissions.",
    "substance_requirements": "Expect mandated local agents and closer supervision of cross-border transactions.",
}


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

def clamp(value: float, low: float, high: float) -> float:
    """Clamp value to [low, high]."""
    return max(low, min(high, value))


def round_to_nearest_10(value: float) -> int:
    """Round to the nearest multiple of 10, ties to even (25 → 20, 35 → 40)."""
    return int(round(value / 10.0)) * 10


def format_currency(value: float) -> str:
    """Format a USD amount with thousands separators: 12500 → "$12,500"."""
    return f"${value:,.0f}"


def render_stars(score: int) -> str:
    """Render a 0–5 friendliness score as filled and empty stars."""
    score = max(0, min(5, int(score)))
    return "★" * score + "☆" * (5 - score)


def _gdp_log_excess(gdp: float | None) -> float | None:
    """log10(gdp + 1) - 2, or None when GDP is absent or not positive."""
    if gdp is None or gdp <= 0.0:
        return None
    return math.log10(gdp + 1.0) - 2.0


# ---------------------------------------------------------------------------
# Numeric derivations
# ---------------------------------------------------------------------------

def operating_cost_index(region: str, tax_rate: float, gdp: float | None) -> float:
    """Operating cost index in [25, 95] (unrounded)."""
    base = COST_INDEX_BASE.get(region, COST_INDEX_DEFAULT)
    excess = _gdp_log_excess(gdp)
    gdp_component = 0.0 if excess is None else clamp(excess * 14.0, -12.0, 20.0)
    tax_component = (tax_rate - 20.0) * 0.18
    return clamp(base + gdp_component + tax_component, 25.0, 95.0)


def social_security_rate(region: str, tax_rate: float, cost: float) -> float:
    """Employer social security rate (% of payroll) in [0, 35] (unrounded)."""
    base = SOCIAL_RATE_BASE.get(region, SOCIAL_RATE_DEFAULT)
    adjustment = (tax_rate - 20.0) * 0.12 + (cost - 55.0) * 0.05
    return clamp(base + adjustment, 0.0, 35.0)


def incorporation_fee(region: str, tax_rate: float, cost: float) -> int:
    """Incorporation fees in USD, clamped to [90, 2500] and rounded to 10."""
    base = INCORPORATION_FEE_BASE.get(region, INCORPORATION_FEE_DEFAULT)
    premium = (cost - 45.0) * 12.0
    if tax_rate <= 10.0:
        premium += 180.0
    return round_to_nearest_10(clamp(base + premium, 90.0, 2500.0))


def annual_filing_cost(cost: float, social: float, gdp: float | None) -> int:
    """Annual filing / compliance cost in USD, clamped to [200, 6000] and rounded to 10."""
    excess = _gdp_log_excess(gdp)
    gdp_signal = 0.0 if excess is None else clamp(excess * 200.0, -200.0, 600.0)
    baseline = 320.0 + (cost - 50.0) * 18.0 + social * 14.0 + gdp_signal
    return round_to_nearest_10(clamp(baseline, 200.0, 6000.0))


# ---------------------------------------------------------------------------
# Qualitative tiers
# ---------------------------------------------------------------------------

def compliance_burden(cost: float, tax_rate: float) -> str:
    if cost >= 75.0 or tax_rate >= 30.0:
        return "High"
    if cost >= 60.0 or tax_rate >= 22.0:
        return "Moderate"
    return "Low"


def reputation_risk(region: str, tax_rate: float) -> str:
    """Reputation risk tier from the headline tax rate.

    Thresholds are half-open on the upper side: exactly 10.0 is already in
    the [10, 20) "Moderate" band, exactly 5.0 in the [5, 10) band.
    """
    if tax_rate == 0.0:
        return "High"
    if tax_rate < 5.0:
        return "Elevated"
    if tax_rate < 10.0:
        return "Elevated" if region == NORTH_AMERICA_CARIBBEAN else "Moderate"
    if tax_rate < 20.0:
        return "Moderate"
    if tax_rate < 28.0:
        return "Low"
    return "Very Low"


def treaty_network_strength(region: str, tax_rate: float, groups: Mapping[str, bool]) -> str:
    """Describe the double-tax treaty network. First matching rule wins."""
    if groups.get("oecd") and groups.get("g7"):
        return "OECD and G7 member with one of the broadest double-tax treaty networks globally."
    if groups.get("oecd") and groups.get("g20"):
        return "OECD-aligned treaty policy covering most major economies and investment partners."
    if groups.get("eu"):
        return "EU membership provides extensive directive coverage and bilateral treaty access."
    if groups.get("g20"):
        return "G20 participation underpins a wide treaty footprint across strategic markets."
    if groups.get("brics"):
        return "BRICS coordination delivers treaties with key emerging-market jurisdictions."
    if region == NORTH_AMERICA_CARIBBEAN and tax_rate <= 10.0:
        return "Selective treaty and information exchange network focused on avoiding blacklisting risks."
    if tax_rate <= 10.0:
        return "Targeted treaty coverage prioritising investment partners and transparency agreements."
    return "Developing treaty program anchored in regional double-tax agreements."


# ---------------------------------------------------------------------------
# Foundation terms
# ---------------------------------------------------------------------------

def friendly_score(tax_rate: float, burden: str, risk: str) -> int:
    """Foundation friendliness in [1, 5]."""
    score = 3
    if tax_rate <= 5.0:
        score += 2
    elif tax_rate <= 10.0:
        score += 1

    if burden == "High":
        score -= 1
    if risk in ("Elevated", "High"):
        score -= 1

    return int(clamp(score, 1, 5))


def governance_budget(annual_cost: float) -> float:
    """Indicative yearly governance budget for a foundation-owned company."""
    return max(5000.0, annual_cost * 2.5)


def foundation_terms(
    region: str,
    tax_rate: float,
    annual_cost: float,
    burden: str,
    risk: str,
) -> dict[str, object]:
    """Foundation terms block: governance template, notes and friendliness score."""
    score = friendly_score(tax_rate, burden, risk)

    if score >= 4:
        template = _GOVERNANCE_FRIENDLY
    elif score == 3:
        template = _GOVERNANCE_NEUTRAL
    else:
        template = _GOVERNANCE_RESTRICTIVE

    notes = list(REGION_FOUNDATION_NOTES.get(region, REGION_FOUNDATION_NOTES_DEFAULT))
    notes.append(
        f"Annual governance budgets of roughly {format_currency(governance_budget(annual_cost))} "
        "cover directors, accounting, and regulatory liaison fees."
    )

    return {
        **template,
        "notes": notes,
        "friendly_score": score,
    }


# ---------------------------------------------------------------------------
# Templated text
# ---------------------------------------------------------------------------

def incentives(region: str, tax_rate: float, fee: float) -> list[str]:
    headline = (
        f"Headline corporate income tax of {tax_rate:.1f}% with tailored relief "
        "for reinvested profits and priority sectors."
    )
    regional = REGION_INCENTIVES.get(region, REGION_INCENTIVE_DEFAULT)
    setup = (
        f"Digital incorporation pathways keep formation outlays near {format_currency(fee)} "
        "including standard government charges."
    )
    return [headline, regional, setup]


def notes(social: float, annual_cost: float) -> list[str]:
    labour = f"Employers budget roughly {social:.1f}% of payroll for social security and labour funds."
    filings = (
        f"Annual compliance service packages average {format_currency(annual_cost)} "
        "covering accounting, filings, and statutory audits as required."
    )
    return [labour, filings, OVERSIGHT_NOTE]
