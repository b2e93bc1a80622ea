"""
tests/conftest.py — Shared fixtures: record factory and temporary stores.

Stores live under tmp_path. No mocking of the file layer.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from taxdash.schema import JurisdictionRecord, normalize_record
from taxdash.store import DatasetStore


def record_dict(country: str, region: str = "Europe", **overrides: Any) -> dict[str, Any]:
    """A valid raw record mapping with overridable fields."""
    raw: dict[str, Any] = {
        "country": country,
        "region": region,
        "corporate_tax_rate": 20.0,
        "operating_cost_index": 60,
        "employer_social_security_rate": 12.0,
        "incorporation_fees_usd": 400,
        "annual_filing_cost_usd": 900,
        "treaty_network_strength": "Developing treaty program anchored in regional double-tax agreements.",
        "compliance_burden": "Moderate",
        "reputation_risk": "Low",
        "incentives": ["Headline incentive."],
        "notes": ["Headline note."],
        "foundation_terms": {
            "availability": "Permitted for philanthropic and holding activities.",
            "control_requirements": "Local fiduciary.",
            "reporting": "Yearly reports.",
            "substance_requirements": "Registered office.",
            "notes": ["Foundation note."],
            "friendly_score": 3,
        },
    }
    friendly = overrides.pop("friendly_score", None)
    raw.update(overrides)
    if friendly is not None:
        raw["foundation_terms"] = {**raw["foundation_terms"], "friendly_score": friendly}
    return raw


@pytest.fixture()
def raw_record() -> Callable[..., dict[str, Any]]:
    """Factory for raw record mappings, as they appear on disk."""
    return record_dict


@pytest.fixture()
def make_record() -> Callable[..., JurisdictionRecord]:
    """Factory: make_record("Malta", region="Europe", corporate_tax_rate=35)."""
    def _make(country: str, region: str = "Europe", **overrides: Any) -> JurisdictionRecord:
        return normalize_record(record_dict(country, region, **overrides))
    return _make


@pytest.fixture()
def store(tmp_path: Path) -> DatasetStore:
    """Empty store rooted in a temporary directory."""
    return DatasetStore(tmp_path / "jurisdictions", tmp_path / "jurisdictions.json")


@pytest.fixture()
def seeded_store(store: DatasetStore, make_record: Callable[..., JurisdictionRecord]) -> DatasetStore:
    """Store holding five jurisdictions across three regions."""
    store.save([
        make_record("Malta", "Europe", corporate_tax_rate=35.0, operating_cost_index=72, friendly_score=2),
        make_record("Ireland", "Europe", corporate_tax_rate=12.5, operating_cost_index=78, friendly_score=3),
        make_record(
            "Cayman Islands", "North America & Caribbean",
            corporate_tax_rate=0.0, operating_cost_index=61,
            reputation_risk="High", friendly_score=4,
        ),
        make_record("Qatar", "Asia-Pacific", corporate_tax_rate=10.0, operating_cost_index=55, friendly_score=4),
        make_record("Singapore", "Asia-Pacific", corporate_tax_rate=17.0, operating_cost_index=58, friendly_score=5),
    ])
    return store
