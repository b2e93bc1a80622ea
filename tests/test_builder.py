"""
tests/test_builder.py — Dataset Builder: CSV rows → records, and the build CLI.

Covers:
    - Row parsing and rejection rules
    - Country-name canonicalisation and continent mapping
    - Derived field ranges across a spread of inputs
    - Duplicate handling and ordering
    - read_source_csv (BOM, trimmed headers, blank lines)
    - export_dataset.main end to end on tmp_path
"""

from __future__ import annotations

from pathlib import Path

import pytest

from taxdash.builder import build, build_record, parse_source_row, read_source_csv
from taxdash.constants import COMPLIANCE_LEVELS, DEFAULT_REGION, REPUTATION_LEVELS
from taxdash.errors import BuildError, ParseError, StorageError
from taxdash.export_dataset import main as export_main
from taxdash.store import DatasetStore


def row(country: str, continent: str = "EU", rate: str = "25", gdp: str = "NA", **flags: str) -> dict[str, str]:
    base = {
        "country": country,
        "continent": continent,
        "rate": rate,
        "gdp": gdp,
        "oecd": "0",
        "eu27": "0",
        "gseven": "0",
        "gtwenty": "0",
        "brics": "0",
    }
    base.update(flags)
    return base


CSV_HEADER = "country,continent,rate,gdp,oecd,eu27,gseven,gtwenty,brics\n"


class TestParseSourceRow:
    """Acceptance and canonicalisation of a single row."""

    def test_valid_row(self):
        raw = parse_source_row(row("Germany", "EU", "29.9", "4082", oecd="1", gseven="1"))
        assert raw.country == "Germany"
        assert raw.region == "Europe"
        assert raw.tax_rate == pytest.approx(29.9)
        assert raw.gdp == pytest.approx(4082.0)
        assert raw.groups["oecd"] and raw.groups["g7"]
        assert not raw.groups["brics"]

    def test_name_replacement(self):
        assert parse_source_row(row("Viet Nam", "AS")).country == "Vietnam"
        assert parse_source_row(row("Cote d'Ivoire", "AF")).country == "Côte d'Ivoire"

    def test_unknown_continent_maps_to_global(self):
        assert parse_source_row(row("Antarctica", "AN")).region == DEFAULT_REGION

    def test_na_gdp_is_none(self):
        assert parse_source_row(row("Malta", gdp="NA")).gdp is None

    def test_overflowing_gdp_treated_as_missing(self):
        assert parse_source_row(row("Malta", gdp="1e999")).gdp is None

    @pytest.mark.parametrize(
        "bad",
        [
            row(""),
            row("Malta", continent=""),
            row("Malta", rate=""),
            row("Malta", rate="n/a"),
            row("Malta", rate="nan"),
            row("Malta", rate="-1"),
            row("Malta", rate="1e999"),
            row("Malta", rate="-inf"),
        ],
    )
    def test_rejected_rows(self, bad: dict[str, str]):
        with pytest.raises(ParseError):
            parse_source_row(bad)


class TestBuildRecord:
    """Derived fields on single records."""

    def test_europe_reference_record(self):
        record = build_record(parse_source_row(row("Testland", "EU", "25")))
        assert record.operating_cost_index == 71
        assert record.incorporation_fees_usd == 570
        assert record.annual_filing_cost_usd == 950
        assert record.compliance_burden == "Moderate"
        assert record.reputation_risk == "Low"
        assert record.friendly_score == 3
        assert record.treaty_network_strength.startswith("Developing treaty program")

    def test_offshore_reference_record(self):
        record = build_record(parse_source_row(row("Cayman Islands", "NO", "0")))
        assert record.region == "North America & Caribbean"
        assert record.operating_cost_index == 60
        assert record.incorporation_fees_usd == 590
        assert record.annual_filing_cost_usd == 620
        assert record.reputation_risk == "High"
        assert record.friendly_score == 4
        assert "avoiding blacklisting" in record.treaty_network_strength

    @pytest.mark.parametrize("continent", ["AF", "AS", "EU", "NO", "OC", "SA", "XX"])
    @pytest.mark.parametrize("rate", ["0", "4.5", "9.99", "10", "21", "35", "55"])
    def test_ranges(self, continent: str, rate: str):
        record = build_record(parse_source_row(row("X", continent, rate, "850")))
        assert 25 <= record.operating_cost_index <= 95
        assert 0 <= record.employer_social_security_rate <= 35
        assert 90 <= record.incorporation_fees_usd <= 2500
        assert 200 <= record.annual_filing_cost_usd <= 6000
        assert record.incorporation_fees_usd % 10 == 0
        assert record.annual_filing_cost_usd % 10 == 0
        assert record.compliance_burden in COMPLIANCE_LEVELS
        assert record.reputation_risk in REPUTATION_LEVELS
        assert 1 <= record.friendly_score <= 5
        assert len(record.incentives) == 3
        assert len(record.notes) == 3


class TestBuild:
    """Whole-dataset build."""

    def test_sorted_case_insensitive(self):
        records = build([row("zambia", "AF"), row("Austria"), row("malta")])
        assert [r.country for r in records] == ["Austria", "malta", "zambia"]

    def test_bad_rows_dropped(self):
        records = build([row("Austria"), row("", "EU"), row("Malta", rate="x")])
        assert [r.country for r in records] == ["Austria"]

    def test_overflowing_rate_dropped(self):
        records = build([row("Malta", rate="35"), row("Bad", rate="1e999")])
        assert [r.country for r in records] == ["Malta"]

    def test_duplicates_keep_first(self):
        records = build([row("Malta", rate="35"), row("MALTA", rate="5")])
        assert len(records) == 1
        assert records[0].corporate_tax_rate == 35.0

    def test_no_usable_rows_raises(self):
        with pytest.raises(BuildError):
            build([row("", "EU")])

    def test_deterministic(self):
        rows = [row("Malta", rate="35", gdp="20"), row("Chile", "SA", "27", "300")]
        assert build(rows) == build(rows)


class TestReadSourceCsv:
    """CSV loading quirks."""

    def test_bom_and_padded_headers(self, tmp_path: Path):
        path = tmp_path / "rates.csv"
        path.write_text(
            "\ufeff country , continent,rate,gdp\nMalta,EU,35,20\n\n",
            encoding="utf-8",
        )
        rows = read_source_csv(path)
        assert rows == [{"country": "Malta", "continent": "EU", "rate": "35", "gdp": "20"}]

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(StorageError):
            read_source_csv(tmp_path / "missing.csv")

    def test_missing_required_column(self, tmp_path: Path):
        path = tmp_path / "rates.csv"
        path.write_text("country,continent,gdp\nMalta,EU,20\n", encoding="utf-8")
        with pytest.raises(ParseError, match="rate"):
            read_source_csv(path)


class TestExportCli:
    """taxdash-build end to end."""

    def test_writes_region_files_and_legacy(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]):
        source = tmp_path / "rates.csv"
        source.write_text(
            CSV_HEADER
            + "Malta,EU,35,20,0,1,0,0,0\n"
            + "Cayman Islands,NO,0,NA,0,0,0,0,0\n"
            + "Brazil,SA,34,1900,0,0,0,1,1\n"
            + ",EU,10,NA,0,0,0,0,0\n",
            encoding="utf-8",
        )
        out_dir = tmp_path / "jurisdictions"
        legacy = tmp_path / "jurisdictions.json"

        code = export_main(["--source", str(source), "--output-dir", str(out_dir), "--legacy", str(legacy)])

        assert code == 0
        names = sorted(p.name for p in out_dir.glob("*.json"))
        assert names == ["europe.json", "north-america-caribbean.json", "south-america.json"]
        assert legacy.is_file()
        records = DatasetStore(out_dir, legacy).load()
        assert [r.country for r in records] == ["Brazil", "Cayman Islands", "Malta"]
        assert "Wrote 3 jurisdictions across 3 region files" in capsys.readouterr().out

    def test_missing_source_exits_1(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]):
        code = export_main([
            "--source", str(tmp_path / "missing.csv"),
            "--output-dir", str(tmp_path / "out"),
            "--legacy", str(tmp_path / "legacy.json"),
        ])
        assert code == 1
        assert "FATAL" in capsys.readouterr().err
        assert not (tmp_path / "out").exists()

    def test_no_usable_rows_exits_1(self, tmp_path: Path):
        source = tmp_path / "rates.csv"
        source.write_text(CSV_HEADER + ",EU,10,NA,0,0,0,0,0\n", encoding="utf-8")
        code = export_main([
            "--source", str(source),
            "--output-dir", str(tmp_path / "out"),
            "--legacy", str(tmp_path / "legacy.json"),
        ])
        assert code == 1
        assert not (tmp_path / "legacy.json").exists()

    def test_overflowing_rate_row_dropped(self, tmp_path: Path):
        source = tmp_path / "rates.csv"
        source.write_text(
            CSV_HEADER + "Malta,EU,35,20,0,1,0,0,0\nBad,EU,1e999,NA,0,0,0,0,0\n",
            encoding="utf-8",
        )
        out_dir = tmp_path / "out"
        legacy = tmp_path / "legacy.json"
        code = export_main(["--source", str(source), "--output-dir", str(out_dir), "--legacy", str(legacy)])
        assert code == 0
        assert [r.country for r in DatasetStore(out_dir, legacy).load()] == ["Malta"]
