import duckdb
import pandas as pd
import pytest

from hitsbench.pipeline.build_hits import COUNTRIES, HIT_COLORS, make_sample_hits, write_hits
from hitsbench.workload.schema import HITS_COLUMNS

STRING_COLS = ["SearchPhrase", "MobilePhoneModel", "HitColor", "BrowserCountry", "BrowserLanguage"]


class TestMakeSampleHits:
    def test_schema(self):
        df = make_sample_hits(100)
        assert list(df.columns) == HITS_COLUMNS
        assert len(df) == 100
        assert df["MobilePhone"].dtype == "int16"

    def test_deterministic(self):
        pd.testing.assert_frame_equal(make_sample_hits(200, seed=3), make_sample_hits(200, seed=3))

    def test_seed_changes_data(self):
        a = make_sample_hits(200, seed=1)
        b = make_sample_hits(200, seed=2)
        assert not a["BrowserCountry"].equals(b["BrowserCountry"])

    def test_no_nulls(self):
        df = make_sample_hits(500, null_fraction=0.0)
        assert not df[STRING_COLS].isna().any().any()

    def test_nulls(self):
        df = make_sample_hits(2_000, null_fraction=0.2)
        for col in STRING_COLS:
            assert df[col].isna().any()

    def test_search_phrase_mostly_empty(self, sample_hits):
        assert (sample_hits["SearchPhrase"] == "").mean() > 0.5

    def test_phone_model_follows_phone(self):
        df = make_sample_hits(1_000, null_fraction=0.0)
        assert ((df["MobilePhone"] == 0) == (df["MobilePhoneModel"] == "")).all()

    def test_country_color_prefix(self):
        df = make_sample_hits(5_000, null_fraction=0.0)
        for i, (code, _) in enumerate(COUNTRIES):
            colors = set(df.loc[df["BrowserCountry"] == code, "HitColor"])
            assert colors <= set(HIT_COLORS[: 1 + i % len(HIT_COLORS)])

    def test_zero_rows(self):
        df = make_sample_hits(0)
        assert len(df) == 0
        assert list(df.columns) == HITS_COLUMNS

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            make_sample_hits(-1)
        with pytest.raises(ValueError):
            make_sample_hits(10, null_fraction=1.0)


class TestWriteHits:
    def test_single_file(self, tmp_path, sample_hits):
        path = tmp_path / "out" / "hits.parquet"
        assert write_hits(sample_hits, path) == [path]
        assert len(pd.read_parquet(path)) == len(sample_hits)

    def test_partitions(self, tmp_path, sample_hits):
        written = write_hits(sample_hits, tmp_path / "hits", partitions=3)
        assert [p.name for p in written] == ["hits_0.parquet", "hits_1.parquet", "hits_2.parquet"]
        assert sum(len(pd.read_parquet(p)) for p in written) == len(sample_hits)

    def test_database(self, tmp_path, sample_hits):
        db = tmp_path / "hits.duckdb"
        write_hits(sample_hits, db)
        con = duckdb.connect(str(db), read_only=True)
        try:
            n = con.execute("SELECT COUNT(*) FROM hits").fetchone()[0]
        finally:
            con.close()
        assert n == len(sample_hits)

    def test_invalid_partitions(self, tmp_path, sample_hits):
        with pytest.raises(ValueError):
            write_hits(sample_hits, tmp_path / "hits", partitions=0)
