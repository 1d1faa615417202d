import duckdb
import pandas as pd
import pytest

from hitsbench.pipeline.build_hits import make_sample_hits, write_hits


@pytest.fixture(scope="session")
def sample_hits() -> pd.DataFrame:
    return make_sample_hits(5_000, seed=7)


@pytest.fixture
def hits_con(sample_hits):
    con = duckdb.connect()
    con.register("hits", sample_hits)
    yield con
    con.close()


@pytest.fixture
def hits_parquet(tmp_path, sample_hits):
    path = tmp_path / "hits.parquet"
    write_hits(sample_hits, path)
    return path


@pytest.fixture
def tiny_hits() -> pd.DataFrame:
    """Hand-built rows with NULLs, empty strings and a tie between two groups."""
    return pd.DataFrame({
        "SearchPhrase": ["", "a", "a", None, "b"],
        "MobilePhone": [0, 0, 1, 2, 0],
        "MobilePhoneModel": ["", "", "iPhone", "Pixel", None],
        "HitColor": ["F", "T", "F", None, "E"],
        "BrowserCountry": ["RU", "RU", "US", None, "US"],
        "BrowserLanguage": ["ru", "en", "en", "de", None],
    })
