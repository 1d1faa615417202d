"""
Build a synthetic ClickBench `hits` table.

Usage:
    python -m hitsbench.pipeline.build_hits --rows 1000000 --out data/hits.parquet

The official ClickBench dataset is ~100M rows; this generator produces a
table with the same column names and a similar shape for the columns the
distinct-count workload reads (mostly empty search phrases, mostly zero
mobile phone ids, a skewed country distribution). Output is a single
Parquet file, a directory of Parquet partitions, or a DuckDB database.
"""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path

import duckdb
import numpy as np
import pandas as pd

from ..workload.schema import HITS_COLUMNS, HITS_TABLE

logger = logging.getLogger(__name__)

COUNTRIES = [
    ("RU", "ru"), ("US", "en"), ("DE", "de"), ("UA", "uk"), ("BY", "be"),
    ("KZ", "kk"), ("TR", "tr"), ("GB", "en"), ("FR", "fr"), ("IT", "it"),
    ("PL", "pl"), ("NL", "nl"), ("ES", "es"), ("CN", "zh"), ("JP", "ja"),
    ("BR", "pt"), ("IN", "hi"), ("CA", "en"), ("SE", "sv"), ("FI", "fi"),
    ("CZ", "cs"), ("LV", "lv"), ("LT", "lt"), ("EE", "et"), ("GE", "ka"),
    ("AM", "hy"), ("AZ", "az"), ("UZ", "uz"), ("IL", "he"), ("KR", "ko"),
]
LANGUAGES = sorted({lang for _, lang in COUNTRIES})
HIT_COLORS = ["F", "T", "E", "D", "A"]
PHONE_MODELS = ["iPhone", "iPad", "Galaxy S", "Pixel", "Redmi Note", "Xperia", "Lumia", "Nokia"]
SEARCH_WORDS = [
    "weather", "news", "tickets", "download", "free", "online", "games",
    "music", "video", "cars", "maps", "recipes", "hotel", "flights", "movie",
    "translate", "bank", "shop", "phone", "taxi",
]
EVENT_START = pd.Timestamp("2013-07-01")

# Share of rows with an empty search phrase / no mobile phone, as in ClickBench
EMPTY_SEARCH_SHARE = 0.7
NO_PHONE_SHARE = 0.85


def make_sample_hits(
    n_rows: int = 10_000,
    seed: int = 42,
    null_fraction: float = 0.01,
) -> pd.DataFrame:
    """Generate a synthetic hits table with every modelled column.

    null_fraction of each string column read by the workload is NULL, so
    that NULL handling of COUNT(DISTINCT ...) and GROUP BY is exercised.
    Each country only uses a prefix of HIT_COLORS, which gives the grouped
    query distinct counts from 1 to 5 with plenty of ties.
    """
    if n_rows < 0:
        raise ValueError(f"n_rows must be non-negative, got {n_rows}")
    if not 0.0 <= null_fraction < 1.0:
        raise ValueError(f"null_fraction must be in [0, 1), got {null_fraction}")

    rng = np.random.RandomState(seed)
    n = n_rows

    weights = 1.0 / np.arange(1, len(COUNTRIES) + 1)
    weights /= weights.sum()
    country_idx = rng.choice(len(COUNTRIES), size=n, p=weights)
    codes = np.array([c for c, _ in COUNTRIES], dtype=object)
    home_langs = np.array([lang for _, lang in COUNTRIES], dtype=object)
    country = codes[country_idx]
    language = np.where(
        rng.rand(n) < 0.8,
        home_langs[country_idx],
        rng.choice(np.array(LANGUAGES, dtype=object), size=n),
    )

    n_colors = 1 + country_idx % len(HIT_COLORS)
    color_idx = (rng.rand(n) * n_colors).astype(int)
    hit_color = np.array(HIT_COLORS, dtype=object)[color_idx]

    n_words = rng.randint(1, 4, size=n)
    word_idx = rng.randint(0, len(SEARCH_WORDS), size=(n, 3))
    phrases = np.array(
        [" ".join(SEARCH_WORDS[j] for j in word_idx[i, :n_words[i]]) for i in range(n)],
        dtype=object,
    )
    search_phrase = np.where(rng.rand(n) < EMPTY_SEARCH_SHARE, "", phrases)

    mobile_phone = np.where(
        rng.rand(n) < NO_PHONE_SHARE, 0, rng.randint(1, 60, size=n)
    ).astype(np.int16)
    models = np.array(PHONE_MODELS, dtype=object)
    mobile_model = np.where(mobile_phone == 0, "", models[mobile_phone % len(PHONE_MODELS)])

    days = rng.randint(0, 31, size=n)
    event_date = (EVENT_START + pd.to_timedelta(days, unit="D")).date

    df = pd.DataFrame({
        "WatchID": rng.permutation(n).astype(np.int64) + 10**18,
        "CounterID": rng.randint(1, 100_000, size=n).astype(np.int32),
        "EventDate": event_date,
        "UserID": rng.randint(1, 2**62, size=n, dtype=np.int64),
        "SearchPhrase": search_phrase.astype(object),
        "MobilePhone": mobile_phone,
        "MobilePhoneModel": mobile_model.astype(object),
        "HitColor": hit_color,
        "BrowserCountry": country,
        "BrowserLanguage": language.astype(object),
    }, columns=HITS_COLUMNS)

    if null_fraction > 0:
        for col in ["SearchPhrase", "MobilePhoneModel", "HitColor", "BrowserCountry", "BrowserLanguage"]:
            mask = rng.rand(n) < null_fraction
            df.loc[mask, col] = None

    return df


def write_hits(df: pd.DataFrame, path: Path, partitions: int = 1) -> list[Path]:
    """Write hits as Parquet (one file or a partition directory) or DuckDB.

    A path ending in .duckdb or .db gets a database with a hits table;
    otherwise partitions > 1 turns path into a directory of
    hits_<i>.parquet files.
    """
    path = Path(path)
    if partitions < 1:
        raise ValueError(f"partitions must be at least 1, got {partitions}")

    if path.suffix.lower() in (".duckdb", ".db"):
        path.parent.mkdir(parents=True, exist_ok=True)
        con = duckdb.connect(str(path))
        try:
            con.register("hits_df", df)
            con.execute(f"CREATE OR REPLACE TABLE {HITS_TABLE} AS SELECT * FROM hits_df")
        finally:
            con.close()
        return [path]

    if partitions == 1:
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_parquet(path, index=False)
        return [path]

    path.mkdir(parents=True, exist_ok=True)
    written = []
    for i, idx in enumerate(np.array_split(np.arange(len(df)), partitions)):
        part = path / f"hits_{i}.parquet"
        df.iloc[idx].to_parquet(part, index=False)
        written.append(part)
    return written


def main():
    parser = argparse.ArgumentParser(description="Generate a synthetic ClickBench hits table")
    parser.add_argument("--rows", type=int, default=1_000_000,
                        help="Number of rows to generate (default: 1000000)")
    parser.add_argument("--seed", type=int, default=42,
                        help="Random seed")
    parser.add_argument("--null-fraction", type=float, default=0.01,
                        help="Share of NULLs in the string workload columns")
    parser.add_argument("--partitions", type=int, default=1,
                        help="Write this many Parquet partitions into a directory")
    parser.add_argument("--out", type=Path, default=Path("data/hits.parquet"),
                        help="Output .parquet file, partition directory, or .duckdb file")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print(f"Generating {args.rows:,} hits rows (seed={args.seed})")
    t0 = time.time()
    df = make_sample_hits(args.rows, seed=args.seed, null_fraction=args.null_fraction)
    written = write_hits(df, args.out, partitions=args.partitions)
    elapsed = time.time() - t0
    for path in written:
        print(f"  OK {path}")
    print(f"\nWrote {len(df):,} rows in {len(written)} file(s) ({elapsed:.1f}s)")


if __name__ == "__main__":
    main()
