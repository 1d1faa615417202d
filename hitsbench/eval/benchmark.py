"""SQL benchmark runner for the extended ClickBench workload.

Executes the distinct-count queries against a `hits` source on DuckDB.
The adapt_sql function rewrites 'FROM hits' to a read_parquet() or
read_csv() call so that the ClickBench SQL runs unchanged against files
on disk, and can swap exact distinct counts for HyperLogLog estimates.
"""

import csv
import gzip
import json
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path

import duckdb
import numpy as np
import pandas as pd

from .. import __version__
from ..workload.queries import Query, result_columns
from ..workload.schema import WORKLOAD_COLUMNS

logger = logging.getLogger(__name__)

DATABASE_SUFFIXES = {".duckdb", ".db"}
NULL_MARKER = "\\N"
CSV_DELIMITERS = {".csv": ",", ".tsv": "\t"}

_HITS_REF = re.compile(r'\b(FROM|JOIN)\s+(?:"hits"|hits\b)', re.IGNORECASE)
_COUNT_DISTINCT = re.compile(r"\bCOUNT\s*\(\s*DISTINCT\s+", re.IGNORECASE)


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def hits_source(path: Path) -> str | None:
    """DuckDB table expression reading hits from path.

    Returns None for a DuckDB database file, which is expected to contain
    a hits table already.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"No hits data found at {path}")

    if path.is_dir():
        if not any(path.glob("*.parquet")):
            raise FileNotFoundError(f"No parquet files found in {path}")
        return f"read_parquet({_quote(str(path / '*.parquet'))})"

    suffixes = [s.lower() for s in path.suffixes]
    if suffixes and suffixes[-1] == ".gz":
        suffixes = suffixes[:-1]
    ext = suffixes[-1] if suffixes else ""

    if ext == ".parquet":
        return f"read_parquet({_quote(str(path))})"
    if ext in DATABASE_SUFFIXES:
        return None
    if ext in CSV_DELIMITERS:
        delim = CSV_DELIMITERS[ext]
        _check_csv_header(path, delim)
        return f"read_csv({_quote(str(path))}, delim={_quote(delim)}, header=true, auto_detect=true)"
    raise ValueError(f"Unsupported hits source: {path}")


def _check_csv_header(path: Path, delim: str) -> None:
    """Require a header row naming the workload columns.

    The official ClickBench hits.csv/hits.tsv dumps have no header, so the
    engine would name their columns column0, column1, ...
    """
    opener = gzip.open if path.suffix.lower() == ".gz" else open
    with opener(path, "rt", newline="") as f:
        header = next(csv.reader(f, delimiter=delim), [])
    missing = [c for c in WORKLOAD_COLUMNS if c not in {h.strip() for h in header}]
    if missing:
        raise ValueError(
            f"{path} has no header row naming the hits columns "
            f"(missing {', '.join(missing)}); headerless ClickBench dumps must be "
            f"converted to Parquet or given a header first"
        )


def adapt_sql(sql: str, source: str | None = None, approx: bool = False) -> str:
    """Point hits references at source and optionally approximate distinct counts."""
    if source is not None:
        sql = _HITS_REF.sub(lambda m: f"{m.group(1)} {source}", sql)
    if approx:
        sql = _COUNT_DISTINCT.sub("approx_count_distinct(", sql)
    return sql


def connect(
    hits_path: Path | None = None,
    threads: int | None = None,
    memory_limit: str | None = None,
) -> duckdb.DuckDBPyConnection:
    if hits_path is not None and Path(hits_path).suffix.lower() in DATABASE_SUFFIXES:
        if not Path(hits_path).exists():
            raise FileNotFoundError(f"Database not found: {hits_path}")
        con = duckdb.connect(str(hits_path), read_only=True)
    else:
        con = duckdb.connect()

    if threads is not None:
        if threads < 1:
            raise ValueError(f"threads must be positive, got {threads}")
        con.execute(f"SET threads TO {int(threads)}")
    if memory_limit is not None:
        con.execute(f"SET memory_limit = {_quote(memory_limit)}")
    return con


def load_hits(hits_path: Path, columns: list[str] | None = None) -> pd.DataFrame:
    """Read a hits source into pandas through DuckDB.

    Going through the same reader as the benchmark keeps type inference
    (and CSV NULL handling) identical between the two.
    """
    source = hits_source(hits_path)
    select = ", ".join(f'"{c}"' for c in columns) if columns else "*"
    con = connect(hits_path)
    try:
        return con.execute(f"SELECT {select} FROM {source or 'hits'}").df()
    finally:
        con.close()


@dataclass
class QueryTiming:
    query_name: str
    index: int
    elapsed_ms: list[float] = field(default_factory=list)
    row_count: int | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error

    @property
    def min_ms(self) -> float | None:
        return min(self.elapsed_ms) if self.elapsed_ms else None

    @property
    def median_ms(self) -> float | None:
        return float(np.median(self.elapsed_ms)) if self.elapsed_ms else None


def run_query(
    query: Query,
    con: duckdb.DuckDBPyConnection,
    source: str | None = None,
    iterations: int = 1,
    approx: bool = False,
) -> tuple[pd.DataFrame | None, QueryTiming]:
    """Execute one query `iterations` times and keep the last result.

    Engine errors are logged and recorded on the timing; the result is
    then None.
    """
    if iterations < 1:
        raise ValueError(f"iterations must be at least 1, got {iterations}")

    sql = adapt_sql(query.sql, source, approx=approx)
    timing = QueryTiming(query_name=query.name, index=query.index)
    df = None

    for i in range(iterations):
        t0 = time.perf_counter()
        try:
            df = con.execute(sql).df()
        except duckdb.Error as e:
            logger.error("Query %s failed: %s", query.name, e)
            timing.error = str(e)
            return None, timing
        elapsed = (time.perf_counter() - t0) * 1000.0
        timing.elapsed_ms.append(elapsed)
        logger.debug("%s iteration %d took %.1f ms", query.label, i, elapsed)

    timing.row_count = len(df)
    cols = result_columns(query.name)
    if cols is not None and len(cols) == len(df.columns):
        df.columns = cols
    return df, timing


def write_result(df: pd.DataFrame, path: Path) -> None:
    df.to_csv(path, index=False, na_rep=NULL_MARKER)


def read_result(path: Path) -> pd.DataFrame:
    # Keep empty strings distinct from NULL
    return pd.read_csv(path, keep_default_na=False, na_values=[NULL_MARKER])


def write_timings(timings: list[QueryTiming], path: Path, context: dict | None = None) -> None:
    """Write per-iteration timings as JSON."""
    doc = {
        "context": context or {},
        "queries": [
            {
                "query": f"Query {t.index}",
                "name": t.query_name,
                "iterations": [
                    {"elapsed": round(ms, 3), "row_count": t.row_count}
                    for ms in t.elapsed_ms
                ],
                "error": t.error or None,
            }
            for t in timings
        ],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(doc, f, indent=2)


def run_benchmark(
    queries: list[Query],
    hits_path: Path,
    iterations: int = 1,
    output_dir: Path | None = None,
    approx: bool = False,
    threads: int | None = None,
    memory_limit: str | None = None,
) -> tuple[dict[str, pd.DataFrame], list[QueryTiming]]:
    source = hits_source(hits_path)
    con = connect(hits_path, threads=threads, memory_limit=memory_limit)
    results = {}
    timings = []
    started = time.time()

    try:
        for query in queries:
            df, timing = run_query(query, con, source, iterations=iterations, approx=approx)
            timings.append(timing)
            if df is None:
                continue
            results[query.name] = df
            logger.info(
                "%s (%s): %d rows, min %.1f ms",
                query.label, query.name, len(df), timing.min_ms,
            )
            if output_dir is not None:
                output_dir.mkdir(parents=True, exist_ok=True)
                write_result(df, output_dir / f"{query.name}.csv")
    finally:
        con.close()

    if output_dir is not None:
        context = {
            "benchmark_version": __version__,
            "engine": "duckdb",
            "engine_version": duckdb.__version__,
            "hits_path": str(hits_path),
            "iterations": iterations,
            "approx": approx,
            "threads": threads,
            "memory_limit": memory_limit,
            "start_time": int(started),
        }
        write_timings(timings, output_dir / "timings.json", context)

    return results, timings
