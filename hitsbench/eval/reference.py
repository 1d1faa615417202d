"""Pandas reference implementation of the distinct-count workload.

Computes the same answers as the SQL in extended.sql without going
through a SQL engine, so DuckDB results on generated data can be checked
against an independent implementation. Follows SQL semantics: NULLs are
not counted by COUNT(DISTINCT ...), an empty string is an ordinary value,
and GROUP BY keeps a NULL group.
"""

from __future__ import annotations

import pandas as pd

from ..workload.queries import QUERY_METADATA


def distinct_counts(
    df: pd.DataFrame,
    columns: list[str],
    result_cols: list[str] | None = None,
) -> pd.DataFrame:
    """One-row frame with the number of distinct non-NULL values per column."""
    result_cols = result_cols or columns
    counts = [int(df[col].nunique(dropna=True)) for col in columns]
    return pd.DataFrame([counts], columns=result_cols)


def grouped_distinct_counts(
    df: pd.DataFrame,
    group_col: str,
    columns: list[str],
    result_cols: list[str] | None = None,
    order_col: str | None = None,
    limit: int | None = None,
) -> pd.DataFrame:
    """Distinct counts per group, ordered descending by order_col.

    Rows tied on order_col stay in group-key order; SQL leaves that order
    unspecified.
    """
    result_cols = result_cols or columns
    values = df[columns].copy()
    # The group column may also be a counted column, so rename before grouping
    values.columns = result_cols
    keys = df[group_col]

    grouped = values.groupby(keys, dropna=False).nunique(dropna=True)
    out = grouped.reset_index()
    for col in result_cols:
        out[col] = out[col].astype("int64")

    order_col = order_col or result_cols[0]
    out = out.sort_values(order_col, ascending=False, kind="stable")
    if limit is not None:
        out = out.head(limit)
    return out.reset_index(drop=True)


def reference_result(name: str, df: pd.DataFrame) -> pd.DataFrame:
    if name not in QUERY_METADATA:
        raise KeyError(f"no reference implementation for query '{name}'")
    meta = QUERY_METADATA[name]
    if meta["type"] == "scalar":
        return distinct_counts(df, meta["source_cols"], meta["metric_cols"])
    return grouped_distinct_counts(
        df,
        meta["group_col"],
        meta["source_cols"],
        meta["metric_cols"],
        order_col=meta["order_col"],
        limit=meta["limit"],
    )


def reference_results(
    df: pd.DataFrame,
    names: list[str] | None = None,
) -> dict[str, pd.DataFrame]:
    names = names or list(QUERY_METADATA.keys())
    return {name: reference_result(name, df) for name in names}
