"""
Result discrepancy metrics for the distinct-count workload.

Compares an expected result set (a previous run, another engine, or the
pandas reference) with an actual one:
  - Relative error for each distinct count
  - Group coverage above the top-k tie cutoff for the grouped query
  - Ordering and row-limit checks on the grouped query
  - Spearman rank correlation of the ordering column over common groups

Each query result pair (expected, actual) is evaluated column-by-column,
producing per-column metrics and an overall query score.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import pandas as pd
from scipy import stats

from ..workload.queries import QUERY_METADATA, result_columns
from .benchmark import read_result

logger = logging.getLogger(__name__)

# Structural metrics that fail the whole query regardless of score
HARD_METRICS = {"row_limit", "ordering"}


# ---------------------------------------------------------------------------
# Metric result containers
# ---------------------------------------------------------------------------


@dataclass
class ColumnMetric:
    column: str
    metric_type: str
    value: float
    passed: bool
    detail: str = ""


@dataclass
class QueryResult:
    query_name: str
    query_type: str
    metrics: list[ColumnMetric] = field(default_factory=list)
    overall_score: float = 0.0
    passed: bool = False
    error: str = ""

    @property
    def n_passed(self) -> int:
        return sum(1 for m in self.metrics if m.passed)

    @property
    def n_total(self) -> int:
        return len(self.metrics)

    @property
    def failed_metrics(self) -> list[ColumnMetric]:
        return [m for m in self.metrics if not m.passed]


# ---------------------------------------------------------------------------
# Core metric functions
# ---------------------------------------------------------------------------


def relative_error(expected: float, actual: float) -> float:
    if expected == 0 and actual == 0:
        return 0.0
    if expected == 0:
        return float("inf")
    return abs(expected - actual) / abs(expected)


def spearman_rho(expected: np.ndarray, actual: np.ndarray) -> float:
    if len(expected) < 2 or len(actual) < 2:
        return 0.0
    rho, _ = stats.spearmanr(expected, actual)
    if np.isnan(rho):
        return 0.0
    return float(rho)


def jaccard_similarity(set_a: set, set_b: set) -> float:
    if len(set_a) == 0 and len(set_b) == 0:
        return 1.0
    return len(set_a & set_b) / len(set_a | set_b)


def is_descending(values) -> bool:
    arr = np.asarray(values, dtype=float)
    return bool(np.all(arr[:-1] >= arr[1:])) if len(arr) > 1 else True


def _group_keys(series: pd.Series) -> list:
    # NaN != NaN, so map every NULL flavour to None before using keys in sets
    return [None if pd.isna(v) else v for v in series.tolist()]


def check_result_shape(name: str, df: pd.DataFrame) -> list[str]:
    """Structural problems with a single query result."""
    meta = QUERY_METADATA.get(name)
    if meta is None:
        return []
    problems = []
    expected_cols = result_columns(name)
    if len(df.columns) != len(expected_cols):
        problems.append(f"expected {len(expected_cols)} columns, got {len(df.columns)}")
        return problems

    if meta["type"] == "scalar":
        if len(df) != 1:
            problems.append(f"expected 1 row, got {len(df)}")
    else:
        if len(df) > meta["limit"]:
            problems.append(f"{len(df)} rows exceeds LIMIT {meta['limit']}")
        if not is_descending(df[meta["order_col"]]):
            problems.append(f"rows not ordered by {meta['order_col']} descending")
    return problems


# ---------------------------------------------------------------------------
# Per-query-type evaluation
# ---------------------------------------------------------------------------


def _eval_scalar(
    expected_df: pd.DataFrame,
    actual_df: pd.DataFrame,
    meta: dict,
    rel_tol: float = 0.0,
) -> list[ColumnMetric]:
    metrics = []
    if len(expected_df) == 0 or len(actual_df) == 0:
        for col in meta["metric_cols"]:
            metrics.append(ColumnMetric(
                column=col,
                metric_type="relative_error",
                value=float("inf"),
                passed=False,
                detail=f"empty result (expected={len(expected_df)} rows, "
                       f"actual={len(actual_df)} rows)",
            ))
        return metrics

    for col in meta["metric_cols"]:
        if col not in expected_df.columns or col not in actual_df.columns:
            metrics.append(ColumnMetric(
                column=col,
                metric_type="relative_error",
                value=float("inf"),
                passed=False,
                detail="column missing",
            ))
            continue
        e_val = float(expected_df[col].iloc[0])
        a_val = float(actual_df[col].iloc[0])
        re = relative_error(e_val, a_val)
        metrics.append(ColumnMetric(
            column=col,
            metric_type="relative_error",
            value=re,
            passed=re <= rel_tol,
            detail=f"expected={e_val:.0f}, actual={a_val:.0f}",
        ))
    return metrics


def _eval_grouped_topk(
    expected_df: pd.DataFrame,
    actual_df: pd.DataFrame,
    meta: dict,
    rel_tol: float = 0.0,
    rho_tol: float = 0.5,
) -> list[ColumnMetric]:
    metrics = []
    group_col = meta["group_col"]
    order_col = meta["order_col"]
    limit = meta["limit"]

    metrics.append(ColumnMetric(
        column="row_count",
        metric_type="row_limit",
        value=float(len(actual_df)),
        passed=len(actual_df) <= limit,
        detail=f"actual={len(actual_df)}, expected={len(expected_df)}, limit={limit}",
    ))

    ordered = is_descending(actual_df[order_col])
    metrics.append(ColumnMetric(
        column=order_col,
        metric_type="ordering",
        value=1.0 if ordered else 0.0,
        passed=ordered,
        detail="descending" if ordered else "not descending",
    ))

    e_order = sorted(expected_df[order_col].astype(float), reverse=True)
    a_order = sorted(actual_df[order_col].astype(float), reverse=True)
    if len(e_order) != len(a_order):
        order_re = float("inf")
    else:
        order_re = max(
            (relative_error(e, a) for e, a in zip(e_order, a_order)),
            default=0.0,
        )
    metrics.append(ColumnMetric(
        column=order_col,
        metric_type="order_values",
        value=order_re,
        passed=order_re <= rel_tol,
        detail=f"max RE={order_re:.4f} over {len(e_order)} ranks",
    ))

    expected_keys = _group_keys(expected_df[group_col])
    actual_keys = _group_keys(actual_df[group_col])
    expected_groups = set(expected_keys)
    actual_groups = set(actual_keys)

    # Groups tied at the cutoff value may legitimately be swapped for others
    if len(expected_df) >= limit and len(expected_df) > 0:
        cutoff = expected_df[order_col].min()
        certain = {
            k for k, v in zip(expected_keys, expected_df[order_col]) if v > cutoff
        }
    else:
        certain = expected_groups
    found = certain & actual_groups
    coverage = len(found) / len(certain) if certain else 1.0
    metrics.append(ColumnMetric(
        column="group_coverage",
        metric_type="coverage",
        value=coverage,
        passed=coverage >= 1.0 - rel_tol,
        detail=f"{len(found)}/{len(certain)} groups above tie cutoff matched, "
               f"jaccard={jaccard_similarity(expected_groups, actual_groups):.4f}",
    ))

    common = expected_groups & actual_groups
    expected_by_key = dict(zip(expected_keys, expected_df.to_dict("records")))
    actual_by_key = dict(zip(actual_keys, actual_df.to_dict("records")))

    for col in meta["metric_cols"]:
        errors = []
        for key in common:
            e_val = expected_by_key[key][col]
            a_val = actual_by_key[key][col]
            if pd.isna(e_val) or pd.isna(a_val):
                continue
            errors.append(relative_error(float(e_val), float(a_val)))

        if errors:
            median_re = float(np.median(errors))
            metrics.append(ColumnMetric(
                column=col,
                metric_type="median_relative_error",
                value=median_re,
                passed=median_re <= rel_tol,
                detail=f"median RE={median_re:.4f}, max RE={max(errors):.4f}, "
                       f"n_groups={len(errors)}",
            ))
        elif expected_groups or actual_groups:
            metrics.append(ColumnMetric(
                column=col,
                metric_type="median_relative_error",
                value=float("inf"),
                passed=False,
                detail="no overlapping groups",
            ))

    if len(common) >= 2:
        keys = list(common)
        e_vals = np.array([float(expected_by_key[k][order_col]) for k in keys])
        a_vals = np.array([float(actual_by_key[k][order_col]) for k in keys])
        if np.array_equal(e_vals, a_vals):
            rho = 1.0
        else:
            rho = spearman_rho(e_vals, a_vals)
        metrics.append(ColumnMetric(
            column=f"{order_col}_rank_corr",
            metric_type="spearman_rho",
            value=rho,
            passed=rho >= rho_tol,
            detail=f"rho={rho:.4f}, n_groups={len(keys)}",
        ))

    return metrics


# ---------------------------------------------------------------------------
# Main evaluation interface
# ---------------------------------------------------------------------------


EVAL_DISPATCH = {
    "scalar": _eval_scalar,
    "grouped_topk": _eval_grouped_topk,
}


def evaluate_query(
    query_name: str,
    expected_df: pd.DataFrame,
    actual_df: pd.DataFrame,
    rel_tol: float = 0.0,
    rho_tol: float = 0.5,
) -> QueryResult:
    if query_name not in QUERY_METADATA:
        return QueryResult(
            query_name=query_name,
            query_type="unknown",
            error=f"no metadata for query '{query_name}'",
        )

    meta = QUERY_METADATA[query_name]
    qtype = meta["type"]
    eval_fn = EVAL_DISPATCH.get(qtype)

    if eval_fn is None:
        return QueryResult(
            query_name=query_name,
            query_type=qtype,
            error=f"no evaluator for type '{qtype}'",
        )

    kwargs = {"rel_tol": rel_tol}
    if qtype == "grouped_topk":
        kwargs["rho_tol"] = rho_tol

    try:
        col_metrics = eval_fn(expected_df, actual_df, meta, **kwargs)
    except (KeyError, ValueError, TypeError) as e:
        logger.warning("Evaluation of %s failed: %s", query_name, e)
        return QueryResult(
            query_name=query_name,
            query_type=qtype,
            error=str(e),
        )

    n_total = len(col_metrics)
    n_passed = sum(1 for m in col_metrics if m.passed)
    score = n_passed / n_total if n_total > 0 else 0.0
    hard_ok = all(m.passed for m in col_metrics if m.metric_type in HARD_METRICS)

    return QueryResult(
        query_name=query_name,
        query_type=qtype,
        metrics=col_metrics,
        overall_score=score,
        passed=score >= 0.5 and hard_ok,
    )


def evaluate_results(
    expected: dict[str, pd.DataFrame],
    actual: dict[str, pd.DataFrame],
    rel_tol: float = 0.0,
    rho_tol: float = 0.5,
) -> list[QueryResult]:
    """Evaluate in-memory result sets keyed by query name."""
    results = []
    for query_name in sorted(expected):
        if query_name not in actual:
            results.append(QueryResult(
                query_name=query_name,
                query_type=QUERY_METADATA.get(query_name, {}).get("type", "unknown"),
                error="actual result missing",
            ))
            continue
        results.append(evaluate_query(
            query_name, expected[query_name], actual[query_name],
            rel_tol=rel_tol, rho_tol=rho_tol,
        ))
    return results


def evaluate_all(
    expected_dir: Path,
    actual_dir: Path,
    rel_tol: float = 0.0,
    rho_tol: float = 0.5,
) -> list[QueryResult]:
    results = []
    for query_name in sorted(QUERY_METADATA.keys()):
        expected_path = expected_dir / f"{query_name}.csv"
        actual_path = actual_dir / f"{query_name}.csv"

        if not expected_path.exists():
            results.append(QueryResult(
                query_name=query_name,
                query_type=QUERY_METADATA[query_name]["type"],
                error="expected CSV not found",
            ))
            continue

        if not actual_path.exists():
            results.append(QueryResult(
                query_name=query_name,
                query_type=QUERY_METADATA[query_name]["type"],
                error="actual CSV not found",
            ))
            continue

        result = evaluate_query(
            query_name, read_result(expected_path), read_result(actual_path),
            rel_tol=rel_tol, rho_tol=rho_tol,
        )
        results.append(result)

    return results


SUMMARY_COLUMNS = [
    "query", "type", "score", "passed", "n_metrics", "n_passed", "failed_metrics", "error",
]
DETAIL_COLUMNS = [
    "query", "query_type", "column", "metric_type", "value", "passed", "hard", "detail",
]


def results_to_dataframe(results: list[QueryResult]) -> pd.DataFrame:
    """One row per query.

    failed_metrics names each failed check as metric_type:column. Score and
    passed are left empty for queries that could not be evaluated.
    """
    rows = []
    for r in results:
        rows.append({
            "query": r.query_name,
            "type": r.query_type,
            "score": None if r.error else r.overall_score,
            "passed": None if r.error else r.passed,
            "n_metrics": r.n_total,
            "n_passed": r.n_passed,
            "failed_metrics": "; ".join(f"{m.metric_type}:{m.column}" for m in r.failed_metrics),
            "error": r.error,
        })
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


def detailed_results_to_dataframe(results: list[QueryResult]) -> pd.DataFrame:
    rows = [
        {
            "query": r.query_name,
            "query_type": r.query_type,
            "column": m.column,
            "metric_type": m.metric_type,
            "value": m.value,
            "passed": m.passed,
            "hard": m.metric_type in HARD_METRICS,
            "detail": m.detail,
        }
        for r in results
        for m in r.metrics
    ]
    return pd.DataFrame(rows, columns=DETAIL_COLUMNS)
