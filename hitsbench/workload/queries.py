"""Loading, naming and validating the extended ClickBench distinct-count queries.

The SQL lives in extended.sql next to this module and is executed verbatim.
QUERY_METADATA describes the shape of each statement's result so that the
runner can give result columns stable names and the evaluator knows which
comparison to apply.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import duckdb

from .schema import HITS_COLUMNS, HITS_TABLE, create_table_sql

logger = logging.getLogger(__name__)

DEFAULT_QUERIES_FILE = Path(__file__).parent / "extended.sql"


# ---------------------------------------------------------------------------
# Query classification: maps each query to its result type and key columns
# ---------------------------------------------------------------------------

QUERY_METADATA: dict[str, dict] = {
    "distinct_search_phrase_mobile_phone": {
        "index": 0,
        "type": "scalar",
        "source_cols": ["SearchPhrase", "MobilePhone", "MobilePhoneModel"],
        "metric_cols": [
            "distinct_search_phrase",
            "distinct_mobile_phone",
            "distinct_mobile_phone_model",
        ],
    },
    "distinct_hit_color_browser_country_language": {
        "index": 1,
        "type": "scalar",
        "source_cols": ["HitColor", "BrowserCountry", "BrowserLanguage"],
        "metric_cols": [
            "distinct_hit_color",
            "distinct_browser_country",
            "distinct_browser_language",
        ],
    },
    "top_10_browser_countries_by_distinct_hit_color": {
        "index": 2,
        "type": "grouped_topk",
        "group_col": "BrowserCountry",
        "source_cols": ["HitColor", "BrowserCountry", "BrowserLanguage"],
        "metric_cols": [
            "distinct_hit_color",
            "distinct_browser_country",
            "distinct_browser_language",
        ],
        "order_col": "distinct_hit_color",
        "limit": 10,
    },
}

QUERY_NAMES = sorted(QUERY_METADATA, key=lambda n: QUERY_METADATA[n]["index"])


def result_columns(name: str) -> list[str] | None:
    """Column names of a known query's result, in SELECT order."""
    meta = QUERY_METADATA.get(name)
    if meta is None:
        return None
    if meta["type"] == "grouped_topk":
        return [meta["group_col"]] + meta["metric_cols"]
    return list(meta["metric_cols"])


@dataclass
class Query:
    index: int
    name: str
    sql: str

    @property
    def label(self) -> str:
        return f"Query {self.index}"


def split_statements(text: str) -> list[str]:
    """Split SQL text on semicolons that are outside quotes and comments.

    Comment-only and empty chunks are dropped; the last statement does not
    need a trailing semicolon.
    """
    statements = []
    buf = []
    quote = None
    in_comment = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_comment:
            if ch == "\n":
                in_comment = False
                buf.append(ch)
            i += 1
            continue
        if quote is not None:
            buf.append(ch)
            if ch == quote:
                quote = None
            i += 1
            continue
        if ch == "-" and text[i:i + 2] == "--":
            in_comment = True
            i += 2
            continue
        if ch in ("'", '"'):
            quote = ch
        if ch == ";":
            statements.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
        i += 1
    statements.append("".join(buf))
    return [s.strip() for s in statements if s.strip()]


def _normalize(sql: str) -> str:
    return " ".join(sql.split())


def _packaged_names() -> dict[str, str]:
    statements = split_statements(DEFAULT_QUERIES_FILE.read_text())
    return {_normalize(sql): QUERY_NAMES[i] for i, sql in enumerate(statements)}


def load_queries(path: Path | None = None) -> list[Query]:
    """Read a SQL file into named queries.

    The first statement identical (up to whitespace) to a packaged one keeps
    its QUERY_METADATA name; repeats and anything else are named
    query_<index>.
    """
    qfile = Path(path) if path is not None else DEFAULT_QUERIES_FILE
    if not qfile.exists():
        raise FileNotFoundError(f"Query file not found: {qfile}")

    known = _packaged_names()
    queries = []
    used = set()
    for i, sql in enumerate(split_statements(qfile.read_text())):
        name = known.get(_normalize(sql))
        if name is None or name in used:
            name = f"query_{i}"
        used.add(name)
        queries.append(Query(index=i, name=name, sql=sql))
    logger.debug("Loaded %d queries from %s", len(queries), qfile)
    return queries


def select_queries(queries: list[Query], selection: list[str] | None) -> list[Query]:
    """Pick queries by index ("0", "2") or by name, preserving selection order."""
    if not selection:
        return list(queries)
    by_name = {q.name: q for q in queries}
    by_index = {str(q.index): q for q in queries}
    picked = []
    for key in selection:
        key = str(key)
        if key in by_index:
            picked.append(by_index[key])
        elif key in by_name:
            picked.append(by_name[key])
        else:
            raise KeyError(f"unknown query '{key}'")
    return picked


_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'")
_QUOTED_IDENT = re.compile(r'"((?:[^"]|"")+)"')
_TABLE_REF = re.compile(r'\b(?:FROM|JOIN)\s+("(?:[^"]|"")+"|[\w.]+)', re.IGNORECASE)
_QUOTED_ALIAS = re.compile(r'\bAS\s+"((?:[^"]|"")+)"', re.IGNORECASE)
_CTE_NAME = re.compile(
    r'(?:\bWITH(?:\s+RECURSIVE)?|,)\s*(?:"((?:[^"]|"")+)"|(\w+))\s+AS\s*(?:NOT\s+)?(?:MATERIALIZED\s*)?\(',
    re.IGNORECASE,
)


def referenced_columns(sql: str) -> set[str]:
    """Double-quoted identifiers used in a statement."""
    stripped = _STRING_LITERAL.sub("''", sql)
    return {m.replace('""', '"') for m in _QUOTED_IDENT.findall(stripped)}


def referenced_tables(sql: str) -> set[str]:
    stripped = _STRING_LITERAL.sub("''", sql)
    return {t.strip('"') for t in _TABLE_REF.findall(stripped)}


def defined_names(sql: str) -> tuple[set[str], set[str]]:
    """Output aliases and CTE names a statement defines for itself."""
    stripped = _STRING_LITERAL.sub("''", sql)
    aliases = {a.replace('""', '"') for a in _QUOTED_ALIAS.findall(stripped)}
    ctes = {
        (quoted or bare).replace('""', '"')
        for quoted, bare in _CTE_NAME.findall(stripped)
    }
    return aliases - ctes, ctes


def validate_query(sql: str, columns: list[str] | None = None) -> list[str]:
    """Static checks: read-only SELECT over hits using only known columns.

    Returns a list of problems; an empty list means the statement is valid.
    """
    columns = HITS_COLUMNS if columns is None else columns
    problems = []

    first = sql.lstrip().split(None, 1)
    if not first or first[0].upper() not in ("SELECT", "WITH"):
        problems.append("not a read-only SELECT statement")

    aliases, ctes = defined_names(sql)
    tables = referenced_tables(sql) - ctes
    if not tables:
        problems.append("no table referenced")
    for table in sorted(tables):
        if table.lower() != HITS_TABLE:
            problems.append(f"unknown table '{table}'")

    # Remaining quoted identifiers must be columns of hits
    for col in sorted(referenced_columns(sql) - tables - aliases - ctes):
        if col not in columns:
            problems.append(f"unknown column '{col}'")

    return problems


def check_queries(queries: list[Query]) -> dict[str, str]:
    """Parse and bind every query on DuckDB against an empty hits table.

    Returns {query name: problem} for every query that fails either the
    static checks or the engine's binder.
    """
    errors = {}
    con = duckdb.connect()
    try:
        con.execute(create_table_sql())
        for q in queries:
            problems = validate_query(q.sql)
            if problems:
                errors[q.name] = "; ".join(problems)
                continue
            try:
                con.execute(f"EXPLAIN {q.sql}")
            except duckdb.Error as e:
                errors[q.name] = str(e)
    finally:
        con.close()

    for name, err in errors.items():
        logger.warning("Query %s failed validation: %s", name, err)
    return errors
