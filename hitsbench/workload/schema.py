"""Column layout of the ClickBench `hits` table as far as this workload uses it.

Only a subset of the ~100 ClickBench columns is modelled: the identifiers
needed to build realistic sample data plus the six columns the distinct-count
queries read. Types are DuckDB type names.
"""

HITS_TABLE = "hits"

HITS_SCHEMA: dict[str, str] = {
    "WatchID": "BIGINT",
    "CounterID": "INTEGER",
    "EventDate": "DATE",
    "UserID": "BIGINT",
    "SearchPhrase": "VARCHAR",
    "MobilePhone": "SMALLINT",
    "MobilePhoneModel": "VARCHAR",
    "HitColor": "VARCHAR",
    "BrowserCountry": "VARCHAR",
    "BrowserLanguage": "VARCHAR",
}

HITS_COLUMNS = list(HITS_SCHEMA.keys())

# Columns read by the extended distinct-count queries
WORKLOAD_COLUMNS = [
    "SearchPhrase",
    "MobilePhone",
    "MobilePhoneModel",
    "HitColor",
    "BrowserCountry",
    "BrowserLanguage",
]


def create_table_sql(name: str = HITS_TABLE) -> str:
    """DDL for an empty table with the hits schema."""
    cols = ",\n".join(f'    "{col}" {dtype}' for col, dtype in HITS_SCHEMA.items())
    return f"CREATE TABLE {name} (\n{cols}\n)"
