from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from ticket_recon.db.connection import ConnectionFailure
from ticket_recon.models.requirement import Requirement

"""Per-requirement existence query against SQL Server.

For one requirement the validator:

1. resolves schema/table through INFORMATION_SCHEMA.TABLES (parameterized),
2. probes the key column (``tCode``, else ``taxCode``),
3. lists the searchable (non text/ntext/image) columns,
4. runs one statement: a ``codes`` CTE (and a ``patterns`` CTE when expected
   values are present) followed by a UNION ALL branch per column selecting
   rows whose key is in ``codes`` and whose column contains one of the
   patterns as a substring.

Codes and LIKE patterns are bound once each as ``?`` parameters, so the
parameter count is ``len(codes) + len(values)`` whatever the table width.
Only names returned by the catalog are interpolated into SQL: bracket quoted
as identifiers, ``N'...'`` quoted as the per-branch table/column labels.
Driver errors carrying a connection-class SQLSTATE (``08xxx``) are raised as
ConnectionFailure; every other driver error becomes QueryFailure.
Works with any DB-API cursor using the qmark style (pyodbc).
"""

__all__ = [
    "DatabaseValidator",
    "QueryFailure",
    "QueryResult",
    "SchemaMismatch",
    "escape_like",
    "is_connection_error",
    "quote_ident",
    "sql_literal",
]

logger = logging.getLogger(__name__)

KEY_COLUMN_CANDIDATES = ("tCode", "taxCode")
NON_SEARCHABLE_TYPES = ("text", "ntext", "image")
# SQL Server の 1 リクエストあたりのパラメータ上限
MAX_PARAMETERS = 2100
# pyodbc: args[0] が SQLSTATE、メッセージにも "[08S01]" の形で入る
_CONNECTION_STATE_RE = re.compile(r"\[08[0-9A-Z]{3}\]")

TABLE_PROBE_SQL = (
    "SELECT TABLE_SCHEMA, TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
    "WHERE LOWER(TABLE_SCHEMA) = LOWER(?) AND LOWER(TABLE_NAME) = LOWER(?)"
)
KEY_PROBE_SQL = (
    "SELECT COLUMN_NAME FROM INFORMATION_SCHEMA.COLUMNS "
    "WHERE TABLE_SCHEMA = ? AND TABLE_NAME = ? AND LOWER(COLUMN_NAME) IN (LOWER(?), LOWER(?))"
)
COLUMNS_PROBE_SQL = (
    "SELECT COLUMN_NAME FROM INFORMATION_SCHEMA.COLUMNS "
    "WHERE TABLE_SCHEMA = ? AND TABLE_NAME = ? "
    f"AND DATA_TYPE NOT IN ({', '.join(repr(t) for t in NON_SEARCHABLE_TYPES)}) "
    "ORDER BY ORDINAL_POSITION"
)


class SchemaMismatch(Exception):
    """Target table or its key column does not exist."""


class QueryFailure(Exception):
    """The validation query (or a catalog probe) failed in the driver."""


@dataclass(frozen=True)
class QueryResult:
    schema: str
    table: str
    key_column: str
    columns: tuple[str, ...]
    rows: tuple[dict[str, Any], ...]


def quote_ident(name: str) -> str:
    return "[" + name.replace("]", "]]") + "]"


def escape_like(value: str) -> str:
    """Escape LIKE wildcards for use with ``ESCAPE '\\'``."""
    out = value.replace("\\", "\\\\")
    for ch in ("%", "_", "["):
        out = out.replace(ch, "\\" + ch)
    return out


def sql_literal(name: str) -> str:
    return "N'" + name.replace("'", "''") + "'"


def is_connection_error(exc: BaseException) -> bool:
    """True when the driver error carries an ``08xxx`` SQLSTATE."""
    state = exc.args[0] if exc.args else None
    if isinstance(state, str) and len(state) == 5 and state.startswith("08"):
        return True
    return bool(_CONNECTION_STATE_RE.search(str(exc)))


def _driver_error(exc: Exception, message: str) -> Exception:
    if is_connection_error(exc):
        return ConnectionFailure(message)
    return QueryFailure(message)


def _rows_as_dicts(cursor: Any, rows: Sequence[Sequence[Any]]) -> list[dict[str, Any]]:
    columns = [d[0] for d in (cursor.description or [])]
    return [dict(zip(columns, row, strict=False)) for row in rows]


class DatabaseValidator:
    def __init__(self, cursor: Any) -> None:
        self.cursor = cursor

    def _fetch(self, sql: str, params: Sequence[Any], context: str) -> list[Sequence[Any]]:
        try:
            self.cursor.execute(sql, list(params))
            return list(self.cursor.fetchall())
        except Exception as e:
            raise _driver_error(e, f"{context}: {e}") from e

    def resolve_table(self, schema: str, table: str) -> tuple[str, str]:
        """Catalog spelling of ``schema.table``; SchemaMismatch when absent."""
        rows = self._fetch(TABLE_PROBE_SQL, [schema, table], f"table probe {schema}.{table}")
        exact = [r for r in rows if r[0] == schema and r[1] == table]
        folded = [
            r for r in rows if str(r[0]).casefold() == schema.casefold() and str(r[1]).casefold() == table.casefold()
        ]
        chosen = (exact or folded or [None])[0]
        if chosen is None:
            raise SchemaMismatch(f"table not found: {schema}.{table}")
        return str(chosen[0]), str(chosen[1])

    def probe_key_column(self, schema: str, table: str) -> str:
        rows = self._fetch(KEY_PROBE_SQL, [schema, table, *KEY_COLUMN_CANDIDATES], f"key column probe {schema}.{table}")
        found = {str(r[0]).casefold(): str(r[0]) for r in rows}
        for candidate in KEY_COLUMN_CANDIDATES:
            if candidate.casefold() in found:
                return found[candidate.casefold()]
        raise SchemaMismatch(
            f"no {' / '.join(KEY_COLUMN_CANDIDATES)} column in {schema}.{table}"
        )

    def searchable_columns(self, schema: str, table: str) -> list[str]:
        rows = self._fetch(COLUMNS_PROBE_SQL, [schema, table], f"column probe {schema}.{table}")
        return [str(r[0]) for r in rows]

    @staticmethod
    def build_query(
        schema: str,
        table: str,
        key_column: str,
        columns: Sequence[str],
        codes: Sequence[str],
        values: Sequence[str] = (),
    ) -> tuple[str, list[Any]]:
        """UNION ALL query over ``columns`` plus its parameter list.

        ``schema``/``table``/``key_column``/``columns`` must be catalog names.
        The parameters are the codes followed by the LIKE patterns, each bound
        once in a CTE shared by every branch.
        """
        if not codes:
            raise ValueError("at least one code is required")
        if not columns:
            raise ValueError("at least one column is required")
        qualified = f"{quote_ident(schema)}.{quote_ident(table)}"
        key = quote_ident(key_column)
        patterns = [f"%{escape_like(v)}%" for v in values]

        ctes = [
            "codes(code) AS (SELECT v.code FROM (VALUES "
            + ", ".join("(?)" for _ in codes)
            + ") AS v(code))"
        ]
        if patterns:
            ctes.append(
                "patterns(pattern) AS (SELECT v.pattern FROM (VALUES "
                + ", ".join("(?)" for _ in patterns)
                + ") AS v(pattern))"
            )

        branches: list[str] = []
        for column in columns:
            cast = f"CAST(t.{quote_ident(column)} AS NVARCHAR(4000))"
            branch = (
                f"SELECT {sql_literal(table)} AS table_name, {sql_literal(column)} AS column_name, "
                f"{cast} AS found_value, t.* "
                f"FROM {qualified} AS t WHERE t.{key} IN (SELECT code FROM codes)"
            )
            if patterns:
                branch += f" AND EXISTS (SELECT 1 FROM patterns AS p WHERE {cast} LIKE p.pattern ESCAPE '\\')"
            branches.append(branch)
        sql = "WITH " + ",\n".join(ctes) + "\n" + "\nUNION ALL\n".join(branches)
        return sql, [*codes, *patterns]

    def fetch_rows(self, requirement: Requirement) -> QueryResult:
        """Rows backing ``requirement``. Zero rows is a normal result.

        Raises:
            SchemaMismatch: table or key column missing
            ConnectionFailure: the connection dropped (SQLSTATE 08xxx)
            QueryFailure: any other driver error, with table/column context
        """
        schema, table = self.resolve_table(requirement.schema, requirement.table)
        key_column = self.probe_key_column(schema, table)
        columns = self.searchable_columns(schema, table)
        if not columns:
            raise SchemaMismatch(f"no searchable columns in {schema}.{table}")

        sql, params = self.build_query(schema, table, key_column, columns, requirement.codes, requirement.values)
        if len(params) > MAX_PARAMETERS:
            raise QueryFailure(
                f"{schema}.{table}: query needs {len(params)} parameters (limit {MAX_PARAMETERS}); "
                f"split the requirement into fewer codes/values"
            )
        logger.debug(
            "query %s.%s key=%s columns=%d codes=%d values=%d",
            schema, table, key_column, len(columns), len(requirement.codes), len(requirement.values),
        )
        try:
            self.cursor.execute(sql, params)
            raw = list(self.cursor.fetchall())
        except Exception as e:
            raise _driver_error(
                e,
                f"validation query failed on {schema}.{table} (key column {key_column}, "
                f"{len(columns)} columns): {e}",
            ) from e
        rows = _rows_as_dicts(self.cursor, raw)
        return QueryResult(
            schema=schema,
            table=table,
            key_column=key_column,
            columns=tuple(columns),
            rows=tuple(rows),
        )
