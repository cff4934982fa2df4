"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module holds the per-DBMS adjustments applied on top of the generic
ODBC catalog functions: how to read the current schema, how to list
schemas, where to find table and column comments, how to complete the
column descriptors of a described query, and how to normalize
catalog/schema names for DBMSs that only have one of the two.

The dialect is chosen from the DBMS name reported by SQLGetInfo.
"""

import itertools
import re
import uuid
from typing import TYPE_CHECKING, List

from omnidb_python import catalog
from omnidb_python.exceptions import Error
from omnidb_python.logging import logger
from omnidb_python.sql_utils import escape_sql_string, quote_literal, replace_special_chars

if TYPE_CHECKING:
    from omnidb_python.connection import Connection


def _first_value(result: dict) -> str:
    records = result["records"]
    if not records or not records[0]:
        return ""
    value = records[0][0]
    return "" if value is None else str(value)


def _qualified(schema: str, name: str) -> str:
    return f"{schema}.{name}"


class Dialect:
    """
    Generic ODBC behaviour. Subclasses override what their DBMS does differently.
    """

    name = "generic"
    pattern = None

    @classmethod
    def matches(cls, dbms_name: str) -> bool:
        return cls.pattern is not None and cls.pattern.search(dbms_name or "") is not None

    def current_schema(self, conn: "Connection") -> str:
        return ""

    def list_schemas(self, conn: "Connection") -> List[dict]:
        return catalog.list_schemas(conn._require_connection("list_schemas"))

    def adjust_tables(self, conn: "Connection", tables: List[dict], with_remarks: bool) -> List[dict]:
        return tables

    def adjust_columns(self, conn: "Connection", columns: List[dict], with_remarks: bool) -> List[dict]:
        return columns

    def adjust_primary_keys(self, keys: List[dict]) -> List[dict]:
        return keys

    def adjust_query(self, conn: "Connection", sql: str, result: dict) -> dict:
        return result


def _fill_remarks(rows: List[dict], remarks_by_key: dict, key_of) -> List[dict]:
    for row in rows:
        remarks = remarks_by_key.get(key_of(row))
        if remarks and not row.get("remarks"):
            row["remarks"] = remarks
    return rows


def _table_keys(rows: List[dict], table_key: str) -> List[str]:
    keys = []
    for row in rows:
        if row.get("schema") and row.get(table_key):
            key = _qualified(row["schema"], row[table_key])
            if key not in keys:
                keys.append(key)
    return keys


class SqlServerDialect(Dialect):
    """Microsoft SQL Server: comments live in sys.extended_properties (MS_Description)."""

    name = "mssql"
    pattern = re.compile(r"^Microsoft SQL Server", re.IGNORECASE)

    def current_schema(self, conn):
        return _first_value(conn.fetch_all("SELECT SCHEMA_NAME()"))

    def adjust_tables(self, conn, tables, with_remarks):
        keys = _table_keys(tables, "name")
        if not with_remarks or not keys:
            return tables
        sql = f"""
            SELECT * FROM (
              SELECT
                CONCAT(SCHEMA_NAME(t.schema_id), '.', t.name) AS name,
                CAST(ep.value AS NVARCHAR(4000)) AS remarks
              FROM sys.tables t
              LEFT JOIN sys.extended_properties ep
                ON t.object_id = ep.major_id AND ep.minor_id = 0 AND ep.name = 'MS_Description'
            ) BASE
            WHERE name IN ({", ".join(quote_literal(k, backslash=False) for k in keys)})"""
        result = conn.fetch_all(sql)
        name_idx = result["columnIndex"]["name"]
        remarks_idx = result["columnIndex"]["remarks"]
        found = {rec[name_idx]: rec[remarks_idx] for rec in result["records"]}
        return _fill_remarks(tables, found, lambda t: _qualified(t["schema"], t["name"]))

    def adjust_columns(self, conn, columns, with_remarks):
        keys = _table_keys(columns, "table")
        if not with_remarks or not keys:
            return columns
        sql = f"""
            SELECT * FROM (
              SELECT
                CONCAT(sc.name, '.', tb.name) AS name,
                col.name AS column_name,
                CAST(ep.value AS NVARCHAR(4000)) AS remarks
              FROM sys.columns col
              INNER JOIN sys.tables tb ON col.object_id = tb.object_id
              INNER JOIN sys.schemas sc ON tb.schema_id = sc.schema_id
              LEFT JOIN sys.extended_properties ep
                ON col.object_id = ep.major_id AND col.column_id = ep.minor_id
                AND ep.name = 'MS_Description'
            ) T
            WHERE name IN ({", ".join(quote_literal(k, backslash=False) for k in keys)})"""
        result = conn.fetch_all(sql)
        index = result["columnIndex"]
        found = {
            (rec[index["name"]], rec[index["column_name"]]): rec[index["remarks"]]
            for rec in result["records"]
        }
        return _fill_remarks(
            columns, found, lambda c: (_qualified(c["schema"], c["table"]), c["name"])
        )


# PostgreSQL reports these as VARCHAR(255); they are really unbounded text
_POSTGRES_LONG_TYPES = frozenset({"array", "user-defined", "json", "jsonb"})
_LONG_TEXT_SIZE = 8190


def widen_postgres_column(data_type: str, column: dict) -> dict:
    """Report json/jsonb/array/enum columns as long text instead of VARCHAR."""
    data_type = (data_type or "").lower()
    if data_type in _POSTGRES_LONG_TYPES:
        if column.get("type") == "SQL_WVARCHAR":
            column["type"] = "SQL_WLONGVARCHAR"
            column["size"] = _LONG_TEXT_SIZE
        elif column.get("type") == "SQL_VARCHAR":
            column["type"] = "SQL_LONGVARCHAR"
            column["size"] = _LONG_TEXT_SIZE
    elif data_type == "xml":
        if column.get("type") in ("SQL_WLONGVARCHAR", "SQL_LONGVARCHAR"):
            column["size"] = _LONG_TEXT_SIZE
    return column


class PostgresDialect(Dialect):
    """PostgreSQL: comments live in pg_description."""

    name = "postgres"
    pattern = re.compile(r"^PostgreSQL", re.IGNORECASE)

    def current_schema(self, conn):
        return _first_value(conn.fetch_all("SELECT current_schema()"))

    def list_schemas(self, conn):
        schemas = super().list_schemas(conn)
        names = [s["name"] for s in schemas if s["name"]]
        if not names:
            return schemas
        result = conn.fetch_all(f"""
            SELECT nspname AS schema_name, obj_description(oid, 'pg_namespace') AS schema_comment
            FROM pg_namespace
            WHERE nspname IN ({", ".join(quote_literal(n, backslash=False) for n in names)})""")
        index = result["columnIndex"]
        found = {rec[index["schema_name"]]: rec[index["schema_comment"]] for rec in result["records"]}
        return _fill_remarks(schemas, found, lambda s: s["name"])

    def adjust_tables(self, conn, tables, with_remarks):
        keys = _table_keys(tables, "name")
        if not with_remarks or not keys:
            return tables
        result = conn.fetch_all(f"""
            SELECT * FROM (
              SELECT
                pg_namespace.nspname || '.' || pg_class.relname AS name,
                pg_description.description AS remarks
              FROM pg_class
              INNER JOIN pg_namespace ON pg_class.relnamespace = pg_namespace.oid
              LEFT OUTER JOIN pg_description
                ON pg_class.oid = pg_description.objoid AND pg_description.objsubid = 0
              WHERE pg_namespace.nspname NOT IN ('pg_catalog', 'pg_toast', 'information_schema')
            ) T
            WHERE name IN ({", ".join(quote_literal(k, backslash=False) for k in keys)})""")
        index = result["columnIndex"]
        found = {rec[index["name"]]: rec[index["remarks"]] for rec in result["records"]}
        return _fill_remarks(tables, found, lambda t: _qualified(t["schema"], t["name"]))

    def adjust_columns(self, conn, columns, with_remarks):
        # SQLColumns reports json/array/enum as VARCHAR(255), so the real
        # data_type is looked up even when remarks are not wanted
        keys = _table_keys(columns, "table")
        if not keys:
            return columns
        result = conn.fetch_all(f"""
            SELECT * FROM (
              SELECT
                t.schemaname || '.' || t.relname AS name,
                c.column_name AS column_name,
                c.data_type AS data_type,
                pg_description.description AS remarks
              FROM pg_stat_user_tables t
              INNER JOIN information_schema.columns c
                ON t.schemaname = c.table_schema AND t.relname = c.table_name
              LEFT OUTER JOIN pg_description
                ON pg_description.objoid = t.relid
                AND pg_description.objsubid = c.ordinal_position
            ) T
            WHERE name IN ({", ".join(quote_literal(k, backslash=False) for k in keys)})""")
        index = result["columnIndex"]
        found = {
            (rec[index["name"]], rec[index["column_name"]]): rec
            for rec in result["records"]
        }
        for column in columns:
            rec = found.get((_qualified(column["schema"], column["table"]), column["name"]))
            if rec is None:
                continue
            remarks = rec[index["remarks"]]
            if with_remarks and remarks and not column.get("remarks"):
                column["remarks"] = remarks
            widen_postgres_column(rec[index["data_type"]], column)
        return columns

    def adjust_query(self, conn, sql, result):
        # Expression columns have no base column and are left alone
        keys = []
        for column in result["columns"]:
            if column.get("schema") and column.get("table") and column.get("column"):
                key = _qualified(column["schema"], column["table"])
                if key not in keys:
                    keys.append(key)
        if not keys:
            return result
        found = conn.fetch_all(f"""
            SELECT * FROM (
              SELECT
                table_schema || '.' || table_name AS name,
                column_name,
                data_type
              FROM information_schema.columns
            ) T
            WHERE name IN ({", ".join(quote_literal(k, backslash=False) for k in keys)})""")
        index = found["columnIndex"]
        data_types = {
            (rec[index["name"]], rec[index["column_name"]]): rec[index["data_type"]]
            for rec in found["records"]
        }
        for column in result["columns"]:
            data_type = data_types.get((_qualified(column["schema"], column["table"]), column["column"]))
            if data_type:
                widen_postgres_column(data_type, column)
        return result


def _mirror_catalog_schema(row: dict) -> dict:
    name = row.get("catalog") or row.get("schema") or ""
    row["catalog"] = name
    row["schema"] = name
    return row


class MySQLDialect(Dialect):
    """MySQL/MariaDB: a database is both the catalog and the schema."""

    name = "mysql"
    pattern = re.compile(r"^(MySQL|MariaDB)", re.IGNORECASE)

    def current_schema(self, conn):
        return _first_value(conn.fetch_all("SELECT DATABASE()"))

    def list_schemas(self, conn):
        result = conn.fetch_all("""
            SELECT schema_name
            FROM information_schema.schemata
            WHERE schema_name NOT IN ('mysql', 'information_schema', 'performance_schema', 'sys')
            ORDER BY schema_name""")
        return [
            {"catalog": rec[0], "name": rec[0], "remarks": ""}
            for rec in result["records"]
        ]

    def adjust_tables(self, conn, tables, with_remarks):
        return [_mirror_catalog_schema(t) for t in tables]

    def adjust_columns(self, conn, columns, with_remarks):
        return [_mirror_catalog_schema(c) for c in columns]

    def adjust_primary_keys(self, keys):
        return [_mirror_catalog_schema(k) for k in keys]

    def adjust_query(self, conn, sql, result):
        result["columns"] = [_mirror_catalog_schema(c) for c in result["columns"]]
        return result


# Accounts created by the Oracle installer and its options
ORACLE_SYSTEM_SCHEMAS = frozenset({
    "ANONYMOUS", "APEX_050000", "APEX_PUBLIC_USER", "APPQOSSYS", "AUDSYS",
    "CTXSYS", "DBSFWUSER", "DBSNMP", "DIP", "DVF", "DVSYS", "FLOWS_FILES",
    "GGSYS", "GSMADMIN_INTERNAL", "GSMCATUSER", "GSMUSER", "HR", "LBACSYS",
    "MDDATA", "MDSYS", "OJVMSYS", "OLAPSYS", "ORACLE_OCM", "ORDDATA",
    "ORDPLUGINS", "ORDSYS", "OUTLN", "REMOTE_SCHEDULER_AGENT",
    "SI_INFORMTN_SCHEMA", "SPATIAL_CSW_ADMIN_USR", "SPATIAL_WFS_ADMIN_USR",
    "SYS", "SYS$UMF", "SYSBACKUP", "SYSDG", "SYSKM", "SYSRAC", "SYSTEM",
    "WMSYS", "XDB", "XS$NULL",
})


class OracleDialect(Dialect):
    """Oracle: comments live in ALL_TAB_COMMENTS and ALL_COL_COMMENTS."""

    name = "oracle"
    pattern = re.compile(r"^Oracle", re.IGNORECASE)

    def current_schema(self, conn):
        return _first_value(
            conn.fetch_all("SELECT SYS_CONTEXT('USERENV', 'CURRENT_SCHEMA') FROM DUAL")
        )

    def list_schemas(self, conn):
        return [
            s for s in super().list_schemas(conn) if s["name"] not in ORACLE_SYSTEM_SCHEMAS
        ]

    @staticmethod
    def _literal(text: str) -> str:
        return "'" + replace_special_chars(escape_sql_string(text, backslash=False)) + "'"

    def _comment_filter(self, rows, table_key):
        # ALL_*_COMMENTS covers every object in the database; narrow it first
        keys = _table_keys(rows, table_key)
        if not keys:
            return None
        schemas = sorted({row["schema"] for row in rows if row.get("schema")})
        tables = sorted({row[table_key] for row in rows if row.get(table_key)})
        inner = (
            f"OWNER IN ({', '.join(self._literal(s) for s in schemas)}) "
            f"AND TABLE_NAME IN ({', '.join(self._literal(t) for t in tables)})"
        )
        outer = f"NAME IN ({', '.join(self._literal(k) for k in keys)})"
        return inner, outer

    def adjust_tables(self, conn, tables, with_remarks):
        where = self._comment_filter(tables, "name") if with_remarks else None
        if where is None:
            return tables
        result = conn.fetch_all(f"""
            SELECT * FROM (
              SELECT OWNER || '.' || TABLE_NAME AS NAME, COMMENTS AS REMARKS
              FROM ALL_TAB_COMMENTS
              WHERE {where[0]}
            ) T
            WHERE {where[1]}""")
        index = result["columnIndex"]
        found = {rec[index["NAME"]]: rec[index["REMARKS"]] for rec in result["records"]}
        return _fill_remarks(tables, found, lambda t: _qualified(t["schema"], t["name"]))

    def adjust_columns(self, conn, columns, with_remarks):
        where = self._comment_filter(columns, "table") if with_remarks else None
        if where is None:
            return columns
        result = conn.fetch_all(f"""
            SELECT * FROM (
              SELECT OWNER || '.' || TABLE_NAME AS NAME, COLUMN_NAME, COMMENTS AS REMARKS
              FROM ALL_COL_COMMENTS
              WHERE {where[0]}
            ) T
            WHERE {where[1]}""")
        index = result["columnIndex"]
        found = {
            (rec[index["NAME"]], rec[index["COLUMN_NAME"]]): rec[index["REMARKS"]]
            for rec in result["records"]
        }
        return _fill_remarks(
            columns, found, lambda c: (_qualified(c["schema"], c["table"]), c["name"])
        )

    def adjust_query(self, conn, sql, result):
        """
        Guess the source schema and table of query columns from EXPLAIN PLAN.

        Oracle drivers leave SQL_DESC_SCHEMA_NAME and SQL_DESC_BASE_TABLE_NAME
        empty. Matching columns get guessedSchema/guessedTable. The plan needs
        ALTER SESSION and access to PLAN_TABLE; when it cannot be produced
        the result is returned unchanged.
        """
        if not result["columns"]:
            return result
        # STATEMENT_ID is limited to 30 characters
        statement_id = uuid.uuid4().hex[:30]
        planned = False
        try:
            conn.execute(f"""
                DECLARE
                  q VARCHAR2(8000) := {self._literal(oracle_placeholders(sql))};
                BEGIN
                  EXECUTE IMMEDIATE 'EXPLAIN PLAN SET STATEMENT_ID = ''{statement_id}'' FOR ' || q;
                END;""")
            planned = True
            plan = conn.fetch_all(f"""
                SELECT OBJECT_OWNER, OBJECT_NAME, PROJECTION
                FROM PLAN_TABLE
                WHERE STATEMENT_ID = '{statement_id}'
                ORDER BY OBJECT_INSTANCE""")
            _guess_sources(result["columns"], plan["records"])
        except Error as e:
            logger.warning("Execution plan unavailable, no guessed tables: %s", e)
        finally:
            if planned:
                self._clear_plan(conn, statement_id)
        return result

    @staticmethod
    def _clear_plan(conn, statement_id: str) -> None:
        try:
            conn.execute(f"DELETE FROM PLAN_TABLE WHERE STATEMENT_ID = '{statement_id}'")
        except Error as e:
            logger.warning("Could not clear plan %s: %s", statement_id, e)


_PLACEHOLDER = re.compile(r"\?+")


def oracle_placeholders(sql: str) -> str:
    """Rewrite ? placeholders as :P1, :P2, ... which EXPLAIN PLAN accepts."""
    counter = itertools.count(1)
    return _PLACEHOLDER.sub(lambda _match: f":P{next(counter)}", sql)


def plan_columns(projection) -> List[str]:
    """
    Column names listed in a PLAN_TABLE.PROJECTION value.

    '"T"."ID"[NUMBER,22], NAME' gives ["ID", "NAME"]; type and length
    annotations in brackets or parentheses are dropped.
    """
    if not projection:
        return []
    text = re.sub(r"\(.*?\)", "", projection)
    text = re.sub(r"\[.*?\]", "", text)
    names = []
    for item in text.split(","):
        parts = [re.sub(r'^"|"$', "", part) for part in item.strip().split(".")]
        names.append(parts[1] if len(parts) > 1 else parts[0])
    return names


def _guess_sources(columns: List[dict], plan_rows) -> None:
    for owner, object_name, projection in plan_rows:
        names = plan_columns(projection)
        for column in columns:
            if (column.get("schema") or column.get("table")
                    or column.get("guessedSchema") or column.get("guessedTable")):
                continue
            if column.get("column") and column["column"] in names:
                column["guessedSchema"] = owner or ""
                column["guessedTable"] = object_name or ""


class AS400Dialect(Dialect):
    """IBM i (DB2/400): SQLTables does not list libraries reliably."""

    name = "as400"
    pattern = re.compile(r"^DB2/400", re.IGNORECASE)

    def list_schemas(self, conn):
        result = conn.fetch_all("""
            SELECT SCHEMA_NAME, SCHEMA_TEXT
            FROM QSYS2.SYSSCHEMAS
            ORDER BY SCHEMA_NAME""")
        index = result["columnIndex"]
        return [
            {
                "catalog": "",
                "name": rec[index["SCHEMA_NAME"]],
                "remarks": (rec[index["SCHEMA_TEXT"]] or "").strip(),
            }
            for rec in result["records"]
        ]


DIALECTS = (SqlServerDialect, PostgresDialect, MySQLDialect, OracleDialect, AS400Dialect)


def detect(dbms_name: str) -> Dialect:
    """Pick the dialect for a DBMS name; unknown names get the generic one."""
    for dialect_class in DIALECTS:
        if dialect_class.matches(dbms_name):
            logger.debug("Using %s dialect for DBMS '%s'", dialect_class.name, dbms_name)
            return dialect_class()
    return Dialect()
