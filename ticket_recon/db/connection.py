from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from ticket_recon.models.config_models import SqlConfig

"""SQL Server connection handling (pyodbc).

One connection per run, opened by ``sql_connection`` and always closed in the
``finally`` block whatever happens inside. The tool only reads, so no
transaction handling beyond the driver default is needed.
"""

__all__ = [
    "ConnectionFailure",
    "build_connection_string",
    "sql_connection",
]

logger = logging.getLogger(__name__)


class ConnectionFailure(Exception):
    """Connecting to SQL Server failed. Fatal for a validation run."""


def build_connection_string(cfg: SqlConfig) -> str:
    missing = [name for name in ("server", "database") if not getattr(cfg, name)]
    if missing:
        raise ConnectionFailure(f"SQL settings missing: {', '.join(missing)}")
    parts = [
        f"DRIVER={{{cfg.driver}}}",
        f"SERVER={cfg.server}",
        f"DATABASE={cfg.database}",
        f"Encrypt={'yes' if cfg.encrypt else 'no'}",
        f"TrustServerCertificate={'yes' if cfg.trust_server_certificate else 'no'}",
    ]
    if cfg.user:
        parts.append(f"UID={cfg.user}")
        # ODBC の {} 引用では } を二重化
        parts.append(f"PWD={{{(cfg.password or '').replace('}', '}}')}}}")
    else:
        parts.append("Trusted_Connection=yes")
    return ";".join(parts) + ";"


@contextmanager
def sql_connection(cfg: SqlConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper; tested via fakes)
    """Yield a pyodbc cursor; the connection is closed on exit.

    pyodbc is imported here so that commands that never touch the database
    (fetch / parse / promote) work on machines without an ODBC driver.
    """
    try:
        import pyodbc
    except ImportError as e:
        raise ConnectionFailure(f"pyodbc not available: {e}") from e

    conn_str = build_connection_string(cfg)
    conn = None
    cur = None
    try:
        try:
            conn = pyodbc.connect(conn_str, timeout=cfg.connect_timeout, autocommit=True)
        except pyodbc.Error as e:
            raise ConnectionFailure(f"Failed to connect to SQL Server {cfg.server}: {e}") from e
        conn.timeout = cfg.query_timeout
        cur = conn.cursor()
        logger.debug("connected to %s/%s", cfg.server, cfg.database)
        yield cur
    finally:
        if cur is not None:
            try:
                cur.close()
            except Exception:  # pragma: no cover
                logger.debug("cursor close failed", exc_info=True)
        if conn is not None:
            try:
                conn.close()
            except Exception:  # pragma: no cover
                logger.debug("connection close failed", exc_info=True)
