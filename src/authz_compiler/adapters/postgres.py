"""PostgreSQL metadata lookup for authz_compiler.

Resolves object owners from the PostgreSQL system catalogs.
"""

import logging
from typing import cast

import sqlalchemy as sa

from authz_compiler.adapters.base import MetadataLookup

logger = logging.getLogger(__name__)


# Prefer the table on the search path when several schemas hold the same name
_TABLE_OWNER_SQL = sa.text("""
SELECT tableowner
FROM pg_tables
WHERE tablename = :table_name
ORDER BY array_position(current_schemas(false), schemaname::text) NULLS LAST, schemaname
LIMIT 1
""")

_DATABASE_OWNER_SQL = sa.text("""
SELECT pg_get_userbyid(datdba)
FROM pg_database
WHERE datname = :database_name
""")


class PostgresMetadataLookup(MetadataLookup):
    """PostgreSQL-specific implementation of MetadataLookup."""

    def __init__(self, conn):
        """Initialize the lookup.

        Args:
            conn: SQLAlchemy connection object
        """
        self.conn = conn

    def _fetch_one(self, query, params: dict):
        """Run a catalog query inside a savepoint.

        A failed query aborts the enclosing PostgreSQL transaction unless it is
        rolled back to the savepoint, which the context manager does on error.
        """
        with self.conn.begin_nested():
            return self.conn.execute(query, params).fetchone()

    def get_table_owner(self, table_name: str) -> str | None:
        """Get the owner of a table visible to the current connection."""
        row = self._fetch_one(_TABLE_OWNER_SQL, {'table_name': table_name})
        if row is None:
            raise LookupError(f'Table not found: {table_name}')

        logger.debug(f'Owner of table {table_name} is {row[0]}')
        return cast(str | None, row[0])

    def get_database_owner(self, database_name: str) -> str | None:
        """Get the owner of a database in the cluster."""
        row = self._fetch_one(_DATABASE_OWNER_SQL, {'database_name': database_name})
        if row is None:
            raise LookupError(f'Database not found: {database_name}')

        logger.debug(f'Owner of database {database_name} is {row[0]}')
        return cast(str | None, row[0])
