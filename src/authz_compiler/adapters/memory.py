"""In-memory metadata lookup, for hosts that keep their own catalog."""

from collections.abc import Mapping

from authz_compiler.adapters.base import MetadataLookup


class InMemoryMetadataLookup(MetadataLookup):
    """MetadataLookup backed by plain name -> owner mappings.

    Example:
        >>> lookup = InMemoryMetadataLookup(tables={'t1': 'alice'}, databases={'db1': 'bob'})
        >>> lookup.get_database_owner('db1')
        'bob'
    """

    def __init__(
        self,
        tables: Mapping[str, str | None] | None = None,
        databases: Mapping[str, str | None] | None = None,
    ):
        self.tables = dict(tables or {})
        self.databases = dict(databases or {})

    def get_table_owner(self, table_name: str) -> str | None:
        try:
            return self.tables[table_name]
        except KeyError:
            raise LookupError(f'Table not found: {table_name}') from None

    def get_database_owner(self, database_name: str) -> str | None:
        try:
            return self.databases[database_name]
        except KeyError:
            raise LookupError(f'Database not found: {database_name}') from None
