"""Abstract base class for metadata lookups.

Defines the interface the compiler uses to resolve object owners.
"""

from abc import ABC
from abc import abstractmethod


class MetadataLookup(ABC):
    """Read-only access to the catalog of the database being administered.

    Owners are advisory: the compiler treats any exception raised by these
    methods, including the object not existing, as "owner unknown".
    """

    @abstractmethod
    def get_table_owner(self, table_name: str) -> str | None:
        """Get the owner of a table.

        Args:
            table_name: Unqualified table name

        Returns:
            Name of the owning principal, or None if the table has no owner

        Raises:
            LookupError: if the table does not exist
        """

    @abstractmethod
    def get_database_owner(self, database_name: str) -> str | None:
        """Get the owner of a database.

        Args:
            database_name: Database name

        Returns:
            Name of the owning principal, or None if the database has no owner

        Raises:
            LookupError: if the database does not exist
        """
