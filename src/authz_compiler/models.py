"""Privilege model and change-operation descriptors."""

from dataclasses import dataclass
from dataclasses import field
from enum import Enum

from authz_compiler.errors import AuthorizationStatementError


class PrincipalType(Enum):
    """Kinds of identity that can hold privileges or role memberships."""

    USER = 1
    GROUP = 2
    ROLE = 3


class Privilege(Enum):
    """Enumeration of privilege kinds known to the statement grammar.

    Not every member can be delegated through GRANT/REVOKE: see
    `ALLOWED_PRIVILEGES`.
    """

    ALL = 1
    """Every privilege on the object."""
    SELECT = 2
    """Read rows from tables or views."""
    INSERT = 3
    """Write new rows into tables."""
    UPDATE = 4
    """Update existing rows."""
    DELETE = 5
    """Delete rows."""
    CREATE = 6
    """Create new objects (e.g., tables in a database)."""
    DROP = 7
    """Drop objects."""
    ALTER_METADATA = 8
    """Alter the definition of an object."""
    ALTER_DATA = 9
    """Alter the data of an object (e.g., load or truncate)."""
    INDEX = 10
    """Create indexes on tables."""
    LOCK = 11
    """Take explicit locks."""
    SHOW_DATABASE = 12
    """List databases."""


class ObjectType(Enum):
    """Kinds of privilege target."""

    SERVER = 1
    DATABASE = 2
    TABLE = 3
    URI = 4


# Role names that can never be created or dropped, compared upper-cased
RESERVED_ROLE_NAMES: frozenset[str] = frozenset({'ALL', 'DEFAULT', 'NONE'})

ALLOWED_PRIVILEGES: frozenset[Privilege] = frozenset(
    {
        Privilege.ALL,
        Privilege.SELECT,
        Privilege.INSERT,
        Privilege.CREATE,
        Privilege.DROP,
        Privilege.ALTER_METADATA,
    },
)

# Privileges that apply to whole rows, so cannot be scoped to columns
COLUMN_RESTRICTED_PRIVILEGES: frozenset[Privilege] = frozenset({Privilege.INSERT, Privilege.ALL})


@dataclass(frozen=True)
class Principal:
    """An identity named in a statement.

    Attributes:
        name (str): The unescaped principal name.
        type_ (PrincipalType | None): The kind of principal, or None when the
            statement used a tag that does not map to any known kind. Builders
            reject None wherever a specific kind is required.
    """

    name: str
    type_: PrincipalType | None


@dataclass(frozen=True)
class RequestedPrivilege:
    """A privilege requested by a GRANT or REVOKE statement.

    Attributes:
        privilege (Privilege): The kind of privilege.
        columns (tuple[str, ...]): Column names the privilege is restricted to.
            Empty for object-wide privileges, and always empty for INSERT and ALL.
    """

    privilege: Privilege
    columns: tuple[str, ...] = ()


@dataclass(frozen=True)
class ObjectDescriptor:
    """The target of a privilege: a server, database, table or URI.

    Attributes:
        name (str): Server name, database name, unqualified table name, or URI
            with quote characters removed.
        object_type (ObjectType): Which kind of target `name` refers to.
        owner (str | None): Owner of the table or database, when it could be
            resolved. Advisory only.
        columns (tuple[str, ...]): Column names the target is restricted to.
        partition_spec (dict | None): Always None on descriptors returned by
            the compiler; partition-level targets are rejected.
    """

    name: str
    object_type: ObjectType
    owner: str | None = None
    columns: tuple[str, ...] = ()
    partition_spec: dict | None = None

    @property
    def is_server(self) -> bool:
        return self.object_type == ObjectType.SERVER

    @property
    def is_database(self) -> bool:
        return self.object_type == ObjectType.DATABASE

    @property
    def is_table(self) -> bool:
        return self.object_type == ObjectType.TABLE

    @property
    def is_uri(self) -> bool:
        return self.object_type == ObjectType.URI


@dataclass(frozen=True)
class Session:
    """The context a statement is compiled in.

    Attributes:
        user_name (str | None): Name of the authenticated principal issuing the
            statement, or None if nobody is authenticated. Recorded as the
            grantor of GRANT operations, never validated.
    """

    user_name: str | None = None


@dataclass(frozen=True)
class CreateRole:
    role_name: str


@dataclass(frozen=True)
class DropRole:
    role_name: str


@dataclass(frozen=True)
class SetRole:
    role_name: str


@dataclass(frozen=True)
class GrantPrivileges:
    """Grant of privileges on one object to one or more roles."""

    privileges: tuple[RequestedPrivilege, ...]
    principals: tuple[Principal, ...]
    target: ObjectDescriptor
    grantor: str | None
    grantor_type: PrincipalType = PrincipalType.USER
    grant_option: bool = False


@dataclass(frozen=True)
class RevokePrivileges:
    """Revoke of privileges from one or more roles, optionally on one object."""

    privileges: tuple[RequestedPrivilege, ...]
    principals: tuple[Principal, ...]
    target: ObjectDescriptor | None = None


@dataclass(frozen=True)
class GrantRole:
    """Grant of role membership to one or more groups."""

    roles: tuple[str, ...]
    principals: tuple[Principal, ...]
    grantor: str | None
    grantor_type: PrincipalType = PrincipalType.USER
    grant_option: bool = False


@dataclass(frozen=True)
class RevokeRole:
    """Revoke of role membership from one or more groups."""

    roles: tuple[str, ...]
    principals: tuple[Principal, ...]
    grantor: str | None
    grantor_type: PrincipalType = PrincipalType.USER
    grant_option: bool = False


@dataclass(frozen=True)
class ShowGrant:
    result_file: str | None
    principal: Principal
    target: ObjectDescriptor | None = None


@dataclass(frozen=True)
class ShowRoleGrant:
    result_file: str | None
    principal: Principal


@dataclass(frozen=True)
class ShowRoles:
    result_file: str | None


@dataclass(frozen=True)
class ShowCurrentRole:
    result_file: str | None


@dataclass(frozen=True)
class ShowRolePrincipals:
    result_file: str | None
    role_name: str


ChangeOperation = (
    CreateRole
    | DropRole
    | SetRole
    | GrantPrivileges
    | RevokePrivileges
    | GrantRole
    | RevokeRole
    | ShowGrant
    | ShowRoleGrant
    | ShowRoles
    | ShowCurrentRole
    | ShowRolePrincipals
)


@dataclass(frozen=True)
class CompileResult:
    """Outcome of compiling one statement: exactly one of the two is set."""

    operation: ChangeOperation | None = None
    error: AuthorizationStatementError | None = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return self.error is None
