"""Pre-parsed statement trees consumed by the compiler.

The external parser hands over a tree of `Fragment`s. Each fragment carries a
tag from the closed `FragmentType` set (or, for principals only, one of the
legacy numeric tags), optional token text, and ordered children.
"""

from dataclasses import dataclass
from enum import Enum

from authz_compiler.models import PrincipalType
from authz_compiler.models import Privilege


class FragmentType(Enum):
    """Tags of statement fragments."""

    # Statements
    CREATE_ROLE = 1
    DROP_ROLE = 2
    GRANT = 3
    REVOKE = 4
    GRANT_ROLE = 5
    REVOKE_ROLE = 6
    SET_ROLE = 7
    SHOW_GRANT = 8
    SHOW_ROLE_GRANT = 9
    SHOW_ROLES = 10
    SHOW_CURRENT_ROLE = 11
    SHOW_ROLE_PRINCIPALS = 12

    # Statement parts
    IDENTIFIER = 20
    PRIVILEGE_LIST = 21
    PRIVILEGE = 22
    PRINCIPAL_LIST = 23
    USER = 24
    GROUP = 25
    ROLE = 26
    PRIV_OBJECT = 27
    PRIV_OBJECT_COL = 28
    GRANT_WITH_OPTION = 29

    # Privilege targets
    SERVER_TYPE = 40
    DB_TYPE = 41
    TABLE_TYPE = 42
    URI_TYPE = 43
    PARTSPEC = 44
    TABNAME = 45
    TABCOLNAME = 46

    # Privilege tokens
    PRIV_ALL = 60
    PRIV_SELECT = 61
    PRIV_INSERT = 62
    PRIV_UPDATE = 63
    PRIV_DELETE = 64
    PRIV_CREATE = 65
    PRIV_DROP = 66
    PRIV_ALTER_METADATA = 67
    PRIV_ALTER_DATA = 68
    PRIV_INDEX = 69
    PRIV_LOCK = 70
    PRIV_SHOW_DATABASE = 71


@dataclass(frozen=True)
class Fragment:
    """One node of a statement tree.

    Attributes:
        type_ (FragmentType | int): The fragment tag. Plain integers only occur
            as legacy principal tags, see `PRINCIPAL_TAGS`.
        text (str | None): Token text for leaf fragments (identifiers, literals).
        children (tuple[Fragment, ...]): Ordered child fragments.

    Example:
        >>> Fragment(FragmentType.CREATE_ROLE, children=(identifier('analyst'),))
    """

    type_: FragmentType | int
    text: str | None = None
    children: tuple['Fragment', ...] = ()

    def child(self, index: int) -> 'Fragment':
        return self.children[index]

    def walk(self):
        """Yield this fragment and every fragment below it, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


def identifier(text: str) -> Fragment:
    return Fragment(FragmentType.IDENTIFIER, text=text)


def unescape_identifier(text: str) -> str:
    """Remove the backticks quoting an identifier, e.g. `my role` -> my role."""
    if len(text) > 1 and text[0] == '`' and text[-1] == '`':
        return text[1:-1]
    return text


def split_qualified_name(text: str) -> list[str]:
    """Split a dotted name into unescaped parts, e.g. `db1`.`my.table` -> ['db1', 'my.table'].

    Dots between backticks belong to the part they are in.
    """
    parts = []
    current = ''
    quoted = False
    for char in text:
        if char == '.' and not quoted:
            parts.append(current)
            current = ''
            continue
        if char == '`':
            quoted = not quoted
        current += char
    parts.append(current)
    return [unescape_identifier(part) for part in parts]


# Registry of privilege tokens the grammar can produce
PRIVILEGE_TOKENS: dict[FragmentType, Privilege] = {
    FragmentType.PRIV_ALL: Privilege.ALL,
    FragmentType.PRIV_SELECT: Privilege.SELECT,
    FragmentType.PRIV_INSERT: Privilege.INSERT,
    FragmentType.PRIV_UPDATE: Privilege.UPDATE,
    FragmentType.PRIV_DELETE: Privilege.DELETE,
    FragmentType.PRIV_CREATE: Privilege.CREATE,
    FragmentType.PRIV_DROP: Privilege.DROP,
    FragmentType.PRIV_ALTER_METADATA: Privilege.ALTER_METADATA,
    FragmentType.PRIV_ALTER_DATA: Privilege.ALTER_DATA,
    FragmentType.PRIV_INDEX: Privilege.INDEX,
    FragmentType.PRIV_LOCK: Privilege.LOCK,
    FragmentType.PRIV_SHOW_DATABASE: Privilege.SHOW_DATABASE,
}

# Numeric principal tags emitted by older parser builds. Kept as aliases of the
# canonical tags so trees from those builds still compile.
LEGACY_USER_TAG = 880
LEGACY_GROUP_TAG = 685
LEGACY_ROLE_TAG = 782

PRINCIPAL_TAGS: dict[FragmentType | int, PrincipalType] = {
    FragmentType.USER: PrincipalType.USER,
    LEGACY_USER_TAG: PrincipalType.USER,
    FragmentType.GROUP: PrincipalType.GROUP,
    LEGACY_GROUP_TAG: PrincipalType.GROUP,
    FragmentType.ROLE: PrincipalType.ROLE,
    LEGACY_ROLE_TAG: PrincipalType.ROLE,
}
