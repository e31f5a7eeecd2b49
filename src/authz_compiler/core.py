"""Compilation of authorization statements into change operations.

This module walks pre-parsed statement trees, enforces the privilege model and
produces the operation descriptors an external store applies. It keeps no state
between calls: the only collaborators are a read-only metadata lookup and the
`Session` passed in by the caller.
"""

import logging
from collections.abc import Callable
from collections.abc import Iterable

from authz_compiler.adapters.base import MetadataLookup
from authz_compiler.adapters.postgres import PostgresMetadataLookup
from authz_compiler.errors import AuthorizationStatementError
from authz_compiler.errors import InvariantViolationError
from authz_compiler.errors import PrincipalNotSupportedError
from authz_compiler.errors import PrivilegeNotAllowedError
from authz_compiler.errors import ReservedRoleNameError
from authz_compiler.errors import UnknownPrivilegeError
from authz_compiler.errors import UnrecognizedFragmentError
from authz_compiler.errors import UnsupportedTargetError
from authz_compiler.fragments import PRINCIPAL_TAGS
from authz_compiler.fragments import PRIVILEGE_TOKENS
from authz_compiler.fragments import Fragment
from authz_compiler.fragments import FragmentType
from authz_compiler.fragments import split_qualified_name
from authz_compiler.fragments import unescape_identifier
from authz_compiler.models import ALLOWED_PRIVILEGES
from authz_compiler.models import COLUMN_RESTRICTED_PRIVILEGES
from authz_compiler.models import RESERVED_ROLE_NAMES
from authz_compiler.models import ChangeOperation
from authz_compiler.models import CompileResult
from authz_compiler.models import CreateRole
from authz_compiler.models import DropRole
from authz_compiler.models import GrantPrivileges
from authz_compiler.models import GrantRole
from authz_compiler.models import ObjectDescriptor
from authz_compiler.models import ObjectType
from authz_compiler.models import Principal
from authz_compiler.models import PrincipalType
from authz_compiler.models import Privilege
from authz_compiler.models import RequestedPrivilege
from authz_compiler.models import RevokePrivileges
from authz_compiler.models import RevokeRole
from authz_compiler.models import Session
from authz_compiler.models import SetRole
from authz_compiler.models import ShowCurrentRole
from authz_compiler.models import ShowGrant
from authz_compiler.models import ShowRoleGrant
from authz_compiler.models import ShowRolePrincipals
from authz_compiler.models import ShowRoles

log = logging.getLogger(__name__)

PARTITION_PRIVILEGES_NOT_SUPPORTED = 'Partition level privileges are not supported'


def _get_metadata_lookup(conn) -> MetadataLookup:
    """Factory function to get the appropriate metadata lookup."""
    dialect = conn.engine.dialect.name

    lookups: dict[str, type[MetadataLookup]] = {
        'postgresql': PostgresMetadataLookup,
    }

    lookup_class = lookups.get(dialect)
    if not lookup_class:
        raise ValueError(f'Unsupported database dialect: {dialect}')

    return lookup_class(conn)


def _text(fragment: Fragment) -> str:
    if fragment.text is None:
        raise InvariantViolationError(f'Expected token text on fragment {fragment.type_}')
    return unescape_identifier(fragment.text)


def _child(statement: Fragment, index: int) -> Fragment:
    try:
        return statement.child(index)
    except IndexError:
        raise InvariantViolationError(
            f'{statement.type_} has {len(statement.children)} children, expected at least {index + 1}',
        ) from None


def _get_column_names(fragment: Fragment) -> tuple[str, ...]:
    return tuple(_text(column) for column in fragment.children)


def _has_partition_spec(fragment: Fragment) -> bool:
    return any(node.type_ == FragmentType.PARTSPEC for node in fragment.walk())


def _check_principal_types(principals: Iterable[Principal], allowed: PrincipalType):
    for principal in principals:
        if principal.type_ != allowed:
            type_name = principal.type_.name if principal.type_ is not None else 'UNKNOWN'
            raise PrincipalNotSupportedError(
                f'Grant/revoke is not supported for principal type {type_name}, only {allowed.name}',
                principal_type=principal.type_,
            )


def _grantor(session: Session | None) -> str | None:
    # No session: nobody is authenticated
    return session.user_name if session is not None else None


class AuthorizationStatementCompiler:
    """Turn authorization statement trees into change operations.

    Parameters
    ----------
    metadata : MetadataLookup, optional
        Used to resolve the owners of tables and databases named as privilege
        targets. Without one, owners are left unset.
    reserved_role_names : iterable of str
        Role names that cannot be created or dropped. Compared case-insensitively.
        (defaults to `RESERVED_ROLE_NAMES`).
    allowed_privileges : iterable of Privilege
        Privileges that may be granted or revoked. (defaults to `ALLOWED_PRIVILEGES`).
    """

    def __init__(
        self,
        metadata: MetadataLookup | None = None,
        reserved_role_names: Iterable[str] = RESERVED_ROLE_NAMES,
        allowed_privileges: Iterable[Privilege] = ALLOWED_PRIVILEGES,
    ):
        self.metadata = metadata
        self.reserved_role_names = frozenset(name.upper() for name in reserved_role_names)
        self.allowed_privileges = frozenset(allowed_privileges)

    @classmethod
    def from_connection(cls, conn, **kwargs) -> 'AuthorizationStatementCompiler':
        """Create a compiler that resolves owners through a SQLAlchemy connection.

        Raises:
            ValueError: if there is no metadata lookup for the connection's dialect.
        """
        return cls(metadata=_get_metadata_lookup(conn), **kwargs)

    def compile(
        self,
        statement: Fragment,
        session: Session | None = None,
        result_file: str | None = None,
    ) -> CompileResult:
        """Compile any supported statement.

        Args:
            statement (Fragment): The root fragment of the statement.
            session (Session | None): The session issuing the statement.
            result_file (str | None): Destination for the rows of SHOW statements,
                passed through untouched.

        Returns:
            CompileResult: holding either the operation or the reason the
                statement was rejected.
        """
        builders: dict[FragmentType, Callable[[], ChangeOperation]] = {
            FragmentType.CREATE_ROLE: lambda: self.create_create_role(statement),
            FragmentType.DROP_ROLE: lambda: self.create_drop_role(statement),
            FragmentType.GRANT: lambda: self.create_grant(statement, session),
            FragmentType.REVOKE: lambda: self.create_revoke(statement),
            FragmentType.GRANT_ROLE: lambda: self.create_grant_role(statement, session),
            FragmentType.REVOKE_ROLE: lambda: self.create_revoke_role(statement, session),
            FragmentType.SET_ROLE: lambda: self.create_set_role(_text(_child(statement, 0))),
            FragmentType.SHOW_GRANT: lambda: self.create_show_grant(statement, result_file),
            FragmentType.SHOW_ROLE_GRANT: lambda: self.create_show_role_grant(statement, result_file),
            FragmentType.SHOW_ROLES: lambda: self.create_show_roles(statement, result_file),
            FragmentType.SHOW_CURRENT_ROLE: lambda: self.create_show_current_role(result_file),
            FragmentType.SHOW_ROLE_PRINCIPALS: lambda: self.create_show_role_principals(statement, result_file),
        }

        try:
            builder = builders.get(statement.type_)
            if builder is None:
                raise UnrecognizedFragmentError(f'Unrecognized statement: {statement.type_}')
            log.debug(f'Compiling {statement.type_}')
            return CompileResult(operation=builder())
        except InvariantViolationError as e:
            log.exception(f'Malformed {statement.type_} statement tree: {e}')
            return CompileResult(error=e)
        except AuthorizationStatementError as e:
            log.debug(f'Rejected {statement.type_} statement: {e}')
            return CompileResult(error=e)

    # ===== Role Statements =====

    def create_create_role(self, statement: Fragment) -> CreateRole:
        return CreateRole(self._role_name(statement))

    def create_drop_role(self, statement: Fragment) -> DropRole:
        return DropRole(self._role_name(statement))

    def create_set_role(self, role_name: str) -> SetRole:
        return SetRole(role_name)

    def _role_name(self, statement: Fragment) -> str:
        role_name = _text(_child(statement, 0))
        if role_name.upper() in self.reserved_role_names:
            raise ReservedRoleNameError(
                f'Roles cannot be one of the reserved roles: {sorted(self.reserved_role_names)}',
            )
        return role_name

    # ===== Privilege Statements =====

    def create_grant(self, statement: Fragment, session: Session | None = None) -> GrantPrivileges:
        """Build the operation for GRANT <privileges> ON <object> TO <roles> [WITH GRANT OPTION].

        Raises:
            InvariantViolationError: if the tree has no privilege object.
            UnsupportedTargetError: if the object is a partition.
            PrincipalNotSupportedError: if any grantee is not a role.
        """
        privileges = self._analyze_privilege_list(_child(statement, 0))
        principals = self._analyze_principal_list(_child(statement, 1))

        target = None
        grant_option = False
        for child in statement.children[2:]:
            if child.type_ == FragmentType.GRANT_WITH_OPTION:
                grant_option = True
            elif child.type_ == FragmentType.PRIV_OBJECT:
                target = self._analyze_privilege_object(child)
            else:
                raise UnrecognizedFragmentError(f'Unrecognized fragment in GRANT: {child.type_}')

        if target is None:
            raise InvariantViolationError('No privilege object in GRANT statement')
        if target.partition_spec is not None:
            raise UnsupportedTargetError(PARTITION_PRIVILEGES_NOT_SUPPORTED)
        _check_principal_types(principals, PrincipalType.ROLE)

        return GrantPrivileges(
            privileges=privileges,
            principals=principals,
            target=target,
            grantor=_grantor(session),
            grant_option=grant_option,
        )

    def create_revoke(self, statement: Fragment) -> RevokePrivileges:
        """Build the operation for REVOKE <privileges> [ON <object>] FROM <roles>."""
        privileges = self._analyze_privilege_list(_child(statement, 0))
        principals = self._analyze_principal_list(_child(statement, 1))

        target = None
        for child in statement.children[2:]:
            if child.type_ != FragmentType.PRIV_OBJECT:
                raise UnrecognizedFragmentError(f'Unrecognized fragment in REVOKE: {child.type_}')
            target = self._analyze_privilege_object(child)

        if target is not None and target.partition_spec is not None:
            raise UnsupportedTargetError(PARTITION_PRIVILEGES_NOT_SUPPORTED)
        _check_principal_types(principals, PrincipalType.ROLE)

        return RevokePrivileges(privileges=privileges, principals=principals, target=target)

    def create_grant_role(self, statement: Fragment, session: Session | None = None) -> GrantRole:
        roles, principals = self._analyze_grant_revoke_role(statement)
        return GrantRole(roles=roles, principals=principals, grantor=_grantor(session))

    def create_revoke_role(self, statement: Fragment, session: Session | None = None) -> RevokeRole:
        roles, principals = self._analyze_grant_revoke_role(statement)
        return RevokeRole(roles=roles, principals=principals, grantor=_grantor(session))

    def _analyze_grant_revoke_role(self, statement: Fragment) -> tuple[tuple[str, ...], tuple[Principal, ...]]:
        """Split GRANT/REVOKE ROLE <roles> TO/FROM <groups> into role names and groups.

        Raises:
            PrincipalNotSupportedError: if any principal is not a group.
        """
        principals = self._analyze_principal_list(_child(statement, 0))
        roles = tuple(_text(child) for child in statement.children[1:])
        _check_principal_types(principals, PrincipalType.GROUP)
        return roles, principals

    # ===== Show Statements =====

    def create_show_grant(self, statement: Fragment, result_file: str | None = None) -> ShowGrant:
        """Build the operation for SHOW GRANT <role> [ON <object>]."""
        principal = self._analyze_principal(_child(statement, 0))
        _check_principal_types((principal,), PrincipalType.ROLE)

        target = None
        if len(statement.children) > 1:
            child = statement.child(1)
            if child.type_ != FragmentType.PRIV_OBJECT_COL:
                raise UnrecognizedFragmentError(f'Unrecognized fragment in SHOW GRANT: {child.type_}')
            target = self._analyze_privilege_object(child)

        return ShowGrant(result_file=result_file, principal=principal, target=target)

    def create_show_role_grant(self, statement: Fragment, result_file: str | None = None) -> ShowRoleGrant:
        principal = self._analyze_principal(_child(statement, 0))
        _check_principal_types((principal,), PrincipalType.GROUP)
        return ShowRoleGrant(result_file=result_file, principal=principal)

    def create_show_roles(self, statement: Fragment, result_file: str | None = None) -> ShowRoles:
        return ShowRoles(result_file=result_file)

    def create_show_current_role(self, result_file: str | None = None) -> ShowCurrentRole:
        return ShowCurrentRole(result_file=result_file)

    def create_show_role_principals(self, statement: Fragment, result_file: str | None = None) -> ShowRolePrincipals:
        if len(statement.children) != 1:
            # The grammar does not allow this
            raise InvariantViolationError(
                f'Unexpected fragments in SHOW ROLE PRINCIPALS: {[child.type_ for child in statement.children]}',
            )
        return ShowRolePrincipals(result_file=result_file, role_name=_text(statement.child(0)))

    # ===== Analyzers =====

    def _analyze_privilege_object(self, fragment: Fragment) -> ObjectDescriptor:
        """Build the descriptor of the object a privilege applies to.

        The first child of `fragment` is the target, tagged with its type. Its
        first child names the object, further children can restrict it to
        columns.

        Raises:
            UnsupportedTargetError: if a partition spec appears anywhere in the tree.
            UnrecognizedFragmentError: if the target type is not known.
        """
        if _has_partition_spec(fragment):
            raise UnsupportedTargetError(PARTITION_PRIVILEGES_NOT_SUPPORTED)

        target = _child(fragment, 0)
        name_fragment = _child(target, 0)
        owner = None

        if target.type_ == FragmentType.URI_TYPE:
            object_type = ObjectType.URI
            name = _text(name_fragment).replace("'", '').replace('"', '')
        elif target.type_ == FragmentType.SERVER_TYPE:
            object_type = ObjectType.SERVER
            name = _text(name_fragment)
        elif target.type_ == FragmentType.TABLE_TYPE:
            object_type = ObjectType.TABLE
            name = self._unqualified_table_name(name_fragment)
            owner = self._lookup_owner(object_type, name)
        elif target.type_ == FragmentType.DB_TYPE:
            object_type = ObjectType.DATABASE
            name = _text(name_fragment)
            owner = self._lookup_owner(object_type, name)
        else:
            raise UnrecognizedFragmentError(f'Unrecognized privilege object: {target.type_}')

        columns: tuple[str, ...] = ()
        for child in target.children[1:]:
            if child.type_ == FragmentType.TABCOLNAME:
                columns = _get_column_names(child)

        return ObjectDescriptor(name=name, object_type=object_type, owner=owner, columns=columns)

    @staticmethod
    def _unqualified_table_name(fragment: Fragment) -> str:
        # db.table arrives either as a TABNAME with one child per part or as a dotted identifier
        if fragment.type_ == FragmentType.TABNAME:
            if not fragment.children:
                raise InvariantViolationError('Table name fragment has no identifiers')
            return _text(fragment.children[-1])
        if fragment.text is None:
            raise InvariantViolationError(f'Expected token text on fragment {fragment.type_}')
        return split_qualified_name(fragment.text)[-1]

    def _lookup_owner(self, object_type: ObjectType, name: str) -> str | None:
        """Resolve the owner of a table or database, or None if that fails for any reason."""
        if self.metadata is None:
            return None
        try:
            if object_type == ObjectType.TABLE:
                return self.metadata.get_table_owner(name)
            return self.metadata.get_database_owner(name)
        except Exception:
            log.debug(f'Could not resolve owner of {object_type.name.lower()} {name}', exc_info=True)
            return None

    def _analyze_privilege_list(self, fragment: Fragment) -> tuple[RequestedPrivilege, ...]:
        """Extract the privileges of a GRANT or REVOKE in statement order.

        Raises:
            UnknownPrivilegeError: if a privilege token is not in the registry.
            PrivilegeNotAllowedError: if a privilege cannot be delegated, or is
                INSERT/ALL restricted to columns.
        """
        privileges = []
        for privilege_def in fragment.children:
            privilege_type = _child(privilege_def, 0)
            privilege = PRIVILEGE_TOKENS.get(privilege_type.type_)
            if privilege is None:
                raise UnknownPrivilegeError(f'Undefined privilege {privilege_type.type_}')
            if privilege not in self.allowed_privileges:
                raise PrivilegeNotAllowedError(f'Privilege is not supported: {privilege.name}')

            columns: tuple[str, ...] = ()
            if len(privilege_def.children) > 1:
                column_fragment = privilege_def.child(1)
                if column_fragment.type_ != FragmentType.TABCOLNAME:
                    raise UnrecognizedFragmentError(f'Unrecognized fragment in privilege: {column_fragment.type_}')
                columns = _get_column_names(column_fragment)
            if columns and privilege in COLUMN_RESTRICTED_PRIVILEGES:
                raise PrivilegeNotAllowedError(f'Privilege is not supported: {privilege.name} on column')

            privileges.append(RequestedPrivilege(privilege, columns))

        return tuple(privileges)

    def _analyze_principal_list(self, fragment: Fragment) -> tuple[Principal, ...]:
        return tuple(self._analyze_principal(child) for child in fragment.children)

    @staticmethod
    def _analyze_principal(fragment: Fragment) -> Principal:
        principal = Principal(_text(_child(fragment, 0)), PRINCIPAL_TAGS.get(fragment.type_))
        log.debug(f'Principal: [{principal.name}, {principal.type_}]')
        return principal
