"""Authorization statement compiler package."""

from authz_compiler.adapters.memory import InMemoryMetadataLookup
from authz_compiler.adapters.postgres import PostgresMetadataLookup
from authz_compiler.core import AuthorizationStatementCompiler
from authz_compiler.errors import AuthorizationStatementError
from authz_compiler.errors import InvariantViolationError
from authz_compiler.errors import PrincipalNotSupportedError
from authz_compiler.errors import PrivilegeNotAllowedError
from authz_compiler.errors import ReservedRoleNameError
from authz_compiler.errors import UnknownPrivilegeError
from authz_compiler.errors import UnrecognizedFragmentError
from authz_compiler.errors import UnsupportedTargetError
from authz_compiler.fragments import Fragment
from authz_compiler.fragments import FragmentType
from authz_compiler.models import CompileResult
from authz_compiler.models import ObjectDescriptor
from authz_compiler.models import Principal
from authz_compiler.models import PrincipalType
from authz_compiler.models import Privilege
from authz_compiler.models import RequestedPrivilege
from authz_compiler.models import Session

USER = PrincipalType.USER
GROUP = PrincipalType.GROUP
ROLE = PrincipalType.ROLE
