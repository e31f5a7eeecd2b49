"""Exceptions raised when a statement cannot be compiled."""


class AuthorizationStatementError(ValueError):
    """Base class for statements rejected by the compiler.

    `user_facing` separates input the user can fix from shapes the upstream
    grammar should never have produced.
    """

    user_facing = True


class UnsupportedTargetError(AuthorizationStatementError):
    """The statement targets something the privilege model forbids, e.g. a partition."""


class UnknownPrivilegeError(AuthorizationStatementError):
    """A privilege token does not map to any known privilege."""


class PrivilegeNotAllowedError(AuthorizationStatementError):
    """A known privilege that cannot be delegated, or cannot be scoped to columns."""


class PrincipalNotSupportedError(AuthorizationStatementError):
    """A principal of the wrong kind for the statement, e.g. a user in GRANT ... TO."""

    def __init__(self, message: str, principal_type=None):
        super().__init__(message)
        self.principal_type = principal_type


class ReservedRoleNameError(AuthorizationStatementError):
    """CREATE or DROP of a reserved role name."""


class UnrecognizedFragmentError(AuthorizationStatementError):
    """A fragment with a tag the compiler does not handle in that position."""


class InvariantViolationError(AuthorizationStatementError):
    """A fragment tree missing structure the grammar guarantees."""

    user_facing = False
