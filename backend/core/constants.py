"""Constants and enums for the access control service."""

from enum import Enum


class AuditAction(str, Enum):
    """Closed vocabulary of audit log actions."""

    USER_LOGIN_SUCCESS = "user_login_success"
    USER_LOGIN_FAILED = "user_login_failed"
    USER_LOGOUT = "user_logout"
    USER_REGISTRATION = "user_registration"
    PASSWORD_CHANGE = "password_change"
    PASSWORD_RESET_REQUEST = "password_reset_request"
    EMAIL_VERIFICATION = "email_verification"
    PERMISSION_CHECK_SUCCESS = "permission_check_success"
    PERMISSION_CHECK_FAILED = "permission_check_failed"
    ROLE_CHECK_FAILED = "role_check_failed"
    ROLE_ASSIGNED = "role_assigned"
    ROLE_REMOVED = "role_removed"
    PERMISSION_GRANTED = "permission_granted"
    PERMISSION_REVOKED = "permission_revoked"
    USER_CREATED_BY_ADMIN = "user_created_by_admin"
    USER_MODIFIED_BY_ADMIN = "user_modified_by_admin"
    USER_DEACTIVATED = "user_deactivated"
    ROLE_CREATED = "role_created"
    ROLE_MODIFIED = "role_modified"
    ROLE_DELETED = "role_deleted"
    BULK_OPERATION_PERFORMED = "bulk_operation_performed"


class PermissionSource(str, Enum):
    """Where an effective permission entry came from."""

    ROLE = "role"
    DIRECT = "direct"


class SystemRole(str, Enum):
    """Built-in roles. Never renamed, modified or deleted."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"
    GUEST = "guest"


ADMIN_ROLES = frozenset({SystemRole.SUPER_ADMIN.value, SystemRole.ADMIN.value})


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"
