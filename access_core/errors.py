from typing import Any

from fastapi import status


class AppError(Exception):
    code: str = "APP_ERROR"
    message: str = "Application error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    details: Any | None = None

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: Any | None = None,
    ):
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        if details is not None:
            self.details = details

        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Configuration errors (load time, fatal)
# ---------------------------------------------------------------------------


class ConfigurationError(AppError):
    """Raised while building the catalog, registry or policy table.

    These are deployment errors: they must stop the service from starting
    and are never shown to end users.
    """

    code = "CONFIGURATION_ERROR"
    message = "Access control configuration is invalid"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class CatalogError(ConfigurationError):
    code = "CATALOG_ERROR"
    message = "Permission catalog is invalid"


class UnknownPermissionError(ConfigurationError):
    code = "UNKNOWN_PERMISSION"
    message = "Permission is not defined in the catalog"


class DuplicateRoleError(ConfigurationError):
    code = "DUPLICATE_ROLE"
    message = "Role is already registered"


class UnknownRoleError(ConfigurationError):
    code = "UNKNOWN_ROLE"
    message = "Role is not registered"


class PolicyError(ConfigurationError):
    code = "POLICY_ERROR"
    message = "Security policy table is invalid"


class DefinitionsError(ConfigurationError):
    code = "DEFINITIONS_ERROR"
    message = "Access definitions could not be loaded"


# ---------------------------------------------------------------------------
# Request-time errors (HTTP adapter only)
# ---------------------------------------------------------------------------


class AuthError(AppError):
    code = "AUTH_ERROR"
    message = "Authentication failed"
    status_code = status.HTTP_401_UNAUTHORIZED


class AccessDeniedError(AppError):
    code = "PERMISSION_DENIED"
    message = "Insufficient permissions"
    status_code = status.HTTP_403_FORBIDDEN


def error_payload(
    code: str,
    message: str,
    details: Any | None = None,
) -> dict[str, Any]:
    return {"error": {"code": code, "message": message, "details": details}}
