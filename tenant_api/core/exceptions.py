"""
Custom Exceptions

Error taxonomy for the tenant pipeline and the credential service.

Tenant resolution and authentication report failures as ErrorKind values
inside result objects. The HTTPException subclasses below are raised only at
the HTTP boundary (endpoints and dependencies), and StoreMissingError is the
one typed failure the storage layer raises.
"""
import enum

from fastapi import HTTPException, status


class ErrorKind(str, enum.Enum):
    """Every failure the request path can produce."""
    MISSING_TENANT = "MissingTenant"
    TENANT_NOT_FOUND = "TenantNotFoundOrInactive"
    DIRECTORY_UNAVAILABLE = "DirectoryUnavailable"
    STORE_INCONSISTENT = "StoreInconsistent"
    SCHEMA_FATAL = "SchemaReconciliationFatal"
    SCHEMA_WARNING = "SchemaReconciliationWarning"
    INVALID_CREDENTIALS = "InvalidCredentials"
    ACCOUNT_INACTIVE = "AccountInactive"
    ACCOUNT_LOCKED_OUT = "AccountLockedOut"
    INVALID_TOKEN = "InvalidOrExpiredToken"
    UNHANDLED_FAULT = "UnhandledFault"


# Single external message for every authentication failure
AUTH_FAILED_MESSAGE = "Invalid credentials"


class StoreMissingError(Exception):
    """Raised by the storage layer when a tenant database does not exist."""

    def __init__(self, db_name: str):
        self.db_name = db_name
        super().__init__(f"Tenant database does not exist: {db_name}")


class AuthenticationError(HTTPException):
    """Raised when authentication fails."""

    def __init__(self, detail: str = AUTH_FAILED_MESSAGE):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class TenantIsolationError(HTTPException):
    """
    Raised when a tenant isolation violation is detected.

    This is a CRITICAL security error and should be logged/alerted on.
    """

    def __init__(self, detail: str = "Tenant isolation violation"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )


class RateLimitExceeded(HTTPException):
    """Raised when rate limit is exceeded."""

    def __init__(self, retry_after: int = 60):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Please try again later.",
            headers={"Retry-After": str(retry_after)}
        )
