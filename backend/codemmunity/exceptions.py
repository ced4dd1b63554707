"""
Codemmunity Backend: Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for each failure the core can report.
How:   Each exception carries a client-safe message and an optional context
       dict. Repositories raise them; global handlers registered in main.py
       translate them into JSON error responses exactly once.
Who:   Raised by config, the Connection Manager and repositories; caught by
       the exception handlers in main.py.

Exception Hierarchy:
    CodemmunityError (base)
    ├── ConfigurationError             → fatal at startup
    ├── ValidationError                → 400 Bad Request
    ├── NotFoundError                  → 404 Not Found
    ├── AuthorizationError             → 403 Forbidden
    ├── DatabaseConnectionError        → 503 Service Unavailable
    │   ├── AuthenticationFailedError
    │   ├── DatabaseUnreachableError
    │   ├── CertificateValidationError
    │   └── DatabaseTimeoutError
    ├── DatabaseError                  → 500 Internal Server Error
    └── ThreadIntegrityError           → 500 Internal Server Error
"""

from typing import Any, Dict, Iterable, Optional


class CodemmunityError(Exception):
    """
    Base exception for all Codemmunity application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only where the
                  handler chooses to)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigurationError(CodemmunityError):
    """
    Raised when the process cannot start with the given environment.

    When: Required DB_* variables missing, or USE_SSL=true without a
          certificate bundle. Never raised while serving a request.
    """

    def __init__(
        self,
        message: str = "Invalid configuration",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ValidationError(CodemmunityError):
    """
    Raised when client input fails validation.

    When:  Empty title/body, invalid paging parameters, empty update.
    HTTP:  400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(CodemmunityError):
    """
    Raised when a referenced entity is absent or deleted.

    SQLAlchemy returns None for missing rows; repositories convert that None
    into this exception. Tombstoned comments are reported the same way.
    HTTP:  404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class AuthorizationError(CodemmunityError):
    """
    Raised when the acting user lacks rights on the target.

    The adapter never decides ownership itself; repositories compare the
    actor against the stored author inside the write transaction.
    HTTP:  403 Forbidden
    """

    def __init__(
        self,
        action: str = "modify",
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"You are not allowed to {action} this {resource}"
        ctx = context or {}
        ctx.update({"action": action, "resource": resource})
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


# ══════════════════════════════════════════════════════════════════════════
# Infrastructure Failures
# ══════════════════════════════════════════════════════════════════════════

class DatabaseConnectionError(CodemmunityError):
    """
    The database link failed; not the caller's fault.

    No retries happen inside the service. The error surfaces so an operator
    or supervisor can decide on restart or backoff.
    HTTP:  503 Service Unavailable
    """

    reason = "connection_failed"

    def __init__(
        self,
        message: str = "The database is currently unavailable. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.setdefault("reason", self.reason)
        super().__init__(message=message, context=ctx)


class AuthenticationFailedError(DatabaseConnectionError):
    """The database server rejected the configured credentials."""

    reason = "authentication_failed"


class DatabaseUnreachableError(DatabaseConnectionError):
    """The database host could not be reached or dropped the connection."""

    reason = "unreachable"


class CertificateValidationError(DatabaseConnectionError):
    """The server certificate did not verify against the configured bundle."""

    reason = "certificate_invalid"


class DatabaseTimeoutError(DatabaseConnectionError):
    """Connection acquisition or a statement exceeded its timeout."""

    reason = "timeout"


class DatabaseError(CodemmunityError):
    """
    Raised when a database operation fails for a non-connection reason.

    The message returned to the client is always generic; the driver error
    is kept in `context` for the server log.
    HTTP:  500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ThreadIntegrityError(CodemmunityError):
    """
    Raised when stored comments do not form a tree rooted at their post.

    When:  A comment's parent is missing, belongs to another post, or the
           parent chain loops. Creation-time checks prevent this, so it
           indicates corrupted data.
    HTTP:  500 Internal Server Error
    """

    def __init__(
        self,
        post_id: str,
        comment_ids: Iterable[str],
        context: Optional[Dict[str, Any]] = None,
    ):
        ids = sorted(comment_ids)
        ctx = context or {}
        ctx.update({"post_id": post_id, "comment_ids": ids})
        super().__init__(
            message=f"Comment thread for post '{post_id}' is corrupted",
            context=ctx,
        )
        self.post_id = post_id
        self.comment_ids = ids
