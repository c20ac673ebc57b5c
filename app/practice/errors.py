"""
Error taxonomy for the access core.

HTTP-facing errors subclass werkzeug's HTTPException so that `abort`-style
raising and Flask's error handlers work unchanged. Messages are fixed and
generic: nothing about the dependency graph or other tenants leaks out.
"""
from __future__ import annotations

from werkzeug.exceptions import Forbidden, NotFound, Unauthorized


class AuthenticationMissing(Unauthorized):
    description = "Authentication required"


class ScopeMissing(AuthenticationMissing):
    """A scoped route was reached without a tenant scope attached."""


class AuthorizationDenied(Forbidden):
    description = "Insufficient module access"


class ScopeViolation(NotFound):
    """Cross-tenant record access; reported exactly like a missing record."""

    description = "Not found"


class DateParseFailure(ValueError):
    pass


class TimezoneDetectionFailure(RuntimeError):
    pass
