"""Shared error types."""

from __future__ import annotations


class BtaError(Exception):
    """Base class for errors surfaced to the operator."""


class AuthenticationError(BtaError):
    """Raised when a token cannot be acquired for a tenant or scope."""

    def __init__(self, message: str, *, tenant_id: str | None = None, scope: str | None = None) -> None:
        self.tenant_id = tenant_id
        self.scope = scope
        super().__init__(message)


class ApiRequestError(BtaError):
    """Raised when an Azure REST call returns a non-success status."""

    service = "API"

    def __init__(
        self,
        status_code: int,
        *,
        method: str,
        url: str,
        code: str | None = None,
        message: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.method = method
        self.url = url
        self.code = code
        self.message = message
        detail = f"{code}: {message}" if code and message else (message or code or "No additional details were returned.")
        super().__init__(f"{self.service} request failed: {status_code} for {method} {url}. {detail}")

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409


class ArmRequestError(ApiRequestError):
    """Raised for Azure Resource Manager failures."""

    service = "ARM"


class GraphRequestError(ApiRequestError):
    """Raised for Microsoft Graph failures."""

    service = "Graph"


class TransportError(BtaError):
    """Raised when a remote endpoint cannot be reached at all."""

    def __init__(self, service: str, *, method: str, url: str, detail: str) -> None:
        self.service = service
        self.method = method
        self.url = url
        super().__init__(f"Unable to contact {service} for {method} {url}: {detail}")


class LongRunningOperationError(BtaError):
    """Raised when an ARM long-running operation fails or times out."""

    def __init__(self, url: str, *, status: str, detail: str | None = None) -> None:
        self.url = url
        self.status = status
        self.detail = detail
        msg = f"Long-running operation ended with status '{status}' ({url})"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class InvalidScopeError(BtaError, ValueError):
    """Raised when an ARM scope string is blank or malformed."""


class RoleNotFoundError(BtaError):
    """Raised when a role definition name does not exist in a subscription."""

    def __init__(self, role_name: str, *, subscription: str) -> None:
        self.role_name = role_name
        self.subscription = subscription
        super().__init__(f"Role definition '{role_name}' was not found in subscription '{subscription}'.")


class SqlExecutionError(BtaError):
    """Raised when a database statement or connection fails."""

    def __init__(self, message: str, *, statement: str | None = None) -> None:
        self.statement = statement
        super().__init__(message)


class GrantStateError(BtaError):
    """Raised when a grant transition is not permitted."""


class LookupFailedError(BtaError):
    """Raised when a named tenant, subscription, server, database, principal or resource cannot be found."""

    def __init__(self, kind: str, name: str, *, detail: str | None = None) -> None:
        self.kind = kind
        self.name = name
        msg = f"{kind} '{name}' was not found"
        if detail:
            msg = f"{msg} {detail}"
        super().__init__(f"{msg}.")


class PagingLimitError(BtaError):
    """Raised when a listing keeps returning next links past the page limit."""

    def __init__(self, service: str, *, url: str, pages: int) -> None:
        self.service = service
        self.url = url
        self.pages = pages
        super().__init__(f"{service} listing {url} did not finish within {pages} pages.")


__all__ = [
    "ApiRequestError",
    "ArmRequestError",
    "AuthenticationError",
    "BtaError",
    "GrantStateError",
    "GraphRequestError",
    "InvalidScopeError",
    "LongRunningOperationError",
    "LookupFailedError",
    "PagingLimitError",
    "RoleNotFoundError",
    "SqlExecutionError",
    "TransportError",
]
