"""Domain exceptions for Safe Transfer.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
"""

from __future__ import annotations


class SafeTransferError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "SAFE_TRANSFER_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Input Errors ---


class ValidationError(SafeTransferError):
    """Raised when input is malformed or missing.

    Carries one ``{"field": ..., "message": ...}`` entry per offending field.
    """

    def __init__(self, errors: list[dict[str, str]], message: str = "Validation failed") -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")
        self.errors = errors

    @classmethod
    def for_field(cls, field: str, message: str) -> ValidationError:
        return cls([{"field": field, "message": message}], message=message)

    @property
    def fields(self) -> list[str]:
        return [err["field"] for err in self.errors]


class PreconditionError(SafeTransferError):
    """Raised when an operation is attempted before its prerequisites exist.

    Example: submitting KYC before PAN and Aadhaar are on file.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="PRECONDITION_FAILED")


# --- Access Errors ---


class AuthorizationError(SafeTransferError):
    """Raised when the caller is not a party, not an admin, or not eligible."""

    def __init__(self, message: str = "Not authorized to perform this action") -> None:
        super().__init__(message=message, code="NOT_AUTHORIZED")


# --- State Errors ---


class InvalidStateError(SafeTransferError):
    """Raised when an operation is not legal for the deal's current status.

    Example: cancelling a completed deal.
    """

    def __init__(self, current_state: str, attempted: str, message: str | None = None) -> None:
        super().__init__(
            message=message or f"Cannot {attempted} while deal is {current_state}",
            code="INVALID_STATE",
        )
        self.current_state = current_state
        self.attempted = attempted


class WorkflowInconsistencyError(SafeTransferError):
    """Raised when a transition would break workflow step ordering.

    This signals a bug in a command handler, never bad user input.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="WORKFLOW_INCONSISTENCY")


class ConcurrentModificationError(SafeTransferError):
    """Raised when a row was updated by someone else since it was read."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            message=f"{entity} {entity_id} was modified concurrently, retry the request",
            code="CONCURRENT_MODIFICATION",
        )
        self.entity = entity
        self.entity_id = entity_id


# --- Lookup Errors ---


class NotFoundError(SafeTransferError):
    """Raised when an entity id does not resolve."""

    def __init__(self, message: str, code: str = "NOT_FOUND") -> None:
        super().__init__(message=message, code=code)


class DealNotFoundError(NotFoundError):
    def __init__(self, deal_id: str) -> None:
        super().__init__(message=f"Deal not found: {deal_id}", code="DEAL_NOT_FOUND")
        self.deal_id = deal_id


class KycNotFoundError(NotFoundError):
    def __init__(self, key: str) -> None:
        super().__init__(message=f"KYC record not found: {key}", code="KYC_NOT_FOUND")
        self.key = key


class PartyNotFoundError(NotFoundError):
    def __init__(self, party_id: str) -> None:
        super().__init__(message=f"Party not found: {party_id}", code="PARTY_NOT_FOUND")
        self.party_id = party_id


# --- Collaborator Errors ---


class ExternalServiceError(SafeTransferError):
    """Raised when a collaborator (payments, SMS, file storage) fails.

    Notification and file-cleanup failures are logged and dropped; they
    never fail a transition.
    """

    def __init__(self, message: str, code: str = "EXTERNAL_SERVICE_ERROR") -> None:
        super().__init__(message=message, code=code)


class NotificationError(ExternalServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="NOTIFICATION_ERROR")


class FileStoreError(ExternalServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="FILE_STORE_ERROR")
