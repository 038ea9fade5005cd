"""Error taxonomy shared by the domain services and the API layer."""

from __future__ import annotations


class FirmwatchError(Exception):
    """Base error for Firmwatch.

    ``code`` is the stable identifier returned to API callers and
    ``status_code`` the HTTP status it maps to.
    """

    code = "FIRMWATCH_ERROR"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.code

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class ValidationError(FirmwatchError):
    """Malformed deadline value or unrecognized entity type/rule field."""

    code = "VALIDATION_ERROR"
    status_code = 422


class AuthorizationError(FirmwatchError):
    """Scope or capability violation."""

    code = "FORBIDDEN"
    status_code = 403

    def __init__(
        self,
        message: str = "",
        *,
        action: str | None = None,
        firm_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.action = action
        self.firm_id = firm_id


class NotFoundError(FirmwatchError):
    """Unknown alert, entity or user id."""

    code = "NOT_FOUND"
    status_code = 404


class InvalidTransition(FirmwatchError):
    """Requested alert status change is not allowed from the current status."""

    code = "INVALID_TRANSITION"
    status_code = 409


class DedupConflict(FirmwatchError):
    """Two writers raced to insert a live alert for the same dedup key."""

    code = "DEDUP_CONFLICT"
    status_code = 409


class ScanPartialFailure(FirmwatchError):
    """Fetching or evaluating one entity type failed during a scan."""

    code = "SCAN_PARTIAL_FAILURE"

    def __init__(self, entity_type: str, cause: BaseException) -> None:
        super().__init__(f"{entity_type}: {cause}")
        self.entity_type = entity_type
        self.cause = cause
