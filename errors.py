"""Error taxonomy shared by services and API routes."""
from __future__ import annotations


class AppError(Exception):
    """Base error carrying an HTTP status and a stable machine-readable code."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationFailure(AppError):
    """Client input or a business rule rejected the request; nothing was written."""

    status_code = 400
    code = "VALIDATION_FAILED"


class NotEligible(ValidationFailure):
    code = "NOT_ELIGIBLE"


class ConflictingActiveRequest(ValidationFailure):
    status_code = 409
    code = "ACTIVE_REQUEST_EXISTS"

    def __init__(
        self,
        message: str = "You already have an active funding request. Please close it before creating a new one.",
    ) -> None:
        super().__init__(message)


class NotFound(ValidationFailure):
    status_code = 404
    code = "NOT_FOUND"


class FounderNotFound(NotFound):
    code = "FOUNDER_NOT_FOUND"

    def __init__(self, message: str = "Founder profile not found") -> None:
        super().__init__(message)


class AccessDenied(ValidationFailure):
    status_code = 403
    code = "ACCESS_DENIED"


class ResolutionFailure(AppError):
    """Outreach could not find anyone or anything to send."""

    status_code = 422
    code = "RESOLUTION_FAILED"


class NoValidInvestors(ResolutionFailure):
    code = "NO_VALID_INVESTORS"

    def __init__(self, message: str = "No valid investor IDs found in database") -> None:
        super().__init__(message)


class NoContactableInvestors(ResolutionFailure):
    code = "NO_CONTACTABLE_INVESTORS"

    def __init__(self, message: str = "No contactable investors found from the provided IDs") -> None:
        super().__init__(message)


class NoDocumentsAvailable(ResolutionFailure):
    code = "NO_DOCUMENTS"

    def __init__(self, message: str = "No pitch deck documents available to send to investors") -> None:
        super().__init__(message)


class PersistenceFailure(AppError):
    status_code = 500
    code = "PERSISTENCE_FAILED"


class MatchPersistenceError(PersistenceFailure):
    code = "MATCH_PERSISTENCE_FAILED"


class DispatchFailure(AppError):
    status_code = 502
    code = "DISPATCH_FAILED"
