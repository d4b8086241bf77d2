"""Domain errors raised by services and rendered by the API error handlers."""


class CRMError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    @classmethod
    def default_message(cls) -> str:
        return "Internal server error"


class ValidationError(CRMError):
    """Malformed or missing input. Reported to the caller, never retried."""

    status_code = 400
    code = "bad_request"

    @classmethod
    def default_message(cls) -> str:
        return "Invalid request payload"


class NotFoundError(CRMError):
    status_code = 404
    code = "not_found"

    @classmethod
    def default_message(cls) -> str:
        return "Resource not found"


class CustomerNotFound(NotFoundError):
    @classmethod
    def default_message(cls) -> str:
        return "Customer not found. Ingest customer first."


class SegmentNotFound(NotFoundError):
    @classmethod
    def default_message(cls) -> str:
        return "Segment not found"


class CampaignNotFound(NotFoundError):
    @classmethod
    def default_message(cls) -> str:
        return "Campaign not found"


class IngestionJobNotFound(NotFoundError):
    @classmethod
    def default_message(cls) -> str:
        return "Ingestion job not found"


class ConflictError(CRMError):
    status_code = 409
    code = "conflict"

    @classmethod
    def default_message(cls) -> str:
        return "Conflict"


class CampaignAlreadyDispatched(ConflictError):
    @classmethod
    def default_message(cls) -> str:
        return "Campaign has already been dispatched"


class DependencyUnavailable(CRMError):
    """An optional collaborator (queue, AI vendor) is down.

    Callers with a synchronous or canned fallback catch this and degrade.
    """

    status_code = 503
    code = "dependency_unavailable"

    @classmethod
    def default_message(cls) -> str:
        return "Dependency unavailable"


class StorageError(CRMError):
    status_code = 500
    code = "storage_error"

    @classmethod
    def default_message(cls) -> str:
        return "Failed to persist changes"
