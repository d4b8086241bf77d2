from app.core.errors import CRMError
from app.schemas.common import ErrorOut

# Statuses raised by the framework or by HTTPException rather than a CRMError.
_HTTP_EXAMPLES: dict[int, tuple[str, str]] = {
    400: ("bad_request", "Invalid request payload"),
    401: ("unauthorized", "Not authenticated"),
    404: ("not_found", "Resource not found"),
    409: ("conflict", "Conflict"),
    422: ("validation_error", "Validation failed"),
    429: ("rate_limited", "Too many requests, please try again later."),
    500: ("internal_error", "Internal server error"),
    503: ("dependency_unavailable", "Dependency unavailable"),
}


def _example(code: str, message: str) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "request_id": "request-id",
            "path": "/example",
            "details": None,
        }
    }


def error_responses(*errors: int | type[CRMError]) -> dict[int, dict]:
    """Build the `responses=` mapping for a route.

    Accepts bare status codes and CRMError subclasses. A subclass documents
    its own code and default message; several subclasses sharing a status are
    listed as named examples.
    """
    grouped: dict[int, list[tuple[str, str, str]]] = {}
    for error in errors:
        if isinstance(error, int):
            code, message = _HTTP_EXAMPLES.get(error, ("http_error", "HTTP error"))
            grouped.setdefault(error, []).append((code, code, message))
        else:
            grouped.setdefault(error.status_code, []).append(
                (error.__name__, error.code, error.default_message())
            )

    responses: dict[int, dict] = {}
    for status_code, entries in grouped.items():
        if len(entries) == 1:
            _, code, message = entries[0]
            content = {"example": _example(code, message)}
            description = message
        else:
            content = {
                "examples": {
                    name: {"summary": message, "value": _example(code, message)}
                    for name, code, message in entries
                }
            }
            description = " / ".join(message for _, _, message in entries)
        responses[status_code] = {
            "model": ErrorOut,
            "description": description,
            "content": {"application/json": content},
        }
    return responses
