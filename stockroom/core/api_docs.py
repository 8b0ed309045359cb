from stockroom.schemas.common import ErrorOut


_STATUS_DEFAULTS: dict[int, tuple[str, str]] = {
    400: ("branch_not_found", "Submission rejected by a business rule"),
    404: ("not_found", "Resource not found"),
    409: ("already_voided", "Conflicts with the current stock or catalog state"),
    422: ("validation_error", "Request body or query failed validation"),
    500: ("internal_error", "Internal server error"),
}


def error_responses(*status_codes: int, reasons: dict[int, list[str]] | None = None) -> dict[int, dict]:
    """OpenAPI `responses` entries using the shared error envelope.

    `reasons` lists the `error.code` values a route can return per status; the
    first one becomes the example.
    """
    reasons = reasons or {}
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        default_code, message = _STATUS_DEFAULTS.get(status_code, ("http_error", "HTTP error"))
        codes = reasons.get(status_code) or [default_code]
        description = message
        if status_code in reasons:
            description = f"{message}. Possible codes: {', '.join(f'`{code}`' for code in codes)}"
        responses[status_code] = {
            "model": ErrorOut,
            "description": description,
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": codes[0],
                            "message": message,
                            "request_id": "request-id",
                            "path": "/transactions/transfers",
                            "details": None,
                        }
                    }
                }
            },
        }
    return responses
