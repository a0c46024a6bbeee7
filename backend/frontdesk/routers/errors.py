"""
Maps front-desk errors to HTTP responses
"""
from fastapi import HTTPException

from frontdesk.errors import ErrorCategory, FrontDeskError

STATUS_FOR_CATEGORY = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.STATE_CONFLICT: 409,
    ErrorCategory.INVARIANT_VIOLATION: 422,
    ErrorCategory.AUTHORIZATION: 403,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.TRANSACTION_ABORTED: 503,
}


def http_error(exc: FrontDeskError) -> HTTPException:
    return HTTPException(
        status_code=STATUS_FOR_CATEGORY.get(exc.category, 400),
        detail=exc.to_dict()
    )
