from fastapi import HTTPException, status

from bakery_ops.errors import BadRequestError, ForbiddenError, NotFoundError

DOMAIN_ERRORS = (NotFoundError, ForbiddenError, BadRequestError)


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
