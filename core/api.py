import logging

from rest_framework import status
from rest_framework.exceptions import NotFound
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .exceptions import ConflictError, DomainError, InvalidStateError, PersistenceError, ValidationError
from .utils import get_current_business

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(exc: DomainError) -> int:
    for error_class, code in STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            return code
    return status.HTTP_400_BAD_REQUEST


def exception_handler(exc, context):
    """DRF exception handler that renders domain errors as structured JSON."""
    if isinstance(exc, DomainError):
        code = status_for(exc)
        if code >= 500:
            logger.error("Storage failure in %s: %s", context.get("view").__class__.__name__, exc.detail)
        return Response(exc.as_dict(), status=code)
    return drf_exception_handler(exc, context)


def require_business(request):
    business = get_current_business(request.user)
    if business is None:
        raise NotFound("No business is set up for this user.")
    return business
