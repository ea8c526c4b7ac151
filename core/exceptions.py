import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from .errors import SchedulingError

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    """Render scheduling errors with their kind; defer everything else to DRF."""
    if isinstance(exc, SchedulingError):
        view = context.get("view")
        logger.info(
            "%s rejected with %s: %s",
            view.__class__.__name__ if view is not None else "request",
            exc.kind,
            exc.message,
        )
        return Response(exc.as_dict(), status=exc.status_code)
    return exception_handler(exc, context)
