# cores/responses.py
import logging

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .outcomes import ErrorKind

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ELIGIBILITY: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def respond_with_template(success, data=None, message=None, status_code=status.HTTP_200_OK):
    """Every endpoint answers with the same envelope: {success, data, message?}."""
    body = {
        "success": success,
        "data": [] if data is None else data,
    }
    if message:
        body["message"] = str(message)
    return Response(body, status=status_code)


def respond_with_outcome(outcome, success_status=status.HTTP_200_OK):
    if outcome.ok:
        return respond_with_template(True, outcome.data, outcome.message, success_status)
    return respond_with_template(False, [], outcome.detail, ERROR_STATUS[outcome.kind])


def respond_with_failure(exc):
    """Flatten an unexpected exception into a failure envelope."""
    return respond_with_template(False, [], str(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)


def _first_message(detail):
    if isinstance(detail, dict):
        for value in detail.values():
            return _first_message(value)
        return ""
    if isinstance(detail, list):
        return _first_message(detail[0]) if detail else ""
    return str(detail)


def envelope_exception_handler(exc, context):
    """
    Wraps DRF errors (validation, authentication, permission, 404) in the
    envelope. Anything DRF does not know about is left to propagate.
    """
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, exceptions.ValidationError):
        data = response.data
        message = _first_message(response.data)
    else:
        data = []
        message = _first_message(response.data)

    view = context.get("view")
    logger.info(
        f"{exc.__class__.__name__} in {view.__class__.__name__ if view else 'view'}: {message}"
    )
    response.data = {"success": False, "data": data, "message": message}
    return response
