"""Translate history errors into DRF responses.

The engine only reports *why* an update was rejected (``ReasonCode``) and
which catalog entry its section uses. The user-facing text lives here.

Enable with::

    REST_FRAMEWORK = {
        'EXCEPTION_HANDLER': 'clinic_backend.history.responses.history_exception_handler',
    }
"""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from clinic_backend.history.exceptions import (
    AuthorizationError,
    HistoryError,
    MalformedDocumentError,
    ShapeMismatchError,
    UnknownSectionError,
)

logger = logging.getLogger(__name__)

MESSAGES = {
    'update': 'Not authorized to update data!',
    'modify': 'Not authorized to modify data!',
    'saved_info': 'Invalid input: Students cannot update saved info.',
    'missing_patient_id': 'Invalid input: Missing patientId.',
    'patient_not_found': 'Patient not found with the provided ID.',
}


def history_not_found_message(field: str) -> str:
    return f'No {field} history found for the provided ID.'


def message_for(key: str) -> str:
    return MESSAGES.get(key, MESSAGES['update'])


def history_error_response(exc: HistoryError) -> Response:
    if isinstance(exc, AuthorizationError):
        body = {'error': message_for(exc.message_key), **exc.to_dict()}
        return Response(body, status=status.HTTP_403_FORBIDDEN)

    if isinstance(exc, ShapeMismatchError):
        body = {'error': MESSAGES['update'], **exc.to_dict()}
        return Response(body, status=status.HTTP_403_FORBIDDEN)

    if isinstance(exc, MalformedDocumentError):
        if exc.field == 'patientId':
            error = MESSAGES['missing_patient_id']
        else:
            error = f'Invalid input: {exc}'
        return Response({'error': error, **exc.to_dict()}, status=status.HTTP_400_BAD_REQUEST)

    if isinstance(exc, UnknownSectionError):
        return Response({'error': str(exc), **exc.to_dict()}, status=status.HTTP_404_NOT_FOUND)

    return Response({'error': str(exc), **exc.to_dict()}, status=status.HTTP_400_BAD_REQUEST)


def history_exception_handler(exc, context):
    """DRF exception handler that knows about ``HistoryError``."""
    if isinstance(exc, HistoryError):
        logger.info('History request failed: %s', exc)
        return history_error_response(exc)
    return exception_handler(exc, context)
