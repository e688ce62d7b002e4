# apps/core/utils.py

import json
import logging
from functools import wraps

from django.db import DatabaseError
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from .exceptions import LanesError, TransactionFailure, ValidationError

logger = logging.getLogger(__name__)


def success_response(data=None, message=None, status=200):
    """
    Standard success envelope
    {"success": true, "message"?: ..., "data"?: ...}
    """
    payload = {'success': True}
    if message:
        payload['message'] = message
    if data is not None:
        payload['data'] = data
    return JsonResponse(payload, status=status)


def error_response(error):
    """Standard error envelope built from a LanesError"""
    return JsonResponse({'success': False, 'error': error.as_dict()}, status=error.status)


def parse_json_body(request):
    """
    Decodes the JSON body of a request

    An empty body is an empty object; anything that is not a JSON object
    is a ValidationError.
    """
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError('Invalid JSON body', code='INVALID_INPUT')
    if not isinstance(data, dict):
        raise ValidationError('JSON body must be an object', code='INVALID_INPUT')
    return data


def require_int(data, field, minimum=None, required=True):
    """Reads an integer field from a decoded body; floats, numeric strings and booleans are rejected"""
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", code='MISSING_REQUIRED_FIELD')
        return None
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", code='INVALID_POSITION')
    return value


def require_text(data, field, max_length, required=True):
    """Reads a non-empty string field from a decoded body"""
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", code='MISSING_REQUIRED_FIELD')
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string")
    if len(value) > max_length:
        raise ValidationError(f"{field} is too long (max {max_length})")
    return value.strip()


def api_view(methods):
    """
    Decorator for the JSON API

    - rejects methods outside ``methods`` with 405
    - answers 401 for anonymous users
    - converts LanesError and database errors into the error envelope
    """

    def decorator(view_func):
        @csrf_exempt
        @wraps(view_func)
        def wrapped_view(request, *args, **kwargs):
            if request.method not in methods:
                response = JsonResponse(
                    {'success': False, 'error': {'code': 'METHOD_NOT_ALLOWED',
                                                 'message': f'Method {request.method} not allowed'}},
                    status=405
                )
                response['Allow'] = ', '.join(methods)
                return response

            if not request.user.is_authenticated:
                return JsonResponse(
                    {'success': False, 'error': {'code': 'UNAUTHORIZED', 'message': 'Authentication required'}},
                    status=401
                )

            try:
                return view_func(request, *args, **kwargs)
            except LanesError as e:
                if e.status >= 500:
                    logger.error(f"❌ {view_func.__name__}: {e.message}")
                return error_response(e)
            except DatabaseError as e:
                logger.exception(f"❌ Database error in {view_func.__name__}: {e}")
                return error_response(TransactionFailure())
            except Exception as e:
                logger.exception(f"❌ Unexpected error in {view_func.__name__}: {e}")
                return error_response(LanesError())

        return wrapped_view

    return decorator
