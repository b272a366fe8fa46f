import logging

from django.http import JsonResponse
from rest_framework.exceptions import AuthenticationFailed, NotAuthenticated
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


def _error_code(exc, default):
    detail = getattr(exc, 'detail', None)
    code = getattr(detail, 'code', None)
    if isinstance(code, str) and code not in ('invalid', 'error'):
        return code
    return getattr(exc, 'default_code', None) or default


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view')
        logger.exception('unhandled error in %s', type(view).__name__ if view else 'api')
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    # normalize response
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    if isinstance(exc, (NotAuthenticated, AuthenticationFailed)):
        code = 'not_authenticated'
    elif resp.status_code == 400:
        code = 'validation_error'
    else:
        code = _error_code(exc, 'api_error')
    logger.info('api error %s (%s): %s', resp.status_code, code, detail)
    return Response({'ok': False, 'error': {'code': code, 'message': detail}}, status=resp.status_code, headers=_auth_headers(resp))


def _auth_headers(resp):
    header = resp.get('WWW-Authenticate')
    return {'WWW-Authenticate': header} if header else None


def not_found(request, exception=None):
    return JsonResponse(
        {'ok': False, 'error': {'code': 'not_found', 'message': f'no route for {request.path}'}},
        status=404,
    )
