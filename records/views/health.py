import logging

from channels.layers import get_channel_layer
from django.db import DatabaseError, connections
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def healthz(request):
    """Liveness: database round-trip plus channel layer configuration."""
    layer = get_channel_layer()
    try:
        with connections['default'].cursor() as cursor:
            cursor.execute('SELECT 1')
            row = cursor.fetchone()
    except DatabaseError as exc:
        logger.error('health check failed: %s', exc)
        return JsonResponse({'ok': False, 'db': False, 'error': str(exc)}, status=503)
    return JsonResponse({
        'ok': True,
        'db': bool(row and row[0] == 1),
        'channels': type(layer).__name__ if layer else None,
    })
