# apps/core/views.py

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET

from apps import __version__

logger = logging.getLogger(__name__)


@require_GET
def health_check(request):
    """
    Health check for monitoring: database and cache round trip
    """
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')

        cache.set('health_check', 'ok', 60)
        cache_ok = cache.get('health_check') == 'ok'

        return JsonResponse({
            'status': 'healthy' if cache_ok else 'degraded',
            'database': 'ok',
            'cache': 'ok' if cache_ok else 'unavailable',
            'timestamp': timezone.now().isoformat(),
            'version': __version__,
        }, status=200 if cache_ok else 503)

    except DatabaseError as e:
        logger.error(f"❌ Health check failed: {str(e)}")
        return JsonResponse({
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': timezone.now().isoformat(),
            'version': __version__,
        }, status=503)
