"""
WSGI config for the medboard records service.

Exposes the WSGI callable as a module-level variable named
``application``.  Use ``medboard.asgi`` instead when the realtime
change feed (WebSocket) is needed.
"""
import os

from django.core.wsgi import get_wsgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'medboard.settings')

application = get_wsgi_application()
