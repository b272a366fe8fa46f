"""
Token authentication for the records API.

Kept in its own module so that Django REST framework can import the
authentication class from settings without pulling in any views.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """DRF token authentication using the ``Token`` keyword.

    Exists to give the settings a stable import path; the realtime
    middleware reuses :meth:`authenticate_credentials` for WebSocket
    connections.
    """

    keyword = 'Token'
