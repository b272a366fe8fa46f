"""
Token authentication for WebSocket connections.

Browsers reuse the session cookie (``AuthMiddlewareStack``); other
clients pass ``?token=<key>`` with the same DRF token used for the REST
API.  A valid token replaces an anonymous session user in the scope.
"""
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from rest_framework.exceptions import AuthenticationFailed

from records.authentication import TokenAuthentication


@database_sync_to_async
def _user_for_token(key):
    try:
        user, _ = TokenAuthentication().authenticate_credentials(key)
    except AuthenticationFailed:
        return None
    return user


class TokenAuthMiddleware:
    def __init__(self, inner):
        self.inner = inner

    async def __call__(self, scope, receive, send):
        qs = parse_qs((scope.get("query_string") or b"").decode())
        key = (qs.get("token") or [None])[0]
        current = scope.get("user")
        if key and not (current and current.is_authenticated):
            user = await _user_for_token(key)
            if user is not None:
                scope = dict(scope, user=user)
        return await self.inner(scope, receive, send)
