"""
Session endpoints: sign-in, sign-out, token refresh, current session
and e-mail confirmation.

Failed sign-ins answer with a structured ``error.code`` of
``invalid_credentials`` (401) or ``email_not_confirmed`` (403) so
clients never have to parse message text.
"""
from __future__ import annotations

import logging

from django.core import signing
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer

from records.serializers.auth import (
    ConfirmEmailSerializer,
    LoginSerializer,
    LogoutSerializer,
    ResendConfirmationSerializer,
)
from records.services import auth as auth_service
from records.services.audit import log_action

logger = logging.getLogger(__name__)

FAILURE_STATUS = {
    auth_service.INVALID_CREDENTIALS: 401,
    auth_service.EMAIL_NOT_CONFIRMED: 403,
}


def user_payload(user) -> dict:
    return {
        'id': user.id,
        'email': user.email,
        'name': user.get_full_name() or user.username,
        'emailConfirmed': user.email_confirmed,
    }


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([ScopedRateThrottle])
def login_view(request):
    """Password sign-in returning a DRF token, a JWT pair and the user."""
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    email = s.validated_data['email']

    user, error_type = auth_service.sign_in(request, email, s.validated_data['password'])
    if user is None:
        logger.info('sign-in failed for %s: %s', email, error_type)
        log_action(user=None, action='login', object_type='user',
                   detail={'result': error_type, 'email': email, 'ip': request.META.get('REMOTE_ADDR')})
        return Response(
            {'ok': False, 'error': {'code': error_type, 'message': auth_service.MESSAGES[error_type]}},
            status=FAILURE_STATUS[error_type],
        )

    log_action(user=user, action='login', object_type='user', object_id=user.id,
               detail={'result': 'ok', 'ip': request.META.get('REMOTE_ADDR')})
    return Response({'ok': True, **auth_service.issue_tokens(user), 'user': user_payload(user)})

login_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    """Delete the API token and blacklist refresh tokens (one, or all of the user's)."""
    s = LogoutSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    try:
        count = auth_service.sign_out(request.user, s.validated_data.get('refresh') or None)
    except TokenError as exc:
        return Response({'ok': False, 'error': {'code': 'invalid_token', 'message': str(exc)}}, status=400)
    return Response({'ok': True, 'blacklisted': count})


@api_view(['POST'])
@permission_classes([AllowAny])
def refresh_view(request):
    """Return a new access token from a refresh token."""
    s = TokenRefreshSerializer(data=request.data)
    try:
        s.is_valid(raise_exception=True)
    except TokenError as exc:
        return Response({'ok': False, 'error': {'code': 'invalid_token', 'message': str(exc)}}, status=401)
    payload = {'ok': True, 'jwt_access': s.validated_data['access']}
    if 'refresh' in s.validated_data:
        payload['jwt_refresh'] = s.validated_data['refresh']
    return Response(payload)


@api_view(['GET'])
def session_view(request):
    return Response({'ok': True, 'user': user_payload(request.user)})


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([ScopedRateThrottle])
def resend_confirmation_view(request):
    """Re-send the confirmation link; the answer never reveals whether the address exists."""
    s = ResendConfirmationSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    auth_service.resend_confirmation(s.validated_data['email'])
    return Response({'ok': True})

resend_confirmation_view.cls.throttle_scope = 'resend_confirmation'


@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def confirm_email_view(request):
    s = ConfirmEmailSerializer(data=request.data if request.method == 'POST' else request.query_params)
    s.is_valid(raise_exception=True)
    try:
        user = auth_service.confirm_email(s.validated_data['token'])
    except signing.BadSignature:
        return Response({'ok': False, 'error': {'code': 'invalid_token', 'message': 'Confirmation link is invalid or expired'}},
                        status=400)
    return Response({'ok': True, 'user': user_payload(user)})
