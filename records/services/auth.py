"""
Session helpers behind the authentication endpoints.

Sign-in failures are classified into ``invalid_credentials`` and
``email_not_confirmed``; callers receive the code rather than having to
match on message wording.
"""
import logging
from typing import Optional, Tuple

from django.conf import settings
from django.contrib.auth import authenticate, get_user_model
from django.core import signing
from django.core.mail import send_mail
from django.utils import timezone
from rest_framework.authtoken.models import Token
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

logger = logging.getLogger(__name__)

User = get_user_model()

INVALID_CREDENTIALS = 'invalid_credentials'
EMAIL_NOT_CONFIRMED = 'email_not_confirmed'

MESSAGES = {
    INVALID_CREDENTIALS: 'Invalid login credentials',
    EMAIL_NOT_CONFIRMED: 'Email not confirmed',
}

_CONFIRM_SALT = 'records.email-confirmation'


def sign_in(request, email: str, password: str) -> Tuple[Optional[User], Optional[str]]:
    """Return ``(user, None)`` on success or ``(None, error_type)``."""
    email = (email or '').strip().lower()
    user = authenticate(request, username=email, password=password)
    if user is None:
        return None, INVALID_CREDENTIALS
    if not user.email_confirmed:
        return None, EMAIL_NOT_CONFIRMED
    return user, None


def issue_tokens(user) -> dict:
    token_obj, _ = Token.objects.get_or_create(user=user)
    refresh = RefreshToken.for_user(user)
    return {
        'token': token_obj.key,
        'jwt_access': str(refresh.access_token),
        'jwt_refresh': str(refresh),
    }


def sign_out(user, refresh: Optional[str] = None) -> int:
    """Drop the legacy token and blacklist refresh tokens; returns the count blacklisted."""
    Token.objects.filter(user=user).delete()
    if refresh:
        RefreshToken(refresh).blacklist()
        return 1
    count = 0
    for token in OutstandingToken.objects.filter(user=user):
        _, created = BlacklistedToken.objects.get_or_create(token=token)
        count += int(created)
    return count


def make_confirmation_token(user) -> str:
    return signing.dumps({'uid': user.pk, 'email': user.email}, salt=_CONFIRM_SALT)


def send_confirmation(user) -> None:
    token = make_confirmation_token(user)
    link = f"{settings.FRONTEND_URL.rstrip('/')}/confirm?token={token}"
    send_mail(
        subject='Confirm your e-mail address',
        message=f"Follow this link to confirm your account:\n\n{link}\n",
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[user.email],
    )
    logger.info('confirmation e-mail sent to user %s', user.pk)


def resend_confirmation(email: str) -> bool:
    """Send a new confirmation link when the address belongs to an unconfirmed user."""
    user = User.objects.filter(email__iexact=(email or '').strip()).first()
    if user is None or user.email_confirmed:
        return False
    send_confirmation(user)
    return True


def confirm_email(token: str) -> User:
    """Mark the address in ``token`` confirmed; raises ``signing.BadSignature`` when invalid or expired."""
    data = signing.loads(token, salt=_CONFIRM_SALT, max_age=settings.EMAIL_CONFIRMATION_MAX_AGE)
    user = User.objects.filter(pk=data.get('uid'), email=data.get('email')).first()
    if user is None:
        raise signing.BadSignature('unknown user')
    if not user.email_confirmed:
        user.email_confirmed_at = timezone.now()
        user.save(update_fields=['email_confirmed_at'])
    return user
