import pytest
from django.core import mail
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken

from records.models import AuditEvent
from records.services.auth import make_confirmation_token

from .conftest import PASSWORD

pytestmark = pytest.mark.django_db


def login(client, email, password=PASSWORD):
    return client.post('/api/auth/login', {'email': email, 'password': password}, format='json')


def test_login_returns_tokens_and_user(anon, staff):
    r = login(anon, 'Staff@Example.com')
    assert r.status_code == 200
    assert r.data['ok'] is True
    assert r.data['token'] and r.data['jwt_access'] and r.data['jwt_refresh']
    assert r.data['user']['email'] == 'staff@example.com'
    assert AuditEvent.objects.filter(action='login', user=staff).exists()


def test_login_wrong_password_is_invalid_credentials(anon, staff):
    r = login(anon, 'staff@example.com', 'not-the-password')
    assert r.status_code == 401
    assert r.data['error']['code'] == 'invalid_credentials'
    assert r.data['error']['message'] == 'Invalid login credentials'


def test_login_unknown_email(anon, db):
    r = login(anon, 'nobody@example.com')
    assert r.status_code == 401
    assert r.data['error']['code'] == 'invalid_credentials'


def test_login_unconfirmed_email(anon, unconfirmed):
    r = login(anon, 'newbie@example.com')
    assert r.status_code == 403
    assert r.data['error']['code'] == 'email_not_confirmed'
    assert not Token.objects.filter(user=unconfirmed).exists()


def test_login_validation_error(anon, db):
    r = anon.post('/api/auth/login', {'email': 'not-an-email', 'password': 'x'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'validation_error'


def test_session_requires_authentication(anon, api, staff):
    assert anon.get('/api/auth/session').status_code == 401
    r = api.get('/api/auth/session')
    assert r.status_code == 200
    assert r.data['user']['id'] == staff.id


def test_jwt_bearer_authentication(anon, staff):
    tokens = login(anon, 'staff@example.com').data
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['jwt_access']}")
    assert client.get('/api/patients').status_code == 200


def test_logout_blacklists_refresh_and_drops_token(anon, staff):
    tokens = login(anon, 'staff@example.com').data
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Token {tokens['token']}")
    r = client.post('/api/auth/logout', {'refresh': tokens['jwt_refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['blacklisted'] == 1
    assert BlacklistedToken.objects.count() == 1
    assert not Token.objects.filter(user=staff).exists()
    assert client.get('/api/patients').status_code == 401


def test_logout_with_bad_refresh(api):
    r = api.post('/api/auth/logout', {'refresh': 'garbage'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_token'


def test_refresh_issues_new_access_token(anon, staff):
    tokens = login(anon, 'staff@example.com').data
    r = anon.post('/api/auth/refresh', {'refresh': tokens['jwt_refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['jwt_access']


def test_refresh_rejects_invalid_token(anon, db):
    r = anon.post('/api/auth/refresh', {'refresh': 'garbage'}, format='json')
    assert r.status_code == 401
    assert r.data['error']['code'] == 'invalid_token'


def test_resend_confirmation_for_unconfirmed_user(anon, unconfirmed):
    r = anon.post('/api/auth/resend-confirmation', {'email': 'newbie@example.com'}, format='json')
    assert r.status_code == 200 and r.data['ok'] is True
    assert len(mail.outbox) == 1
    assert 'confirm?token=' in mail.outbox[0].body


def test_resend_confirmation_does_not_reveal_accounts(anon, staff):
    for email in ('nobody@example.com', 'staff@example.com'):
        r = anon.post('/api/auth/resend-confirmation', {'email': email}, format='json')
        assert r.status_code == 200 and r.data['ok'] is True
    assert mail.outbox == []


def test_confirm_email_then_login(anon, unconfirmed):
    token = make_confirmation_token(unconfirmed)
    r = anon.get('/api/auth/confirm', {'token': token})
    assert r.status_code == 200
    assert r.data['user']['emailConfirmed'] is True
    unconfirmed.refresh_from_db()
    assert unconfirmed.email_confirmed
    assert login(anon, 'newbie@example.com').status_code == 200


def test_confirm_email_bad_token(anon, db):
    r = anon.get('/api/auth/confirm', {'token': 'tampered'})
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_token'
