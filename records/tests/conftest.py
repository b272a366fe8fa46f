import pytest
from django.core.cache import cache
from django.utils import timezone
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient

from records.models import Patient, User

PASSWORD = 'S3cure-pass!'


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def staff(db):
    return User.objects.create_user(
        username='staff', email='staff@example.com', password=PASSWORD,
        email_confirmed_at=timezone.now(),
    )


@pytest.fixture
def unconfirmed(db):
    return User.objects.create_user(username='newbie', email='newbie@example.com', password=PASSWORD)


@pytest.fixture
def anon():
    return APIClient()


@pytest.fixture
def api(staff):
    client = APIClient()
    token, _ = Token.objects.get_or_create(user=staff)
    client.credentials(HTTP_AUTHORIZATION=f'Token {token.key}')
    return client


@pytest.fixture
def patient(db):
    return Patient.objects.create(name='Jane Doe', age=42, gender='female', contact='555-0101',
                                  email='jane@example.com', address='1 Main Street')
