"""
Project-wide fixtures: users, clients and test-mode switches.
"""

import secrets
import string
import typing as t
from datetime import datetime, time, timedelta

import faker
import pytest
from django.core.cache import cache
from django.test.client import Client
from django.utils import timezone
from ninja_jwt.tokens import RefreshToken

from accounts.models import BoxOfficeUser


@pytest.fixture(autouse=True)
def enable_celery_eager_mode(settings: t.Any) -> None:
    """Enable Celery eager mode for tests so tasks execute synchronously.

    This ensures that Celery tasks run immediately in the same process,
    allowing tests to verify their side effects without async complications.
    """
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True


@pytest.fixture(autouse=True)
def use_test_signing_key(settings: t.Any) -> None:
    settings.QR_SIGNING_KEY = "test-qr-signing-key"


@pytest.fixture(autouse=True)
def use_locmem_email(settings: t.Any) -> None:
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"


@pytest.fixture(autouse=True)
def clear_cache() -> None:
    """Throttle counters live in the cache; start every test with a clean slate."""
    cache.clear()


class BoxOfficeUserFactory:
    """Factory for creating BoxOfficeUser instances for testing."""

    fake = faker.Faker()

    def create_user(self, **kwargs: t.Any) -> BoxOfficeUser:
        username = kwargs.pop(
            "username", "".join(secrets.choice(string.ascii_lowercase) for _ in range(8)) + "@user.test"
        )
        email = kwargs.pop("email", username + ("@test.com" if "@" not in username else ""))
        password = kwargs.pop("password", "password")
        first_name = kwargs.pop("first_name", self.fake.first_name())
        last_name = kwargs.pop("last_name", self.fake.last_name())
        phone_number = kwargs.pop("phone_number", "+94 77 123 4567")
        return BoxOfficeUser.objects.create_user(
            username=username,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            phone_number=phone_number,
            **kwargs,
        )

    def __call__(self, **kwargs: t.Any) -> BoxOfficeUser:
        return self.create_user(**kwargs)


@pytest.fixture
def user_factory() -> BoxOfficeUserFactory:
    return BoxOfficeUserFactory()


@pytest.fixture
def buyer(user_factory: BoxOfficeUserFactory) -> BoxOfficeUser:
    return user_factory()


@pytest.fixture
def other_buyer(user_factory: BoxOfficeUserFactory) -> BoxOfficeUser:
    return user_factory()


@pytest.fixture
def organizer(user_factory: BoxOfficeUserFactory) -> BoxOfficeUser:
    return user_factory(role=BoxOfficeUser.Role.ORGANIZER)


@pytest.fixture
def other_organizer(user_factory: BoxOfficeUserFactory) -> BoxOfficeUser:
    return user_factory(role=BoxOfficeUser.Role.ORGANIZER)


@pytest.fixture
def admin_user(user_factory: BoxOfficeUserFactory) -> BoxOfficeUser:
    return user_factory(role=BoxOfficeUser.Role.ADMIN)


@pytest.fixture
def superuser(django_user_model: t.Type[BoxOfficeUser]) -> BoxOfficeUser:
    """A superuser."""
    return django_user_model.objects.create_superuser(username="super", email="super@example.com", password="pass")


def _client_for(user: BoxOfficeUser) -> Client:
    refresh = RefreshToken.for_user(user)
    return Client(HTTP_AUTHORIZATION=f"Bearer {str(refresh.access_token)}")  # type: ignore[attr-defined]


@pytest.fixture
def buyer_client(buyer: BoxOfficeUser) -> Client:
    """API client for the buyer."""
    return _client_for(buyer)


@pytest.fixture
def other_buyer_client(other_buyer: BoxOfficeUser) -> Client:
    return _client_for(other_buyer)


@pytest.fixture
def organizer_client(organizer: BoxOfficeUser) -> Client:
    """API client for the organizer of the test event."""
    return _client_for(organizer)


@pytest.fixture
def other_organizer_client(other_organizer: BoxOfficeUser) -> Client:
    return _client_for(other_organizer)


@pytest.fixture
def admin_client_jwt(admin_user: BoxOfficeUser) -> Client:
    """API client for an admin."""
    return _client_for(admin_user)


@pytest.fixture
def next_week() -> datetime:
    today = timezone.now()
    same_time_next_week = today + timedelta(days=7)
    noon = time(hour=12, minute=0)
    return timezone.make_aware(
        datetime.combine(same_time_next_week.date(), noon),
        timezone.get_current_timezone(),
    )
