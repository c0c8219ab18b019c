"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
"""
import pytest
from datetime import date
from django.contrib.auth.hashers import make_password
from django.test import Client

import factory
from portal.auth import reset_auth_provider
from portal.auth.adapters import JwtAuthAdapter, to_identity
from portal.benefits import reset_benefits_investigator
from portal.context import RequestContext
from portal.events import reset_event_bus
from portal.models import (
    Enrollment,
    MessageThread,
    Patient,
    Program,
    Provider,
    ProviderAffiliation,
    User,
)
from portal.notifications import reset_notifier
from portal.storage import reset_file_storage

DEFAULT_PASSWORD = 'password123'


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = User

    email = factory.Sequence(lambda n: f'user{n}@clinic.test')
    password_hash = factory.LazyFunction(lambda: make_password(DEFAULT_PASSWORD))
    first_name = 'Jane'
    last_name = 'Office'
    roles = factory.LazyFunction(lambda: ['OFFICE_STAFF'])


class ProgramFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Program

    name = factory.Sequence(lambda n: f'Support Program {n}')
    description = 'Patient support program'
    active = True


class ProviderFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Provider

    npi = factory.Sequence(lambda n: f'{1000000000 + n}')
    name = 'Dr. Smith'
    specialty = 'Rheumatology'
    state = 'CA'


class AffiliationFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ProviderAffiliation

    user = factory.SubFactory(UserFactory)
    provider = factory.SubFactory(ProviderFactory)
    status = 'PENDING'


class PatientFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Patient

    reference_id = factory.Sequence(lambda n: f'PT{n + 1:06d}')
    first_name = 'John'
    last_name = 'Doe'
    date_of_birth = date(1980, 1, 15)
    state = 'CA'
    created_by = factory.SubFactory(UserFactory)


class EnrollmentFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Enrollment

    patient = factory.SubFactory(PatientFactory)
    program = factory.SubFactory(ProgramFactory)
    status = 'DRAFT'
    medication_name = 'Humira'
    created_by = factory.SubFactory(UserFactory)


class ThreadFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = MessageThread

    subject = 'Prior auth question'
    created_by = factory.SubFactory(UserFactory)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def ctx_for(user, **kwargs):
    """ORM User → 带 Identity 的 RequestContext。"""
    kwargs.setdefault('correlation_id', 'test-correlation-id')
    kwargs.setdefault('ip_address', '10.0.0.1')
    return RequestContext(user=to_identity(user), **kwargs)


def auth_header(user):
    return {'HTTP_AUTHORIZATION': f'Bearer {JwtAuthAdapter().issue_token(user)}'}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def isolated_adapters(settings, tmp_path):
    """每个测试都用新的 adapter 实例和独立的存储目录。"""
    settings.PORTAL_LOCAL_STORAGE_ROOT = str(tmp_path / 'storage')
    resets = (
        reset_auth_provider,
        reset_file_storage,
        reset_benefits_investigator,
        reset_event_bus,
        reset_notifier,
    )
    for reset in resets:
        reset()
    yield
    for reset in resets:
        reset()


@pytest.fixture
def api_client():
    """Django test client for integration tests."""
    return Client()


@pytest.fixture
def staff_user():
    """OFFICE_STAFF，已有一个 APPROVED affiliation。"""
    user = UserFactory()
    AffiliationFactory(user=user, status='APPROVED')
    return user


@pytest.fixture
def admin_user():
    return UserFactory(email='admin@portal.test', first_name='Ada', last_name='Admin', roles=['ADMIN'])


@pytest.fixture
def staff_ctx(staff_user):
    return ctx_for(staff_user)


@pytest.fixture
def admin_ctx(admin_user):
    return ctx_for(admin_user)


@pytest.fixture
def sample_patient_payload():
    """Minimal valid payload for POST /api/v1/patients."""
    return {
        'first_name': 'Alice',
        'last_name': 'Wang',
        'date_of_birth': '1985-03-20',
        'state': 'NY',
        'email': 'alice@example.com',
    }
