"""
Unit tests for serializer functions.

只检查几个有分支的字段：可空关联、download_count / unread_count 是否出现、分页包装、过期标记。
"""
from datetime import timedelta

import pytest
from django.utils import timezone

from portal.audit import Page
from portal.auth import Identity
from portal.models import BenefitsInvestigation
from portal.serializers import (
    serialize_affiliation,
    serialize_enrollment,
    serialize_identity,
    serialize_investigation,
    serialize_page,
    serialize_patient,
    serialize_program,
    serialize_thread,
)
from tests.conftest import (
    AffiliationFactory,
    EnrollmentFactory,
    PatientFactory,
    ProgramFactory,
    ThreadFactory,
    UserFactory,
)


def test_identity_roles_sorted():
    identity = Identity(id=1, email='a@b.test', roles=frozenset({'SUPPORT_AGENT', 'ADMIN'}))
    assert serialize_identity(identity)['roles'] == ['ADMIN', 'SUPPORT_AGENT']


@pytest.mark.django_db
class TestSerializers:

    def test_page_wrapper(self):
        programs = [ProgramFactory(), ProgramFactory()]
        result = serialize_page(Page(items=programs, total=5, page=1, size=2), serialize_program)

        assert result['total'] == 5
        assert result['total_pages'] == 3
        assert [p['id'] for p in result['items']] == [p.id for p in programs]

    def test_patient_dates_iso(self):
        result = serialize_patient(PatientFactory())
        assert result['date_of_birth'] == '1980-01-15'
        assert result['reference_id'].startswith('PT')

    def test_unverified_affiliation(self):
        result = serialize_affiliation(AffiliationFactory())
        assert result['status'] == 'PENDING'
        assert result['verified_at'] is None
        assert result['verified_by_email'] is None

    def test_enrollment_without_prescriber(self):
        result = serialize_enrollment(EnrollmentFactory())
        assert result['prescriber'] is None
        assert result['patient_name'] == 'John Doe'

    def test_thread_optional_parts(self):
        thread = ThreadFactory()

        bare = serialize_thread(thread)
        assert 'unread_count' not in bare
        assert 'messages' not in bare
        assert bare['patient_name'] is None

        full = serialize_thread(thread, unread_count=0, messages=[])
        assert full['unread_count'] == 0
        assert full['messages'] == []

    def test_investigation_expired_flag(self):
        now = timezone.now()
        investigation = BenefitsInvestigation.objects.create(
            patient=PatientFactory(),
            program=ProgramFactory(),
            investigation_type='MEDICAL',
            coverage_status='ACTIVE',
            coverage_type='MEDICARE',
            expires_at=now - timedelta(days=1),
            created_by=UserFactory(),
        )

        assert serialize_investigation(investigation, now)['expired'] is True
        assert serialize_investigation(investigation, now - timedelta(days=2))['expired'] is False
