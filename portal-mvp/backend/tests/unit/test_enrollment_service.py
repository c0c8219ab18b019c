"""
services.enrollments：草稿复用、提交、状态变更 + 历史记录 + 通知。
"""

import pytest
from django.core import mail

from portal.exceptions import NotFound, ValidationFailure
from portal.models import AuditEvent, Enrollment, EnrollmentStatusHistory
from portal.services import enrollments
from tests.conftest import (
    EnrollmentFactory,
    PatientFactory,
    ProgramFactory,
    ProviderFactory,
    UserFactory,
    ctx_for,
)


@pytest.mark.django_db
class TestCreateOrUpdateEnrollment:

    def test_save_draft(self, staff_ctx):
        patient = PatientFactory()
        program = ProgramFactory()

        enrollment = enrollments.create_or_update_enrollment(staff_ctx, patient.id, {
            'program_id': program.id,
            'medication_name': 'Humira',
        })

        assert enrollment.status == 'DRAFT'
        assert enrollment.submitted_at is None
        assert enrollment.created_by_id == staff_ctx.user.id
        assert EnrollmentStatusHistory.objects.count() == 0
        assert not AuditEvent.objects.filter(event_type='ENROLLMENT_SUBMITTED').exists()

    def test_existing_draft_is_reused(self, staff_ctx):
        draft = EnrollmentFactory(medication_name='Old')

        enrollment = enrollments.create_or_update_enrollment(staff_ctx, draft.patient_id, {
            'program_id': draft.program_id,
            'medication_name': 'New',
        })

        assert enrollment.id == draft.id
        assert Enrollment.objects.count() == 1
        assert enrollment.medication_name == 'New'

    def test_submitted_enrollment_is_not_reused(self, staff_ctx):
        submitted = EnrollmentFactory(status='SUBMITTED')

        enrollment = enrollments.create_or_update_enrollment(staff_ctx, submitted.patient_id, {
            'program_id': submitted.program_id,
        })

        assert enrollment.id != submitted.id
        assert Enrollment.objects.count() == 2

    def test_submit(self, staff_ctx):
        patient = PatientFactory(first_name='John', last_name='Doe')
        program = ProgramFactory()
        prescriber = ProviderFactory()

        enrollment = enrollments.create_or_update_enrollment(staff_ctx, patient.id, {
            'program_id': program.id,
            'prescriber_id': prescriber.id,
            'diagnosis_code': 'M05.79',
            'submit': True,
        })

        assert enrollment.status == 'SUBMITTED'
        assert enrollment.submitted_at is not None
        assert enrollment.prescriber_id == prescriber.id

        history = EnrollmentStatusHistory.objects.get(enrollment=enrollment)
        assert history.from_status is None
        assert history.to_status == 'SUBMITTED'
        assert history.reason == 'Initial submission'

        event = AuditEvent.objects.get(event_type='ENROLLMENT_SUBMITTED')
        assert event.action == 'SUBMIT'
        assert event.metadata == {'patientId': patient.id, 'programId': program.id}

    def test_submit_notifies_submitter(self, staff_ctx, staff_user, settings):
        settings.PORTAL_NOTIFICATIONS = 'email'
        patient = PatientFactory(first_name='John', last_name='Doe')

        enrollments.create_or_update_enrollment(staff_ctx, patient.id, {
            'program_id': ProgramFactory().id, 'submit': True,
        })

        assert mail.outbox[0].to == [staff_user.email]
        assert mail.outbox[0].subject == 'Enrollment status update for John Doe'

    def test_program_required(self, staff_ctx):
        with pytest.raises(ValidationFailure):
            enrollments.create_or_update_enrollment(staff_ctx, PatientFactory().id, {})

    @pytest.mark.parametrize('data', [
        {'program_id': 'x'},
        {'program_id': 1, 'prescriber_id': 'dr-who'},
        {'program_id': 1, 'medication_name': 42},
    ])
    def test_malformed_fields_rejected(self, staff_ctx, data):
        with pytest.raises(ValidationFailure) as exc_info:
            enrollments.create_or_update_enrollment(staff_ctx, PatientFactory().id, data)
        assert exc_info.value.http_status == 400
        assert Enrollment.objects.count() == 0

    @pytest.mark.parametrize('missing,code', [
        ('patient', 'PATIENT_NOT_FOUND'),
        ('program', 'PROGRAM_NOT_FOUND'),
        ('prescriber', 'PRESCRIBER_NOT_FOUND'),
    ])
    def test_missing_references(self, staff_ctx, missing, code):
        patient_id = 999 if missing == 'patient' else PatientFactory().id
        data = {'program_id': 999 if missing == 'program' else ProgramFactory().id}
        if missing == 'prescriber':
            data['prescriber_id'] = 999

        with pytest.raises(NotFound) as exc_info:
            enrollments.create_or_update_enrollment(staff_ctx, patient_id, data)
        assert exc_info.value.code == code


@pytest.mark.django_db
class TestUpdateEnrollmentStatus:

    def test_records_history_and_audit(self, staff_ctx):
        enrollment = EnrollmentFactory(status='SUBMITTED')

        updated = enrollments.update_enrollment_status(staff_ctx, enrollment.id, 'approved', 'Criteria met')

        assert updated.status == 'APPROVED'
        history = enrollments.get_status_history(staff_ctx, enrollment.id)
        assert [(h.from_status, h.to_status, h.reason) for h in history] == [
            ('SUBMITTED', 'APPROVED', 'Criteria met'),
        ]
        event = AuditEvent.objects.get(event_type='ENROLLMENT_STATUS_CHANGED')
        assert event.action == 'UPDATE'
        assert event.metadata['toStatus'] == 'APPROVED'

    def test_notifies_creator_not_the_reviewer(self, settings):
        settings.PORTAL_NOTIFICATIONS = 'email'
        creator = UserFactory(email='creator@clinic.test')
        reviewer = UserFactory(email='agent@portal.test', roles=['SUPPORT_AGENT'])
        enrollment = EnrollmentFactory(status='SUBMITTED', created_by=creator)

        enrollments.update_enrollment_status(ctx_for(reviewer), enrollment.id, 'DENIED')

        assert mail.outbox[0].to == ['creator@clinic.test']
        assert 'DENIED' in mail.outbox[0].body

    def test_invalid_status(self, staff_ctx):
        enrollment = EnrollmentFactory()
        with pytest.raises(ValidationFailure) as exc_info:
            enrollments.update_enrollment_status(staff_ctx, enrollment.id, 'MAYBE')
        assert exc_info.value.code == 'INVALID_STATUS'

    def test_non_string_status(self, staff_ctx):
        enrollment = EnrollmentFactory()
        with pytest.raises(ValidationFailure):
            enrollments.update_enrollment_status(staff_ctx, enrollment.id, 3)
        assert enrollment.status_history.count() == 0

    def test_not_found(self, staff_ctx):
        with pytest.raises(NotFound):
            enrollments.update_enrollment_status(staff_ctx, 999, 'APPROVED')


@pytest.mark.django_db
class TestQueries:

    def test_patient_enrollments(self, staff_ctx):
        patient = PatientFactory()
        EnrollmentFactory(patient=patient)
        EnrollmentFactory(patient=patient, status='SUBMITTED')
        EnrollmentFactory()

        assert len(enrollments.get_patient_enrollments(staff_ctx, patient.id)) == 2

    def test_unknown_patient(self, staff_ctx):
        with pytest.raises(NotFound):
            enrollments.get_patient_enrollments(staff_ctx, 999)

    def test_get_enrollment(self, staff_ctx):
        enrollment = EnrollmentFactory()
        assert enrollments.get_enrollment(staff_ctx, enrollment.id) == enrollment
        with pytest.raises(NotFound):
            enrollments.get_enrollment(staff_ctx, 999)
